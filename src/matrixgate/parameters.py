# parameters.py
from __future__ import annotations

from typing import Dict, Iterable, Iterator, Mapping, Optional

from .buildlog import BuildLog
from .model import ParameterDefinition
from .properties import parse_properties


class ParameterSet(Mapping[str, str]):
    """
    Ordered, unique parameter name -> value mapping sent with a scheduling
    request. Explicit values first (in text order), then defaults.
    """

    def __init__(self) -> None:
        self._values: Dict[str, str] = {}

    def add(self, name: str, value: str) -> None:
        if name in self._values:
            raise ValueError(f"Duplicate parameter: {name}")
        self._values[name] = value

    def __getitem__(self, name: str) -> str:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ParameterSet({self._values!r})"


def parse_parameters(
    expanded_text: str,
    definitions: Optional[Iterable[ParameterDefinition]],
    log: Optional[BuildLog] = None,
) -> ParameterSet:
    """
    Build the parameter set for a triggered job.

    expanded_text is properties text already expanded against the parent
    build's environment. Every declared parameter not given explicitly is
    appended with its default, in declaration order.

    Pure apart from the log narration, so it is safe to call once per
    scheduling attempt.
    """
    params = ParameterSet()
    explicit = parse_properties(expanded_text)

    if log is not None:
        log.println("Using parameters: ")
    for key, value in explicit.items():
        if log is not None:
            log.println(f"\t`{key}`=>`{value}`")
        params.add(key, value)

    for definition in definitions or []:
        if definition.name in params:
            continue
        if definition.default is None:
            if log is not None:
                log.println(f"\tNo default for `{definition.name}`, leaving it unset")
            continue
        if log is not None:
            log.println(f"\tUsing default: `{definition.name}`")
        params.add(definition.name, definition.default)

    return params
