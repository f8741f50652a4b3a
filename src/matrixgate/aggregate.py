# aggregate.py
from __future__ import annotations

from typing import Iterable

from .model import PhaseOutcome, Severity


def worst(*results: Severity) -> Severity:
    """Highest severity of results; SUCCESS when there are none."""
    current = Severity.SUCCESS
    for result in results:
        if result.is_worse_than(current):
            current = result
    return current


def aggregate(outcomes: Iterable[PhaseOutcome]) -> Severity:
    """
    Overall build result: the worst result among the recorded phase
    outcomes. Informational outcomes and skipped phases don't count.
    """
    return worst(*(o.result for o in outcomes if not o.informational))
