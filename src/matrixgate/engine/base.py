"""Capabilities the orchestration needs from a build engine.

The orchestration core only talks to these protocols; the local engine in
``matrixgate.engine.local`` is one implementation, test fakes are others.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol

from ..buildlog import BuildLog
from ..model import ParameterDefinition, Severity, UpstreamCause


class RunHandle(Protocol):
    """A materialized run of a triggered job."""

    @property
    def url(self) -> str: ...

    @property
    def full_display_name(self) -> str: ...

    @property
    def result(self) -> Severity: ...

    @property
    def artifacts_dir(self) -> Path: ...


class QueuedRun(Protocol):
    """An admitted run: blocks until it starts, then until it completes."""

    def wait_for_start(self) -> Optional[RunHandle]: ...

    def get(self) -> Optional[RunHandle]: ...


class JobHandle(Protocol):
    """A runnable job definition."""

    @property
    def name(self) -> str: ...

    @property
    def full_display_name(self) -> str: ...

    @property
    def disabled(self) -> bool: ...

    @property
    def parameter_definitions(self) -> List[ParameterDefinition]: ...

    def schedule(
        self,
        quiet_period: int,
        cause: UpstreamCause,
        parameters: Mapping[str, str],
    ) -> Optional[QueuedRun]:
        """Returns None when the queue rejects the request."""
        ...


class ParentBuild(Protocol):
    """The matrix build that owns the gates."""

    @property
    def full_display_name(self) -> str: ...

    @property
    def log(self) -> BuildLog: ...

    def cause(self) -> UpstreamCause: ...

    def environment(self) -> Dict[str, str]: ...

    def add_injected_environment(self, values: Mapping[str, str], source: str = "") -> None: ...

    def set_result(self, result: Severity, cause: Optional[str] = None) -> None: ...


class MainPhase(Protocol):
    """The wrapped matrix execution: runs every configuration, returns its result."""

    def __call__(self, build: ParentBuild) -> Severity: ...
