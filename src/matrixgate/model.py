# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class Severity(Enum):
    """
    Build result, ordered by ascending badness.

    The value is the ordinal used for comparisons:
      SUCCESS < UNSTABLE < FAILURE < NOT_BUILT < ABORTED
    """
    SUCCESS = 0
    UNSTABLE = 1
    FAILURE = 2
    NOT_BUILT = 3
    ABORTED = 4

    def is_better_than(self, other: Severity) -> bool:
        return self.value < other.value

    def is_worse_than(self, other: Severity) -> bool:
        return self.value > other.value

    def __str__(self) -> str:
        return self.name


class Phase(Enum):
    PRE = "pre"
    MAIN = "main"
    POST = "post"

    def __str__(self) -> str:
        return self.value


class RunState(Enum):
    """Lifecycle of a scheduled run. STARTED is never skipped."""
    PENDING = "pending"
    STARTED = "started"
    COMPLETED = "completed"


@dataclass(frozen=True)
class JobSpec:
    """
    One gate job: which job to trigger, with what parameters, and which
    properties file (relative to its artifacts) to inject back.

    An empty name means the phase is disabled.
    """
    name: str = ""
    parameters_text: str = ""
    properties_file_to_inject: str = ""

    def __post_init__(self) -> None:
        # config fields may arrive as None from forms / json
        object.__setattr__(self, "name", (self.name or "").strip())
        object.__setattr__(self, "parameters_text", self.parameters_text or "")
        object.__setattr__(
            self, "properties_file_to_inject", (self.properties_file_to_inject or "").strip()
        )

    @property
    def enabled(self) -> bool:
        return bool(self.name)


@dataclass(frozen=True)
class TriggerConfig:
    """Pre/post gate configuration of one matrix build. Read-only during a run."""
    pre_job: JobSpec = field(default_factory=JobSpec)
    post_job: JobSpec = field(default_factory=JobSpec)
    post_fail_if_downstream_fails: bool = False

    def __post_init__(self) -> None:
        if self.pre_job is None:
            object.__setattr__(self, "pre_job", JobSpec())
        if self.post_job is None:
            object.__setattr__(self, "post_job", JobSpec())


@dataclass(frozen=True)
class ParameterDefinition:
    """A parameter declared by a triggerable job. default=None means 'no default'."""
    name: str
    default: Optional[str] = ""
    description: str = ""


@dataclass(frozen=True)
class UpstreamCause:
    """Why a gate job was scheduled: the parent build that triggered it."""
    project: str
    number: int
    url: str = ""

    def __str__(self) -> str:
        return f"Started by upstream project \"{self.project}\" build number {self.number}"


@dataclass(frozen=True)
class PhaseOutcome:
    """
    Result of one phase. Informational outcomes are recorded but never
    worsen the overall result.
    """
    phase: Phase
    result: Severity
    run_ref: Optional[str] = None
    informational: bool = False


@dataclass
class Step:
    """A single command (step) inside a job."""
    name: str
    run: str
    cwd: str | None = None


@dataclass
class Job:
    """
    A job the local engine can run: either a gate job (triggered by name)
    or one configuration of the main matrix.
    """
    name: str
    steps: list[Step]

    needs: list[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)

    parameters: List[ParameterDefinition] = field(default_factory=list)
    artifacts: List[str] = field(default_factory=list)   # globs, relative to the workspace
    unstable_exit_codes: List[int] = field(default_factory=list)
    disabled: bool = False
    display_name: str | None = None

    @property
    def full_display_name(self) -> str:
        return self.display_name or self.name
