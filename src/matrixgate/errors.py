# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(eq=False)
class GateError(Exception):
    """
    Structured orchestration error with enough context for:
      - clean CLI output
      - the parent build's visible failure cause
      - debugging without full tracebacks
    """
    kind: str
    message: str
    job: str = ""
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.job:
            lines.append(f"job={self.job}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


# ----------------------------------------------------------------------
# Configuration (fatal, never retried)
# ----------------------------------------------------------------------

class ConfigurationError(GateError):
    def __init__(self, message: str, job: str = "", **details) -> None:
        super().__init__(kind="ConfigurationError", message=message, job=job, details=details)


class JobNotFoundError(ConfigurationError):
    def __init__(self, job: str) -> None:
        super().__init__(f"The specified Job name ({job}) does not exist. Failing.", job=job)
        self.kind = "JobNotFoundError"


class JobDisabledError(ConfigurationError):
    def __init__(self, job: str, display_name: str | None = None) -> None:
        super().__init__(f"{display_name or job} has been disabled.", job=job)
        self.kind = "JobDisabledError"


class ParseError(GateError):
    """Malformed properties text. Carries the offending line."""

    def __init__(self, message: str, line_number: int, line: str, job: str = "") -> None:
        super().__init__(
            kind="ParseError",
            message=message,
            job=job,
            details={"line": line_number, "text": line},
        )
        self.line_number = line_number
        self.line = line


# ----------------------------------------------------------------------
# Scheduling / execution
# ----------------------------------------------------------------------

class SchedulingFailedError(GateError):
    def __init__(self, job: str, build: str, attempts: int) -> None:
        super().__init__(
            kind="SchedulingFailedError",
            message=f"{build} was unable to schedule {job}.",
            job=job,
            details={"build": build, "attempts": attempts},
        )
        self.build = build
        self.attempts = attempts


class StartFailedError(GateError):
    def __init__(self, job: str, message: str) -> None:
        super().__init__(kind="StartFailedError", message=message, job=job)


class CompletionFailedError(GateError):
    def __init__(self, job: str, message: str) -> None:
        super().__init__(kind="CompletionFailedError", message=message, job=job)


# ----------------------------------------------------------------------
# Artifact injection
# ----------------------------------------------------------------------

class ArtifactError(GateError):
    pass


class ArtifactNotFoundError(ArtifactError):
    def __init__(self, job: str, path: str) -> None:
        super().__init__(
            kind="ArtifactNotFoundError",
            message=f"Artifact {path} not found",
            job=job,
            details={"path": path},
        )
        self.path = path


class ArtifactParseError(ArtifactError):
    def __init__(self, job: str, path: str, reason: str) -> None:
        super().__init__(
            kind="ArtifactParseError",
            message=f"Could not parse {path}: {reason}",
            job=job,
            details={"path": path},
        )
        self.path = path
