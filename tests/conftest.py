"""Shared test fixtures for matrixgate.

Provides in-memory fakes for the build engine capabilities (jobs, queued
runs, completed runs) and a quiet parent build.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import pytest

from matrixgate.engine.local import LocalBuild
from matrixgate.locator import JobLocator
from matrixgate.model import ParameterDefinition, Severity


class FakeRun:
    def __init__(self, name: str, number: int, result: Severity, artifacts_dir: Path):
        self.name = name
        self.number = number
        self.result = result
        self.artifacts_dir = artifacts_dir

    @property
    def url(self) -> str:
        return f"job/{self.name}/{self.number}/"

    @property
    def full_display_name(self) -> str:
        return f"{self.name} #{self.number}"


class FakeQueued:
    def __init__(self, run: FakeRun, *, start=None, complete=None):
        self.run = run
        # None -> return the run; "none" -> return None; exception -> raise it
        self._start = start
        self._complete = complete
        self.start_calls = 0
        self.get_calls = 0

    def _resolve(self, behaviour):
        if behaviour is None:
            return self.run
        if behaviour == "none":
            return None
        raise behaviour

    def wait_for_start(self):
        self.start_calls += 1
        return self._resolve(self._start)

    def get(self):
        self.get_calls += 1
        return self._resolve(self._complete)


class FakeJob:
    """A job handle that records every scheduling request."""

    def __init__(
        self,
        name: str,
        *,
        result: Severity = Severity.SUCCESS,
        definitions: Optional[List[ParameterDefinition]] = None,
        disabled: bool = False,
        rejections: int = 0,
        artifacts: Optional[Dict[str, str]] = None,
        root: Optional[Path] = None,
        start=None,
        complete=None,
    ):
        self.name = name
        self.full_display_name = name.title()
        self.result = result
        self.parameter_definitions = list(definitions or [])
        self.disabled = disabled
        self.rejections = rejections
        self.artifacts = artifacts or {}
        self.root = root or Path(".")
        self.start = start
        self.complete = complete
        self.calls: list = []
        self.queued: List[FakeQueued] = []

    def schedule(self, quiet_period, cause, parameters):
        self.calls.append((quiet_period, cause, dict(parameters)))
        if self.rejections > 0:
            self.rejections -= 1
            return None

        number = len(self.queued) + 1
        artifacts_dir = self.root / self.name / str(number) / "archive"
        artifacts_dir.mkdir(parents=True, exist_ok=True)
        for rel, content in self.artifacts.items():
            target = artifacts_dir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="iso-8859-1")

        queued = FakeQueued(
            FakeRun(self.name, number, self.result, artifacts_dir),
            start=self.start,
            complete=self.complete,
        )
        self.queued.append(queued)
        return queued


class FakeMain:
    """Main phase stand-in: returns a result or raises."""

    def __init__(self, result: Severity = Severity.SUCCESS, error: Optional[BaseException] = None):
        self.result = result
        self.error = error
        self.calls = 0
        self.seen_env: Optional[dict] = None

    def __call__(self, build):
        self.calls += 1
        self.seen_env = build.environment()
        if self.error is not None:
            raise self.error
        return self.result


class NoSleep:
    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def build() -> LocalBuild:
    return LocalBuild("matrix", 7, env={"BRANCH": "main"}, echo=False)


@pytest.fixture
def no_sleep() -> NoSleep:
    return NoSleep()


@pytest.fixture
def make_job(tmp_path):
    def _make(name: str, **kwargs) -> FakeJob:
        kwargs.setdefault("root", tmp_path)
        return FakeJob(name, **kwargs)
    return _make


def locator_for(*jobs) -> JobLocator:
    return JobLocator(lambda: list(jobs))
