# local.py
# In-process build engine: runs gate jobs on a thread pool so a workflow
# file can be orchestrated without an external CI server.
from __future__ import annotations

import os
import shutil
import threading
import time
from concurrent.futures import Future, InvalidStateError, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from ..buildlog import BuildLog
from ..locator import JobLocator
from ..model import Job, ParameterDefinition, Severity, UpstreamCause
from ..settings import MATRIXGATE_HOME, QUEUE_SIZE, WORKERS
from .steps import StepProcesses, run_steps, step_environment


class LocalRun:
    """One run of a job on the local engine."""

    def __init__(self, job: Job, number: int, home: Path, cause: UpstreamCause, parameters: Mapping[str, str]):
        self.job = job
        self.number = number
        self.cause = cause
        self.parameters = dict(parameters)
        self.root = home / "jobs" / job.name / "builds" / str(number)
        self.result = Severity.NOT_BUILT

    @property
    def url(self) -> str:
        return f"job/{self.job.name}/{self.number}/"

    @property
    def full_display_name(self) -> str:
        return f"{self.job.full_display_name} #{self.number}"

    @property
    def artifacts_dir(self) -> Path:
        return self.root / "artifacts"

    @property
    def log_file(self) -> Path:
        return self.root / "log.txt"

    def __repr__(self) -> str:
        return f"LocalRun({self.full_display_name!r}, result={self.result})"


class LocalQueuedRun:
    """Two futures: resolved when the run starts, and when it completes."""

    def __init__(self) -> None:
        self.started: Future = Future()
        self.completed: Future = Future()

    def wait_for_start(self) -> Optional[LocalRun]:
        return self.started.result()

    def get(self) -> Optional[LocalRun]:
        return self.completed.result()


class LocalJobHandle:
    """A job definition bound to the engine that can schedule it."""

    def __init__(self, engine: LocalEngine, job: Job):
        self._engine = engine
        self.job = job

    @property
    def name(self) -> str:
        return self.job.name

    @property
    def full_display_name(self) -> str:
        return self.job.full_display_name

    @property
    def disabled(self) -> bool:
        return self.job.disabled

    @property
    def parameter_definitions(self) -> List[ParameterDefinition]:
        return list(self.job.parameters)

    def schedule(self, quiet_period: int, cause: UpstreamCause, parameters: Mapping[str, str]) -> Optional[LocalQueuedRun]:
        return self._engine.schedule(self.job, quiet_period, cause, parameters)


def _settle(future: Future, value: Any = None, error: Optional[BaseException] = None) -> None:
    # a future cancelled by LocalEngine.cancel() stays cancelled
    try:
        if error is None:
            future.set_result(value)
        else:
            future.set_exception(error)
    except InvalidStateError:
        pass


class LocalEngine:
    """
    Job registry + bounded queue + worker pool.

    schedule() returns None (rejected) while max_queue runs are pending
    or running, and after cancel().
    """

    def __init__(
        self,
        jobs: Iterable[Job],
        *,
        repo_root: str | Path = ".",
        home: str | Path = MATRIXGATE_HOME,
        max_workers: int = WORKERS,
        max_queue: int = QUEUE_SIZE,
        quiet_period_unit: float = 1.0,
    ):
        self._jobs: Dict[str, Job] = {}
        for j in jobs:
            if j.name in self._jobs:
                raise ValueError(f"Duplicate job name: {j.name}")
            self._jobs[j.name] = j

        self.repo_root = Path(repo_root).resolve()
        self.home = Path(home).resolve()
        self.max_queue = max_queue
        self.quiet_period_unit = quiet_period_unit

        self._pool = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="matrixgate")
        self._lock = threading.Lock()
        self._active = 0
        self._numbers: Dict[str, int] = {}
        self._pending: Set[LocalQueuedRun] = set()
        self.processes = StepProcesses()
        self.runs: List[LocalRun] = []

    def all_jobs(self) -> List[LocalJobHandle]:
        return [LocalJobHandle(self, j) for j in self._jobs.values()]

    def locator(self) -> JobLocator:
        return JobLocator(self.all_jobs)

    # ---- queue ----

    def _next_number(self, name: str) -> int:
        existing = self.home / "jobs" / name / "builds"
        if name not in self._numbers:
            last = 0
            if existing.is_dir():
                last = max((int(p.name) for p in existing.iterdir() if p.name.isdigit()), default=0)
            self._numbers[name] = last
        self._numbers[name] += 1
        return self._numbers[name]

    def schedule(
        self,
        job: Job,
        quiet_period: int,
        cause: UpstreamCause,
        parameters: Mapping[str, str],
    ) -> Optional[LocalQueuedRun]:
        with self._lock:
            if self.processes.cancelled or self._active >= self.max_queue:
                return None
            self._active += 1
            run = LocalRun(job, self._next_number(job.name), self.home, cause, parameters)
            self.runs.append(run)
            queued = LocalQueuedRun()
            self._pending.add(queued)

        self._pool.submit(self._execute, run, queued, quiet_period)
        return queued

    def _execute(self, run: LocalRun, queued: LocalQueuedRun, quiet_period: int) -> None:
        error: Optional[Exception] = None
        try:
            if quiet_period:
                time.sleep(quiet_period * self.quiet_period_unit)
            if self.processes.cancelled:
                run.result = Severity.ABORTED
                return
            run.artifacts_dir.mkdir(parents=True, exist_ok=True)
            _settle(queued.started, run)

            run.result = self._run(run)
            self._archive(run)
        except Exception as e:
            error = e
        finally:
            with self._lock:
                self._active -= 1
                self._pending.discard(queued)

        if error is None:
            _settle(queued.completed, run)
            return
        if not queued.started.done():
            _settle(queued.started, error=error)
        _settle(queued.completed, error=error)

    def _run(self, run: LocalRun) -> Severity:
        env = step_environment(
            run.job,
            run.parameters,
            {
                "BUILD_NUMBER": str(run.number),
                "JOB_NAME": run.job.name,
                "WORKSPACE": str(self.repo_root),
                "ARTIFACTS_DIR": str(run.artifacts_dir),
            },
        )
        with run.log_file.open("w", encoding="utf-8") as f:
            f.write(f"{run.cause}\n")

            def output(line: str) -> None:
                f.write(line + "\n")

            return run_steps(run.job, self.repo_root, env, output, self.processes)

    def _archive(self, run: LocalRun) -> None:
        for pattern in run.job.artifacts:
            for src in sorted(self.repo_root.glob(pattern)):
                if not src.is_file():
                    continue
                dest = run.artifacts_dir / src.relative_to(self.repo_root)
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(src, dest)

    # ---- lifecycle ----

    def close(self) -> None:
        self._pool.shutdown(wait=True)

    def cancel(self) -> None:
        """Kill running steps, drop queued runs and cancel their futures."""
        self.processes.terminate()
        self._pool.shutdown(wait=False, cancel_futures=True)
        with self._lock:
            pending = list(self._pending)
            self._pending.clear()
        for queued in pending:
            queued.started.cancel()
            queued.completed.cancel()

    def __enter__(self) -> LocalEngine:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.cancel()


class LocalBuild:
    """
    A parent (matrix) build: its environment, injected properties, log
    and final result.
    """

    def __init__(
        self,
        name: str,
        number: int = 1,
        env: Optional[Mapping[str, str]] = None,
        echo: bool = True,
    ):
        self.name = name
        self.number = number
        self._env: Dict[str, str] = dict(os.environ if env is None else env)
        self.injected: List[Tuple[str, Dict[str, str]]] = []
        self.log = BuildLog(self.full_display_name, echo=echo)
        self.result: Optional[Severity] = None
        self.failure_cause: Optional[str] = None

    @property
    def full_display_name(self) -> str:
        return f"{self.name} #{self.number}"

    @property
    def url(self) -> str:
        return f"job/{self.name}/{self.number}/"

    def cause(self) -> UpstreamCause:
        return UpstreamCause(self.name, self.number, self.url)

    def injected_environment(self) -> Dict[str, str]:
        merged: Dict[str, str] = {}
        for _source, values in self.injected:
            merged.update(values)
        return merged

    def environment(self) -> Dict[str, str]:
        env = dict(self._env)
        env.update({
            "BUILD_NUMBER": str(self.number),
            "JOB_NAME": self.name,
            "BUILD_URL": self.url,
        })
        env.update(self.injected_environment())
        return env

    def add_injected_environment(self, values: Mapping[str, str], source: str = "") -> None:
        self.injected.append((source, dict(values)))

    def set_result(self, result: Severity, cause: Optional[str] = None) -> None:
        self.result = result
        self.failure_cause = cause
