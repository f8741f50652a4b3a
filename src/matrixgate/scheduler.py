# scheduler.py
from __future__ import annotations

import time
import traceback
from concurrent.futures import CancelledError
from typing import Callable, Mapping, Optional, Tuple

from .buildlog import BuildLog
from .engine.base import JobHandle, QueuedRun, RunHandle
from .errors import CompletionFailedError, SchedulingFailedError, StartFailedError
from .model import RunState, Severity, UpstreamCause
from .settings import NUM_RETRIES, RETRY_BACKOFF_SECONDS
from .ui.console import get_console


class ScheduledRun:
    """
    Handle to an admitted run. Moves PENDING -> STARTED -> COMPLETED;
    the underlying run belongs to the caller once COMPLETED.
    """

    def __init__(self, job: JobHandle, queued: QueuedRun, attempts: int):
        self.job = job
        self.queued = queued
        self.attempts = attempts
        self.state = RunState.PENDING
        self.run: Optional[RunHandle] = None

    @property
    def job_name(self) -> str:
        return self.job.name

    def __repr__(self) -> str:
        return f"ScheduledRun(job={self.job.name!r}, state={self.state.value})"


def schedule_job(
    job: JobHandle,
    cause: UpstreamCause,
    parameters: Callable[[], Mapping[str, str]],
    *,
    build_name: str,
    log: BuildLog,
    max_retries: int = NUM_RETRIES,
    backoff: float = RETRY_BACKOFF_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> ScheduledRun:
    """
    Submit job to the queue, retrying while the queue rejects it.

    parameters is called once per attempt. Attempt i asks for quiet period
    i so the queue never folds a retry into an earlier request. There is no
    sleep after the last attempt.

    Raises:
        SchedulingFailedError: every attempt was rejected
    """
    console = get_console()
    attempts = max(1, max_retries)

    for i in range(attempts):
        queued = job.schedule(i, cause, parameters())
        if queued is not None:
            console.print_debug(f"{build_name}: scheduled {job.name} on attempt {i + 1}")
            return ScheduledRun(job, queued, attempts=i + 1)
        if i < attempts - 1:
            log.println(f"Couldn't schedule {job.full_display_name}. Retrying ({i}).")
            sleep(backoff)

    error = SchedulingFailedError(job.name, build_name, attempts)
    console.print_warning(error.message)
    raise error


def _link(log: BuildLog, run: RunHandle) -> str:
    return log.hyperlink("../../../" + run.url, run.full_display_name)


def await_start(scheduled: ScheduledRun, log: BuildLog) -> RunHandle:
    """
    Block until the scheduled run starts.

    Raises:
        StartFailedError: the engine failed or resolved to nothing
    """
    console = get_console()
    try:
        run = scheduled.queued.wait_for_start()
    except (CancelledError, KeyboardInterrupt):
        raise
    except Exception as e:
        console.print_error("Triggered run failed to start", str(e))
        console.print_debug(traceback.format_exc())
        raise StartFailedError(scheduled.job_name, f"{scheduled.job_name} failed to start: {e}") from e

    if run is None:
        message = "The build's wait_for_start future returned None. This is most likely a bug in the build engine."
        console.print_error("Triggered run failed to start", message)
        raise StartFailedError(scheduled.job_name, message)

    scheduled.run = run
    scheduled.state = RunState.STARTED
    log.println(f"Running {_link(log, run)}.")
    return run


def await_completion(scheduled: ScheduledRun, log: BuildLog) -> Tuple[RunHandle, Severity]:
    """
    Block until the scheduled run finishes.

    Never resubmits: the run was already admitted.

    Raises:
        CompletionFailedError: the engine failed or resolved to nothing
    """
    console = get_console()
    if scheduled.state is RunState.PENDING:
        await_start(scheduled, log)

    try:
        run = scheduled.queued.get()
    except (CancelledError, KeyboardInterrupt):
        raise
    except Exception as e:
        console.print_error("Triggered run failed", str(e))
        console.print_debug(traceback.format_exc())
        raise CompletionFailedError(scheduled.job_name, f"{scheduled.job_name} failed: {e}") from e

    if run is None:
        message = "The build's future returned None. This is most likely a bug in the build engine."
        console.print_error("Triggered run failed", message)
        raise CompletionFailedError(scheduled.job_name, message)

    scheduled.run = run
    scheduled.state = RunState.COMPLETED
    log.println(f"Finished running {_link(log, run)}.")
    return run, run.result
