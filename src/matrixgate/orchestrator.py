# orchestrator.py
from __future__ import annotations

import time
from concurrent.futures import CancelledError
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .aggregate import aggregate
from .engine.base import MainPhase, ParentBuild, RunHandle
from .errors import GateError, ParseError
from .inject import inject_properties
from .locator import JobLocator
from .model import JobSpec, Phase, PhaseOutcome, Severity, TriggerConfig
from .parameters import parse_parameters
from .properties import expand_variables
from .scheduler import await_completion, await_start, schedule_job
from .settings import NUM_RETRIES, RETRY_BACKOFF_SECONDS
from .ui.console import get_console


class OrchestratorState(Enum):
    IDLE = "idle"
    PRE_RUNNING = "pre_running"
    MAIN_RUNNING = "main_running"
    POST_RUNNING = "post_running"
    DONE = "done"
    PRE_FAILED_SHORT_CIRCUIT = "pre_failed_short_circuit"


def run_gate_job(
    build: ParentBuild,
    spec: JobSpec,
    locator: JobLocator,
    *,
    max_retries: int = NUM_RETRIES,
    backoff: float = RETRY_BACKOFF_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> Tuple[Severity, RunHandle]:
    """
    Trigger one gate job and wait for it:
      locate -> expand + parse parameters -> schedule (with retry)
      -> await start -> await completion -> inject properties file.

    Returns the triggered run's result and the run itself.
    """
    log = build.log
    get_console().print_debug(f"{build.full_display_name} running {spec.name}")

    job = locator.locate(spec.name)
    log.println(f"Scheduling {spec.name}")

    expanded = expand_variables(spec.parameters_text, build.environment())

    def parameters():
        try:
            return parse_parameters(expanded, job.parameter_definitions, log)
        except ParseError as e:
            e.job = spec.name
            raise

    scheduled = schedule_job(
        job,
        build.cause(),
        parameters,
        build_name=build.full_display_name,
        log=log,
        max_retries=max_retries,
        backoff=backoff,
        sleep=sleep,
    )
    await_start(scheduled, log)
    run, result = await_completion(scheduled, log)

    inject_properties(build, run, spec.properties_file_to_inject, job_name=spec.name, log=log)
    return result, run


class PhaseOrchestrator:
    """
    Wraps a matrix execution with a pre gate job and a post gate job.

      IDLE -> PRE_RUNNING -> MAIN_RUNNING -> POST_RUNNING -> DONE
                   \\-> PRE_FAILED_SHORT_CIRCUIT   (pre result FAILURE or worse)

    The post job runs whenever the matrix ran, even if it raised. An error
    from the matrix wins over an error from the post job.
    """

    def __init__(
        self,
        config: TriggerConfig,
        main_phase: MainPhase,
        locator: JobLocator,
        *,
        max_retries: int = NUM_RETRIES,
        backoff: float = RETRY_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.main_phase = main_phase
        self.locator = locator
        self.max_retries = max_retries
        self.backoff = backoff
        self.sleep = sleep

        self.state = OrchestratorState.IDLE
        self.outcomes: List[PhaseOutcome] = []
        self.result: Optional[Severity] = None
        self.error: Optional[BaseException] = None

    # ------------------------------------------------------------------

    def _gate(self, phase: Phase, build: ParentBuild, spec: JobSpec, informational: bool = False) -> PhaseOutcome:
        result, run = run_gate_job(
            build,
            spec,
            self.locator,
            max_retries=self.max_retries,
            backoff=self.backoff,
            sleep=self.sleep,
        )
        outcome = PhaseOutcome(phase, result, run_ref=run.full_display_name, informational=informational)
        self.outcomes.append(outcome)
        return outcome

    def _post(self, build: ParentBuild) -> None:
        if not self.config.post_job.enabled:
            return
        self.state = OrchestratorState.POST_RUNNING
        self._gate(
            Phase.POST,
            build,
            self.config.post_job,
            informational=not self.config.post_fail_if_downstream_fails,
        )

    def _post_after_main_error(self, build: ParentBuild) -> None:
        try:
            self._post(build)
        except (CancelledError, KeyboardInterrupt):
            raise
        except Exception as e:
            # the matrix error is the one that propagates
            build.log.println(f"Post job {self.config.post_job.name} also failed: {e}")
            get_console().print_exception(e)

    # ------------------------------------------------------------------

    def run(self, build: ParentBuild) -> Severity:
        """
        Run the phases and return the aggregated result.

        Raises the first fatal error; a pre-phase error means neither the
        matrix nor the post job runs.
        """
        self.state = OrchestratorState.IDLE
        self.outcomes = []
        self.result = None

        pre_result = Severity.SUCCESS
        if self.config.pre_job.enabled:
            self.state = OrchestratorState.PRE_RUNNING
            pre_result = self._gate(Phase.PRE, build, self.config.pre_job).result

        if not pre_result.is_better_than(Severity.FAILURE):
            self.state = OrchestratorState.PRE_FAILED_SHORT_CIRCUIT
            build.log.println(
                f"{self.config.pre_job.name} finished with {pre_result}, skipping the matrix and the post job."
            )
            self.result = pre_result
            return pre_result

        self.state = OrchestratorState.MAIN_RUNNING
        try:
            main_result = self.main_phase(build)
        except (CancelledError, KeyboardInterrupt):
            raise
        except Exception:
            self._post_after_main_error(build)
            raise
        self.outcomes.append(PhaseOutcome(Phase.MAIN, main_result))

        self._post(build)

        self.state = OrchestratorState.DONE
        self.result = aggregate(self.outcomes)
        return self.result

    def execute(self, build: ParentBuild) -> Severity:
        """
        Build-facing entry point: like run(), but a fatal error marks the
        build FAILURE with the error as its cause instead of raising.
        Cancellation marks it ABORTED and propagates.
        """
        console = get_console()
        self.error = None
        try:
            result = self.run(build)
        except (CancelledError, KeyboardInterrupt) as e:
            self.error = e
            self.result = Severity.ABORTED
            build.set_result(Severity.ABORTED, cause="Interrupted")
            raise
        except GateError as e:
            self.error = e
            build.log.println(f"ERROR: {e.message}")
            console.print_exception(e)
        except Exception as e:
            self.error = e
            build.log.println(f"ERROR: {e}")
            console.print_exception(e)
        else:
            build.set_result(result)
            return result

        self.result = Severity.FAILURE
        cause = self.error.message if isinstance(self.error, GateError) else str(self.error)
        build.set_result(Severity.FAILURE, cause=cause)
        return Severity.FAILURE
