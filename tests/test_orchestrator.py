"""Tests for the pre -> matrix -> post orchestration."""

from __future__ import annotations

from concurrent.futures import CancelledError

import pytest

from conftest import FakeMain, locator_for
from matrixgate.dsl import gate, param, triggers
from matrixgate.errors import (
    ArtifactNotFoundError,
    JobDisabledError,
    JobNotFoundError,
    ParseError,
    SchedulingFailedError,
    StartFailedError,
)
from matrixgate.model import Phase, Severity
from matrixgate.orchestrator import OrchestratorState, PhaseOrchestrator, run_gate_job


def _orchestrator(config, main, *jobs, sleep=None):
    return PhaseOrchestrator(config, main, locator_for(*jobs), max_retries=3, backoff=1, sleep=sleep or (lambda s: None))


class TestRunGateJob:

    def test_expands_parameters_against_build_environment(self, build, make_job):
        smoke = make_job("smoke", definitions=[param("TARGET", "local"), param("EXTRA", "x")])
        run_gate_job(build, gate("smoke", "TARGET=$BRANCH-${BUILD_NUMBER}"), locator_for(smoke), sleep=lambda s: None)

        _quiet, cause, params = smoke.calls[0]
        assert params == {"TARGET": "main-7", "EXTRA": "x"}
        assert cause.project == "matrix" and cause.number == 7

    def test_narration(self, build, make_job):
        smoke = make_job("smoke", artifacts={"out.properties": "x=42"})
        run_gate_job(build, gate("smoke", "a=1", inject="out.properties"), locator_for(smoke), sleep=lambda s: None)
        assert build.log.lines == [
            "Scheduling smoke",
            "Using parameters: ",
            "\t`a`=>`1`",
            "Running smoke #1 (../../../job/smoke/1/).",
            "Finished running smoke #1 (../../../job/smoke/1/).",
            "Injecting out.properties",
        ]

    def test_disabled_job_never_scheduled(self, build, make_job):
        smoke = make_job("smoke", disabled=True)
        with pytest.raises(JobDisabledError):
            run_gate_job(build, gate("smoke"), locator_for(smoke))
        assert smoke.calls == []

    def test_parse_error_names_the_job(self, build, make_job):
        smoke = make_job("smoke")
        with pytest.raises(ParseError) as exc:
            run_gate_job(build, gate("smoke", "bad=\\u1"), locator_for(smoke))
        assert exc.value.job == "smoke"
        assert smoke.calls == []


class TestPhases:

    def test_pre_disabled_contributes_success(self, build, make_job):
        main = FakeMain(Severity.SUCCESS)
        orch = _orchestrator(triggers(), main)

        assert orch.run(build) is Severity.SUCCESS
        assert main.calls == 1
        assert [o.phase for o in orch.outcomes] == [Phase.MAIN]
        assert orch.state is OrchestratorState.DONE

    def test_whitespace_name_is_disabled(self, build, make_job):
        smoke = make_job("smoke")
        orch = _orchestrator(triggers(pre=gate("   ")), FakeMain(), smoke)
        assert orch.run(build) is Severity.SUCCESS
        assert smoke.calls == []

    @pytest.mark.parametrize("pre_result", [Severity.FAILURE, Severity.NOT_BUILT, Severity.ABORTED])
    def test_pre_failure_short_circuits(self, build, make_job, pre_result):
        smoke = make_job("smoke", result=pre_result)
        cleanup = make_job("cleanup")
        main = FakeMain()
        orch = _orchestrator(triggers(pre="smoke", post="cleanup", post_fail_if_downstream_fails=True), main, smoke, cleanup)

        assert orch.run(build) is pre_result
        assert main.calls == 0
        assert cleanup.calls == []
        assert orch.state is OrchestratorState.PRE_FAILED_SHORT_CIRCUIT

    def test_unstable_pre_lets_matrix_run(self, build, make_job):
        smoke = make_job("smoke", result=Severity.UNSTABLE)
        main = FakeMain(Severity.SUCCESS)
        orch = _orchestrator(triggers(pre="smoke"), main, smoke)
        assert orch.run(build) is Severity.UNSTABLE
        assert main.calls == 1

    def test_post_runs_once_after_matrix_success(self, build, make_job):
        cleanup = make_job("cleanup")
        orch = _orchestrator(triggers(post="cleanup"), FakeMain(Severity.FAILURE), cleanup)
        assert orch.run(build) is Severity.FAILURE
        assert len(cleanup.calls) == 1

    def test_post_runs_once_when_matrix_raises(self, build, make_job):
        cleanup = make_job("cleanup")
        boom = RuntimeError("matrix exploded")
        orch = _orchestrator(triggers(post="cleanup"), FakeMain(error=boom), cleanup)

        with pytest.raises(RuntimeError) as exc:
            orch.run(build)
        assert exc.value is boom
        assert len(cleanup.calls) == 1

    def test_matrix_error_wins_over_post_error(self, build, make_job):
        cleanup = make_job("cleanup", rejections=100)
        boom = RuntimeError("matrix exploded")
        orch = _orchestrator(triggers(post="cleanup"), FakeMain(error=boom), cleanup)

        with pytest.raises(RuntimeError) as exc:
            orch.run(build)
        assert exc.value is boom
        assert len(cleanup.calls) == 3
        assert any("Post job cleanup also failed" in line for line in build.log.lines)

    def test_post_informational_when_flag_off(self, build, make_job):
        cleanup = make_job("cleanup", result=Severity.FAILURE)
        orch = _orchestrator(triggers(post="cleanup", post_fail_if_downstream_fails=False), FakeMain(), cleanup)

        assert orch.run(build) is Severity.SUCCESS
        assert len(cleanup.calls) == 1
        post = orch.outcomes[-1]
        assert post.phase is Phase.POST and post.result is Severity.FAILURE and post.informational

    def test_post_counts_when_flag_on(self, build, make_job):
        cleanup = make_job("cleanup", result=Severity.UNSTABLE)
        orch = _orchestrator(triggers(post="cleanup", post_fail_if_downstream_fails=True), FakeMain(), cleanup)
        assert orch.run(build) is Severity.UNSTABLE

    def test_end_to_end_worst_of_three(self, build, make_job):
        smoke = make_job("smoke", result=Severity.UNSTABLE)
        cleanup = make_job("cleanup", result=Severity.FAILURE)
        config = triggers(pre="smoke", post="cleanup", post_fail_if_downstream_fails=True)
        orch = _orchestrator(config, FakeMain(Severity.SUCCESS), smoke, cleanup)

        assert orch.run(build) is Severity.FAILURE
        assert [(o.phase, o.result) for o in orch.outcomes] == [
            (Phase.PRE, Severity.UNSTABLE),
            (Phase.MAIN, Severity.SUCCESS),
            (Phase.POST, Severity.FAILURE),
        ]
        assert orch.outcomes[0].run_ref == "smoke #1"

    def test_pre_injection_visible_to_matrix(self, build, make_job):
        smoke = make_job("smoke", artifacts={"out.properties": "SMOKE_TARGET=staging"})
        main = FakeMain()
        orch = _orchestrator(triggers(pre=gate("smoke", inject="out.properties")), main, smoke)
        orch.run(build)
        assert main.seen_env["SMOKE_TARGET"] == "staging"


class TestFatalErrors:

    @pytest.mark.parametrize(
        "job_kwargs, error",
        [
            ({"rejections": 100}, SchedulingFailedError),
            ({"start": "none"}, StartFailedError),
            ({"disabled": True}, JobDisabledError),
        ],
    )
    def test_pre_error_aborts_everything(self, build, make_job, job_kwargs, error):
        smoke = make_job("smoke", **job_kwargs)
        cleanup = make_job("cleanup")
        main = FakeMain()
        orch = _orchestrator(triggers(pre="smoke", post="cleanup"), main, smoke, cleanup)

        with pytest.raises(error):
            orch.run(build)
        assert main.calls == 0
        assert cleanup.calls == []

    def test_missing_pre_job(self, build):
        main = FakeMain()
        with pytest.raises(JobNotFoundError):
            _orchestrator(triggers(pre="nope"), main).run(build)
        assert main.calls == 0

    def test_pre_artifact_error_aborts(self, build, make_job):
        smoke = make_job("smoke")
        main = FakeMain()
        orch = _orchestrator(triggers(pre=gate("smoke", inject="missing.properties")), main, smoke)
        with pytest.raises(ArtifactNotFoundError):
            orch.run(build)
        assert main.calls == 0

    def test_scheduling_retries_sleep_between_attempts(self, build, make_job):
        sleeps = []
        smoke = make_job("smoke", rejections=100)
        orch = _orchestrator(triggers(pre="smoke"), FakeMain(), smoke, sleep=sleeps.append)
        with pytest.raises(SchedulingFailedError):
            orch.run(build)
        assert sleeps == [1, 1]

    def test_post_error_keeps_matrix_outcome(self, build, make_job):
        cleanup = make_job("cleanup")
        orch = _orchestrator(
            triggers(post=gate("cleanup", inject="missing.properties")),
            FakeMain(Severity.UNSTABLE),
            cleanup,
        )
        with pytest.raises(ArtifactNotFoundError):
            orch.run(build)
        assert [(o.phase, o.result) for o in orch.outcomes] == [(Phase.MAIN, Severity.UNSTABLE)]

    def test_execute_marks_build_failed_with_cause(self, build, make_job):
        cleanup = make_job("cleanup", rejections=100)
        orch = _orchestrator(triggers(post="cleanup"), FakeMain(Severity.SUCCESS), cleanup)

        assert orch.execute(build) is Severity.FAILURE
        assert build.result is Severity.FAILURE
        assert build.failure_cause == "matrix #7 was unable to schedule cleanup."
        assert isinstance(orch.error, SchedulingFailedError)
        assert build.log.lines[-1] == "ERROR: matrix #7 was unable to schedule cleanup."

    def test_execute_records_result(self, build, make_job):
        orch = _orchestrator(triggers(), FakeMain(Severity.UNSTABLE))
        assert orch.execute(build) is Severity.UNSTABLE
        assert build.result is Severity.UNSTABLE
        assert build.failure_cause is None


class TestCancellation:

    def test_cancelled_matrix_skips_post(self, build, make_job):
        cleanup = make_job("cleanup")
        orch = _orchestrator(triggers(post="cleanup"), FakeMain(error=KeyboardInterrupt()), cleanup)
        with pytest.raises(KeyboardInterrupt):
            orch.run(build)
        assert cleanup.calls == []

    def test_cancelled_wait_propagates_and_aborts(self, build, make_job):
        smoke = make_job("smoke", complete=CancelledError())
        main = FakeMain()
        orch = _orchestrator(triggers(pre="smoke"), main, smoke)

        with pytest.raises(CancelledError):
            orch.execute(build)
        assert main.calls == 0
        assert build.result is Severity.ABORTED
        assert len(smoke.calls) == 1
