# matrixgate_workflow.py
# Example: a smoke gate before the test matrix, a cleanup gate after it.
from __future__ import annotations

from matrixgate import gate, job, matrix, param, sh, triggers, wf

JOBS = wf(
    job(
        "smoke",
        sh("Check interpreter", "python3 --version"),
        sh("Write handoff", 'echo "SMOKE_TARGET=$TARGET" > "$ARTIFACTS_DIR/out.properties"'),
        parameters=[param("TARGET", "local"), param("VERBOSE", "false")],
    ),
    job(
        "cleanup",
        sh("Report", 'echo "cleaning up after build $UPSTREAM_BUILD"'),
        parameters=[param("UPSTREAM_BUILD", None)],
    ),
)

MATRIX = matrix("py", ["3.10", "3.11", "3.12"]).jobs(
    lambda v: job(
        f"test-py{v}",
        sh("Show handoff", f'echo "py{v} against $SMOKE_TARGET"'),
    )
)

TRIGGERS = triggers(
    pre=gate("smoke", "TARGET=staging-$BUILD_NUMBER", inject="out.properties"),
    post=gate("cleanup", "UPSTREAM_BUILD=$BUILD_NUMBER"),
    post_fail_if_downstream_fails=True,
)
