# src/matrixgate/dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional

from .model import Job, JobSpec, ParameterDefinition, Step, TriggerConfig


# ---------------------------------------------------------------------
# Step / parameter helpers
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, cwd=cwd)


def param(name: str, default: Optional[str] = "", description: str = "") -> ParameterDefinition:
    """Declare a job parameter. default=None: no default, never injected."""
    return ParameterDefinition(name=name, default=default, description=description)


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    steps_list: Optional[List[Step]] = None,  # allow: job("x", steps_list=[...])
    needs: Optional[List[str]] = None,
    env: Optional[Dict[str, str]] = None,
    parameters: Optional[List[ParameterDefinition]] = None,
    artifacts: Optional[List[str]] = None,
    unstable_exit_codes: Optional[List[int]] = None,
    disabled: bool = False,
    display_name: str | None = None,
    cwd: str | None = None,  # default cwd applied to steps missing cwd
) -> Job:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise ValueError(f"job({name!r}) must have at least one step")

    if cwd is not None:
        steps_final = [s if s.cwd is not None else replace(s, cwd=cwd) for s in steps_final]

    names = [p.name for p in parameters or []]
    if len(set(names)) != len(names):
        raise ValueError(f"job({name!r}) declares a parameter twice: {names}")

    return Job(
        name=name,
        steps=steps_final,
        needs=needs or [],
        env={k: str(v) for k, v in (env or {}).items()},
        parameters=list(parameters or []),
        artifacts=list(artifacts or []),
        unstable_exit_codes=list(unstable_exit_codes or []),
        disabled=disabled,
        display_name=display_name,
    )


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

class Matrix:
    """
    Minimal matrix expander.

    Example:
        matrix("py", ["3.10","3.11"]).jobs(
            lambda v: job(f"test-py{v}", sh(...))
        )
    """
    def __init__(self, key: str, values: Iterable[Any]):
        self.key = key
        self.values = list(values)

    def jobs(self, builder: Callable[[Any], Job]) -> List[Job]:
        return [builder(v) for v in self.values]


def matrix(key: str, values: Iterable[Any]) -> Matrix:
    return Matrix(key, values)


# ---------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------

def gate(name: str, parameters: str = "", *, inject: str = "") -> JobSpec:
    """
    A gate job reference.

        gate("smoke", "TARGET=$BUILD_NUMBER", inject="out.properties")
    """
    return JobSpec(name=name, parameters_text=parameters, properties_file_to_inject=inject)


def triggers(
    pre: JobSpec | str | None = None,
    post: JobSpec | str | None = None,
    *,
    post_fail_if_downstream_fails: bool = False,
) -> TriggerConfig:
    """Pre/post gates around the matrix. Plain strings are job names."""
    if isinstance(pre, str):
        pre = gate(pre)
    if isinstance(post, str):
        post = gate(post)
    return TriggerConfig(
        pre_job=pre or JobSpec(),
        post_job=post or JobSpec(),
        post_fail_if_downstream_fails=post_fail_if_downstream_fails,
    )


# ---------------------------------------------------------------------
# Workflow helper
# ---------------------------------------------------------------------

def wf(*jobs: Job) -> List[Job]:
    """
    Job list helper.

        from matrixgate import wf, job, sh

        JOBS = wf(job("smoke", sh(...)), job("cleanup", sh(...)))
    """
    return list(jobs)
