# runner.py
from __future__ import annotations

import runpy
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .engine.local import LocalBuild, LocalEngine
from .engine.matrix import MatrixExecution
from .model import Job, TriggerConfig
from .orchestrator import PhaseOrchestrator
from .parameters import parse_parameters
from .properties import expand_variables
from .settings import MATRIXGATE_HOME, NUM_RETRIES, QUEUE_SIZE, RETRY_BACKOFF_SECONDS, WORKERS


@dataclass
class Workflow:
    path: Path
    jobs: List[Job]                       # triggerable gate jobs
    matrix: List[Job]                     # main-phase configurations
    triggers: TriggerConfig = field(default_factory=TriggerConfig)


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def _lookup(globals_dict: Dict[str, Any], constant: str, factory: str) -> Any:
    fn = globals_dict.get(factory)
    if callable(fn):
        return fn()
    return globals_dict.get(constant)


def _job_list(value: Any, what: str, wf_path: Path) -> List[Job]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(j, Job) for j in value):
        raise TypeError(f"{wf_path.name}: {what} must be a List[Job].")
    return value


def load_workflow(path: str | Path) -> Workflow:
    """
    Load a workflow from a python file path.

    The file may define (constant or factory function):
      - JOBS = [Job, ...]        or gate_jobs() -> List[Job]
      - MATRIX = [Job, ...]      or matrix_jobs() -> List[Job]
      - TRIGGERS = TriggerConfig or trigger_config() -> TriggerConfig
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise ValueError(f"Workflow must be a .py file, got: {wf_path.name}")

    module_name = f"matrixgate_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    jobs = _job_list(_lookup(globals_dict, "JOBS", "gate_jobs"), "JOBS", wf_path)
    matrix = _job_list(_lookup(globals_dict, "MATRIX", "matrix_jobs"), "MATRIX", wf_path)

    triggers = _lookup(globals_dict, "TRIGGERS", "trigger_config")
    if triggers is None:
        triggers = TriggerConfig()
    if not isinstance(triggers, TriggerConfig):
        raise TypeError(f"{wf_path.name}: TRIGGERS must be a TriggerConfig (see matrixgate.triggers).")

    if not jobs and not matrix:
        raise TypeError(f"{wf_path.name} defines neither JOBS nor MATRIX.")

    return Workflow(path=wf_path, jobs=jobs, matrix=matrix, triggers=triggers)


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def plan_gates(workflow: Workflow, build: LocalBuild, triggers: Optional[TriggerConfig] = None) -> List[Tuple[str, str, str]]:
    """
    Resolve the configured gates without scheduling anything.

    Returns (phase, job name, detail) rows.

    Raises:
        ConfigurationError: a gate job is missing or disabled
        ParseError: a gate's parameter text is malformed
    """
    triggers = triggers or workflow.triggers
    with LocalEngine(workflow.jobs, max_workers=1) as engine:
        locator = engine.locator()
        rows: List[Tuple[str, str, str]] = []
        for phase, spec in (("pre", triggers.pre_job), ("post", triggers.post_job)):
            if not spec.enabled:
                rows.append((phase, "-", "disabled"))
                continue
            job = locator.locate(spec.name)
            params = parse_parameters(
                expand_variables(spec.parameters_text, build.environment()),
                job.parameter_definitions,
            )
            detail = ", ".join(f"{k}={v}" for k, v in params.items()) or "no parameters"
            if spec.properties_file_to_inject:
                detail += f"; inject {spec.properties_file_to_inject}"
            rows.append((phase, spec.name, detail))
    return rows


def run_workflow(
    workflow: Workflow,
    *,
    triggers: Optional[TriggerConfig] = None,
    build: Optional[LocalBuild] = None,
    repo_root: str | Path = ".",
    home: str | Path = MATRIXGATE_HOME,
    max_workers: int = WORKERS,
    max_queue: int = QUEUE_SIZE,
    max_retries: int = NUM_RETRIES,
    backoff: float = RETRY_BACKOFF_SECONDS,
    fail_fast: bool = True,
    sleep: Callable[[float], None] = time.sleep,
) -> Tuple[PhaseOrchestrator, LocalBuild]:
    """
    Run the workflow's matrix wrapped in its gates on the local engine.

    The build's result (and failure cause, if any) is recorded on the
    returned LocalBuild.
    """
    triggers = triggers or workflow.triggers
    build = build or LocalBuild(workflow.path.stem)

    main = MatrixExecution(
        workflow.matrix,
        repo_root=repo_root,
        max_workers=max_workers,
        fail_fast=fail_fast,
    )
    with LocalEngine(
        workflow.jobs,
        repo_root=repo_root,
        home=home,
        max_workers=max_workers,
        max_queue=max_queue,
    ) as engine:
        orchestrator = PhaseOrchestrator(
            triggers,
            main,
            engine.locator(),
            max_retries=max_retries,
            backoff=backoff,
            sleep=sleep,
        )
        orchestrator.execute(build)
    return orchestrator, build

