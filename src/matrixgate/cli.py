# cli.py
from __future__ import annotations

import sys
from pathlib import Path

import click

from matrixgate.config import load_trigger_config
from matrixgate.engine.local import LocalBuild
from matrixgate.errors import GateError
from matrixgate.model import Severity
from matrixgate.runner import load_workflow, plan_gates, run_workflow
from matrixgate.settings import MATRIXGATE_HOME, NUM_RETRIES, RETRY_BACKOFF_SECONDS
from matrixgate.ui.console import Console, get_console, set_console

DEFAULT_WORKFLOW = "matrixgate_workflow.py"

EXIT_CODES = {
    Severity.SUCCESS: 0,
    Severity.UNSTABLE: 2,
}


def find_workflow_files(root: Path = Path(".")) -> list[Path]:
    """Every *_workflow.py in `root`, matrixgate_workflow.py included."""
    return sorted(root.glob("*_workflow.py"))


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Resolve the workflow holding the matrix and its gate jobs.

    An explicit --workflow may omit the .py suffix. Without one, the current
    directory must hold exactly one workflow file; anything else exits 1.
    """
    console = get_console()

    if workflow_arg:
        path = Path(workflow_arg)
        if not path.exists() and path.suffix != ".py":
            path = path.with_name(path.name + ".py")
        if path.exists():
            return path
        console.print_error(
            "Workflow file not found",
            f"No workflow at {workflow_arg}",
            suggestion="Pass the file that defines JOBS, MATRIX and TRIGGERS:\n  matrixgate run --workflow ci_workflow.py",
        )
        sys.exit(1)

    candidates = find_workflow_files()
    if len(candidates) == 1:
        return candidates[0]

    if not candidates:
        console.print_error(
            "No workflow file found",
            "Nothing defines the matrix or its gate jobs here.",
            details=["Looked for:", f"  {DEFAULT_WORKFLOW}", "  *_workflow.py"],
            suggestion=f"Create {DEFAULT_WORKFLOW}, or pass one:\n  matrixgate run --workflow ci_workflow.py",
        )
    else:
        console.print_error(
            "Multiple workflow files found",
            "Cannot tell which workflow gates this build:",
            details=[str(p) for p in candidates],
            suggestion=f"Pick one explicitly:\n  matrixgate run --workflow {candidates[0]}",
        )
    sys.exit(1)


def _load(ctx, workflow: str | None, config: str | None):
    console = get_console()
    workflow_path = discover_workflow(workflow)
    try:
        wf = load_workflow(workflow_path)
        triggers = load_trigger_config(config) if config else wf.triggers
    except GateError as e:
        console.print_error("Invalid trigger configuration", e.message)
        sys.exit(1)
    except Exception as e:
        console.print_error(
            "Failed to load workflow",
            f"Could not load workflow from {workflow_path}",
            details=[str(e)],
        )
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(1)
    return wf, triggers


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.option("--quiet", is_flag=True, default=False, help="Don't echo the build log")
@click.pass_context
def cli(ctx, debug, quiet):
    """matrixgate: run gate jobs before and after a matrix build."""
    console = Console(debug=debug, quiet=quiet)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option(
    "--workflow",
    default=None,
    help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} if present)",
)
@click.option("--config", default=None, help="Trigger configuration JSON (overrides TRIGGERS)")
@click.option("--workers", default=None, type=int, help="Number of parallel workers")
@click.option("--retries", default=NUM_RETRIES, show_default=True, type=int, help="Scheduling attempts per gate job")
@click.option("--backoff", default=RETRY_BACKOFF_SECONDS, show_default=True, type=float, help="Seconds between scheduling attempts")
@click.option("--home", default=MATRIXGATE_HOME, show_default=True, help="Directory for gate job runs and artifacts")
@click.option("--build-name", default=None, help="Parent build name (defaults to the workflow file stem)")
@click.option("--build-number", default=1, show_default=True, type=int, help="Parent build number")
@click.option("--fail-fast/--no-fail-fast", default=True, help="Stop scheduling configurations after first failure")
@click.pass_context
def run(ctx, workflow, config, workers, retries, backoff, home, build_name, build_number, fail_fast):
    """Run a matrix workflow wrapped in its gate jobs."""
    console = get_console()
    wf, triggers = _load(ctx, workflow, config)

    build = LocalBuild(build_name or wf.path.stem, build_number)
    console.print_run_started(
        build=build.full_display_name,
        workflow=wf.path.name,
        pre_job=triggers.pre_job.name,
        post_job=triggers.post_job.name,
        configurations=len(wf.matrix),
    )

    options = {}
    if workers is not None:
        options["max_workers"] = workers

    try:
        orchestrator, build = run_workflow(
            wf,
            triggers=triggers,
            build=build,
            home=home,
            max_retries=retries,
            backoff=backoff,
            fail_fast=fail_fast,
            **options,
        )
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)

    console.print_results(orchestrator.outcomes, build.result, build.failure_cause)
    sys.exit(EXIT_CODES.get(build.result, 1))


@cli.command()
@click.option(
    "--workflow",
    default=None,
    help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} if present)",
)
@click.option("--config", default=None, help="Trigger configuration JSON (overrides TRIGGERS)")
@click.pass_context
def check(ctx, workflow, config):
    """Resolve gate jobs and parameters without scheduling anything."""
    console = get_console()
    wf, triggers = _load(ctx, workflow, config)
    build = LocalBuild(wf.path.stem, echo=False)

    try:
        rows = plan_gates(wf, build, triggers)
    except GateError as e:
        console.print_error(e.kind, e.message, details=[f"{k}={v}" for k, v in e.details.items()] or None)
        sys.exit(1)

    console.print_header("PLAN")
    for phase, name, detail in rows:
        console.print_plan_job(phase, name, detail)
    console.print_plan_job("main", f"{len(wf.matrix)} configuration(s)", ", ".join(j.name for j in wf.matrix) or "none")


if __name__ == "__main__":
    cli()
