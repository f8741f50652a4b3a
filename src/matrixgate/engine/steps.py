# steps.py
from __future__ import annotations

import os
import signal
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Set

from ..model import Job, Severity, Step


@dataclass
class StepFailure(Exception):
    job: str
    step: str
    cmd: str
    exit_code: int

    def __str__(self) -> str:
        return f"[{self.job}] step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"


class StepProcesses:
    """
    Child processes of the steps currently running.

    After terminate() every live step is killed and no new step starts.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._procs: Set[subprocess.Popen] = set()
        self.cancelled = False

    def spawn(self, cmd: str, **kwargs) -> Optional[subprocess.Popen]:
        with self._lock:
            if self.cancelled:
                return None
            proc = subprocess.Popen(cmd, start_new_session=(os.name == "posix"), **kwargs)
            self._procs.add(proc)
            return proc

    def release(self, proc: subprocess.Popen) -> None:
        with self._lock:
            self._procs.discard(proc)

    def terminate(self) -> None:
        with self._lock:
            self.cancelled = True
            procs = list(self._procs)
        for proc in procs:
            _terminate(proc)


def _terminate(proc: subprocess.Popen) -> None:
    if proc.poll() is not None:
        return
    if os.name != "posix":
        proc.terminate()
        return
    # shell steps fork; kill the whole session
    try:
        os.killpg(proc.pid, signal.SIGTERM)
    except ProcessLookupError:
        pass


def _run_step(
    job: Job,
    step: Step,
    root: Path,
    env: Mapping[str, str],
    processes: StepProcesses,
) -> Optional[subprocess.CompletedProcess]:
    cwd = (root / (step.cwd or ".")).resolve()
    if not cwd.exists():
        raise FileNotFoundError(f"[{job.name}] step '{step.name}' cwd not found: {cwd}")

    proc = processes.spawn(
        step.run,
        shell=True,
        cwd=str(cwd),
        env=dict(env),
        text=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    if proc is None:
        return None
    try:
        stdout, stderr = proc.communicate()
    finally:
        processes.release(proc)
    return subprocess.CompletedProcess(step.run, proc.returncode, stdout, stderr)


def step_environment(job: Job, *layers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """process env < job.env < each extra layer, all values as str"""
    env = os.environ.copy()
    env.update(job.env or {})
    for layer in layers:
        if layer:
            env.update({k: str(v) for k, v in layer.items()})
    return env


def run_steps(
    job: Job,
    root: Path,
    env: Mapping[str, str],
    output: Callable[[str], None],
    processes: Optional[StepProcesses] = None,
) -> Severity:
    """
    Run job's steps in order.

    Exit 0 continues, an exit code in job.unstable_exit_codes marks the job
    UNSTABLE and continues, anything else stops with FAILURE. Steps stopped
    through `processes` make the job ABORTED.
    """
    if processes is None:
        processes = StepProcesses()

    result = Severity.SUCCESS
    for step in job.steps:
        output(f"[{job.name}] ▶ {step.name}")
        proc = _run_step(job, step, root, env, processes)
        if proc is None or processes.cancelled:
            output(f"[{job.name}] step '{step.name}' aborted")
            return Severity.ABORTED
        if proc.stdout:
            output(proc.stdout.rstrip("\n"))
        if proc.stderr:
            output(proc.stderr.rstrip("\n"))

        if proc.returncode == 0:
            continue
        if proc.returncode in (job.unstable_exit_codes or []):
            output(f"[{job.name}] step '{step.name}' marked the build unstable (exit={proc.returncode})")
            result = Severity.UNSTABLE
            continue

        output(str(StepFailure(job.name, step.name, step.run, proc.returncode)))
        return Severity.FAILURE
    return result
