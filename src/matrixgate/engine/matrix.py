# matrix.py
# The main phase: every matrix configuration, run as a DAG on a thread pool.
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Set, Tuple

from ..aggregate import worst
from ..model import Job, Severity
from ..settings import WORKERS
from .base import ParentBuild
from .steps import StepProcesses, run_steps, step_environment


def _build_graph(jobs: List[Job]) -> Tuple[Dict[str, Job], Dict[str, Set[str]], Dict[str, int]]:
    by_name: Dict[str, Job] = {}
    for j in jobs:
        if j.name in by_name:
            raise ValueError(f"Duplicate configuration name: {j.name}")
        by_name[j.name] = j

    adj: Dict[str, Set[str]] = {name: set() for name in by_name}   # dep -> dependents
    indeg: Dict[str, int] = {name: 0 for name in by_name}          # in-degree per job

    for j in jobs:
        for d in j.needs or []:
            if d not in by_name:
                raise ValueError(f"Configuration '{j.name}' depends on missing configuration '{d}'")
            adj[d].add(j.name)
            indeg[j.name] += 1

    return by_name, adj, indeg


def run_matrix(
    jobs: List[Job],
    *,
    env: Mapping[str, str],
    output: Callable[[str], None],
    repo_root: str | Path = ".",
    max_workers: int = WORKERS,
    fail_fast: bool = True,
) -> Dict[str, Severity]:
    """
    Run configurations in dependency order, in parallel where possible.

    A configuration's dependents are unlocked only if it finished better
    than FAILURE. Configurations that never ran are reported NOT_BUILT.
    An interrupt kills running steps and drops configurations not yet started.
    """
    repo_root_p = Path(repo_root).resolve()
    by_name, adj, indeg = _build_graph(jobs)
    ready: List[str] = [name for name, deg in indeg.items() if deg == 0]
    results: Dict[str, Severity] = {}
    failed = False
    processes = StepProcesses()

    def _run(job: Job) -> Severity:
        return run_steps(job, repo_root_p, step_environment(job, env, job.env), output, processes)

    in_flight: Dict = {}

    pool = ThreadPoolExecutor(max_workers=max(1, max_workers))
    try:
        while ready or in_flight:
            # schedule all currently ready
            while ready and not (fail_fast and failed):
                name = ready.pop()
                fut = pool.submit(_run, by_name[name])
                in_flight[fut] = name

            if not in_flight:
                break

            # wait for one completion, then loop to schedule newly-ready jobs
            fut = next(as_completed(list(in_flight.keys())))
            name = in_flight.pop(fut)

            try:
                results[name] = fut.result()
            except Exception as e:
                results[name] = Severity.FAILURE
                output(str(e))

            if results[name].is_better_than(Severity.FAILURE):
                for nxt in adj[name]:
                    indeg[nxt] -= 1
                    if indeg[nxt] == 0:
                        ready.append(nxt)
            else:
                failed = True
    except BaseException:
        processes.terminate()
        pool.shutdown(wait=False, cancel_futures=True)
        raise
    pool.shutdown()

    for name in by_name:
        results.setdefault(name, Severity.NOT_BUILT)
    return results


class MatrixExecution:
    """
    Main phase over a fixed set of configurations. Each configuration sees
    the parent build's environment, including properties injected by the
    pre job.
    """

    def __init__(
        self,
        jobs: List[Job],
        *,
        repo_root: str | Path = ".",
        max_workers: int = WORKERS,
        fail_fast: bool = True,
    ):
        self.jobs = list(jobs)
        self.repo_root = repo_root
        self.max_workers = max_workers
        self.fail_fast = fail_fast
        self.results: Dict[str, Severity] = {}

    def __call__(self, build: ParentBuild) -> Severity:
        log = build.log
        log.println(f"Running {len(self.jobs)} configuration(s)")
        self.results = run_matrix(
            self.jobs,
            env=build.environment(),
            output=log.println,
            repo_root=self.repo_root,
            max_workers=self.max_workers,
            fail_fast=self.fail_fast,
        )
        for name, result in self.results.items():
            log.println(f"Configuration {name}: {result}")
        # configurations that never ran stay out of the result
        return worst(*(r for r in self.results.values() if r is not Severity.NOT_BUILT))
