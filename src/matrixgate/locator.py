# locator.py
from __future__ import annotations

from typing import Callable, Iterable

from .engine.base import JobHandle
from .errors import JobDisabledError, JobNotFoundError


class JobLocator:
    """
    Resolves a job name to a runnable job.

    Takes a callable returning every known job, so lookups always see the
    engine's current definitions. Names are expected to be unique; the
    first exact match wins.
    """

    def __init__(self, jobs: Callable[[], Iterable[JobHandle]]):
        self._jobs = jobs

    def find(self, name: str) -> JobHandle:
        for candidate in self._jobs():
            if candidate.name == name:
                return candidate
        raise JobNotFoundError(name)

    def locate(self, name: str) -> JobHandle:
        """
        Raises:
            JobNotFoundError: no job with that name
            JobDisabledError: job exists but is disabled
        """
        job = self.find(name)
        if job.disabled:
            raise JobDisabledError(name, job.full_display_name)
        return job
