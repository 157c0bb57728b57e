"""
Fire-and-forget boundary that starts exactly one orchestration run per job.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from storygem.common.errors import JobAlreadyRunningError

logger = logging.getLogger(__name__)

JobRunner = Callable[[str], Awaitable[object]]


class JobDispatcher:
    """
    Spawns one asyncio task per job and tracks it until it finishes.

    Callers learn the outcome only through the job store; the task's return
    value is discarded. A second dispatch for a job whose run is still active
    is refused.
    """

    def __init__(self, runner: JobRunner) -> None:
        self._runner = runner
        self._tasks: dict[str, asyncio.Task[object]] = {}

    @property
    def active_job_ids(self) -> frozenset[str]:
        return frozenset(self._tasks)

    def is_running(self, job_id: str) -> bool:
        return job_id in self._tasks

    def dispatch(self, job_id: str) -> asyncio.Task[object]:
        if job_id in self._tasks:
            raise JobAlreadyRunningError(job_id)

        task = asyncio.create_task(self._runner(job_id), name=f"story-job:{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda done: self._finished(job_id, done))
        logger.info("Dispatched story job %s", job_id)
        return task

    async def drain(self) -> None:
        """Wait for every run started so far, including ones started while waiting."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    def _finished(self, job_id: str, task: asyncio.Task[object]) -> None:
        self._tasks.pop(job_id, None)
        if task.cancelled():
            logger.warning("Story job %s run was cancelled", job_id)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Story job %s run ended with an unhandled error", job_id, exc_info=exc)
