"""
Sweep that fails jobs left in ``processing`` after their run died.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from .models import Job, JobStatus, utcnow
from .store import JobStore

logger = logging.getLogger(__name__)

STUCK_JOB_SUMMARY = "Story generation did not finish in time. Please try again."


async def reconcile_stuck_jobs(
    store: JobStore,
    *,
    max_age: timedelta,
    now: datetime | None = None,
    active_job_ids: frozenset[str] | set[str] = frozenset(),
) -> list[str]:
    """
    Mark every ``processing`` job older than ``max_age`` as failed.

    Jobs listed in ``active_job_ids`` still have a live run in this process and
    are left alone. Returns the ids of the jobs that were failed.
    """
    current_time = now or utcnow()
    failed: list[str] = []

    for job in await store.list_by_status(JobStatus.PROCESSING):
        if job.id in active_job_ids:
            continue
        started = job.started_at or job.updated_at
        if current_time - started < max_age:
            continue

        def _fail(record: Job) -> None:
            if record.status is JobStatus.PROCESSING:
                record.mark_failed(STUCK_JOB_SUMMARY)

        updated = await store.update(job.id, _fail)
        if updated.status is JobStatus.FAILED:
            logger.warning("Failed stuck story job %s (processing since %s)", job.id, started)
            failed.append(job.id)

    return failed
