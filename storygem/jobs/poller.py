"""
Read-only projections of the job store that clients poll for progress.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from storygem.common.errors import JobNotFoundError

from .models import Job, JobStatus, PageRecord
from .store import JobStore


@dataclass(frozen=True)
class StatusView:
    job_id: str
    status: JobStatus
    error_summary: str | None = None
    artifact_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "error_summary": self.error_summary,
            "artifact_url": self.artifact_url,
        }


@dataclass(frozen=True)
class JobSummary:
    job_id: str
    title: str
    status: JobStatus
    artifact_url: str | None
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "title": self.title,
            "status": self.status.value,
            "artifact_url": self.artifact_url,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class StoryView:
    """Full story as shown to its reader. Pages and artifact appear only once complete."""

    job_id: str
    title: str
    status: JobStatus
    child_name: str
    genre: str
    pages: tuple[PageRecord, ...]
    artifact_url: str | None
    error_summary: str | None
    created_at: str
    is_free: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "title": self.title,
            "status": self.status.value,
            "child_name": self.child_name,
            "genre": self.genre,
            "pages": [page.to_dict() for page in self.pages],
            "artifact_url": self.artifact_url,
            "error_summary": self.error_summary,
            "created_at": self.created_at,
            "is_free": self.is_free,
        }


class StatusPoller:
    """
    Pure-read facade over a :class:`JobStore`. Nothing here ever writes a record.
    """

    def __init__(self, store: JobStore) -> None:
        self._store = store

    async def get_status(self, job_id: str, owner_id: str) -> StatusView:
        job = await self._owned_job(job_id, owner_id)
        return StatusView(
            job_id=job.id,
            status=job.status,
            error_summary=job.error_summary if job.status is JobStatus.FAILED else None,
            artifact_url=job.artifact_url if job.status is JobStatus.COMPLETE else None,
        )

    async def get_story(self, job_id: str, owner_id: str | None) -> StoryView:
        """
        Return the story to its owner, or to anyone at all once it is a published sample.

        ``owner_id`` is None for anonymous readers.
        """
        job = await self._store.get(job_id)
        if job.owner_id != owner_id and not _is_public_sample(job):
            raise JobNotFoundError(job_id)
        complete = job.status is JobStatus.COMPLETE
        return StoryView(
            job_id=job.id,
            title=job.inputs.display_title,
            status=job.status,
            child_name=job.inputs.child_name,
            genre=job.inputs.genre,
            pages=job.pages if complete else (),
            artifact_url=job.artifact_url if complete else None,
            error_summary=job.error_summary if job.status is JobStatus.FAILED else None,
            created_at=job.created_at.isoformat(),
            is_free=job.is_free,
        )

    async def list_jobs(self, owner_id: str) -> list[JobSummary]:
        """The owner's own stories, newest first. Published samples are listed separately."""
        jobs = await self._store.list_for_owner(owner_id)
        return [_summarize(job) for job in jobs if not job.is_free]

    async def list_samples(self) -> list[JobSummary]:
        return [_summarize(job) for job in await self._store.list_samples()]

    async def _owned_job(self, job_id: str, owner_id: str) -> Job:
        job = await self._store.get(job_id)
        if job.owner_id != owner_id:
            # Foreign jobs are indistinguishable from missing ones.
            raise JobNotFoundError(job_id)
        return job


def _is_public_sample(job: Job) -> bool:
    return job.is_free and job.status is JobStatus.COMPLETE


def _summarize(job: Job) -> JobSummary:
    return JobSummary(
        job_id=job.id,
        title=job.inputs.display_title,
        status=job.status,
        artifact_url=job.artifact_url if job.status is JobStatus.COMPLETE else None,
        created_at=job.created_at.isoformat(),
    )
