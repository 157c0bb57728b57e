"""
Job record stores: the single source of truth for story job status.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Iterable, TypeVar

import yaml

from storygem.common.errors import DuplicateJobError, JobNotFoundError

from .models import Job, JobStatus

logger = logging.getLogger(__name__)

JobMutation = Callable[[Job], None]
T = TypeVar("T")


class JobStore(ABC):
    """
    Async job repository.

    Every read returns an independent snapshot; ``update`` applies a mutation
    to a private copy and swaps it in under the store lock, so readers never
    observe a half-applied multi-field write.
    """

    #: Whether ``_load``, ``_save`` and ``_iter_jobs`` touch disk and must run off the event loop.
    blocking_io = False

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    async def insert(self, job: Job) -> Job:
        async with self._lock:
            if await self._io(self._load, job.id) is not None:
                raise DuplicateJobError(job.id)
            await self._io(self._save, job.copy())
        logger.info("Created story job %s for owner %s", job.id, job.owner_id)
        return job.copy()

    async def get(self, job_id: str) -> Job:
        job = await self._io(self._load, job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def update(self, job_id: str, mutate: JobMutation) -> Job:
        async with self._lock:
            current = await self._io(self._load, job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            mutate(current)
            await self._io(self._save, current)
        return current.copy()

    async def list_for_owner(self, owner_id: str) -> list[Job]:
        jobs = [job for job in await self._io(self._iter_jobs) if job.owner_id == owner_id]
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)

    async def list_by_status(self, status: JobStatus) -> list[Job]:
        jobs = [job for job in await self._io(self._iter_jobs) if job.status is status]
        return sorted(jobs, key=lambda job: job.created_at)

    async def list_samples(self) -> list[Job]:
        jobs = [
            job
            for job in await self._io(self._iter_jobs)
            if job.is_free and job.status is JobStatus.COMPLETE
        ]
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)

    @abstractmethod
    def _load(self, job_id: str) -> Job | None:
        """Return a fresh copy of the stored record, or None."""

    @abstractmethod
    def _save(self, job: Job) -> None:
        """Replace the stored record in a single step."""

    @abstractmethod
    def _iter_jobs(self) -> Iterable[Job]:
        """Yield fresh copies of every stored record."""

    async def _io(self, fn: Callable[..., T], *args: Any) -> T:
        if self.blocking_io:
            return await asyncio.to_thread(fn, *args)
        return fn(*args)


class InMemoryJobStore(JobStore):
    """Process-local store, used by tests and single-process development runs."""

    def __init__(self) -> None:
        super().__init__()
        self._jobs: dict[str, Job] = {}

    def _load(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return job.copy() if job is not None else None

    def _save(self, job: Job) -> None:
        self._jobs[job.id] = job.copy()

    def _iter_jobs(self) -> Iterable[Job]:
        return [job.copy() for job in list(self._jobs.values())]


class YamlJobStore(JobStore):
    """
    Durable store keeping one YAML document per job under ``root``.

    Writes go to a temporary file in the same directory followed by
    ``os.replace``, so a reader sees either the previous or the new document.
    """

    blocking_io = True

    def __init__(self, root: Path | str) -> None:
        super().__init__()
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, job_id: str) -> Path:
        if not job_id or "/" in job_id or "\\" in job_id or job_id.startswith("."):
            raise JobNotFoundError(job_id)
        return self._root / f"{job_id}.yaml"

    def _load(self, job_id: str) -> Job | None:
        path = self._path_for(job_id)
        if not path.exists():
            return None
        return self._read(path)

    def _save(self, job: Job) -> None:
        path = self._path_for(job.id)
        text = yaml.safe_dump(job.to_dict(), sort_keys=False, allow_unicode=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=f".{job.id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _iter_jobs(self) -> Iterable[Job]:
        return [self._read(path) for path in sorted(self._root.glob("*.yaml"))]

    @staticmethod
    def _read(path: Path) -> Job:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Job record at '{path}' must deserialize to a mapping.")
        return Job.from_dict(data)
