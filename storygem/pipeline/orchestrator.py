"""
Drives one story job from ``pending`` to ``complete`` or ``failed``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Protocol, Sequence, TypeVar

from storygem.common.errors import IllustrationError, summarize_error
from storygem.config import StoryGemSettings
from storygem.jobs.models import Job, PageRecord, StoryInputs, StoryPage
from storygem.jobs.store import JobStore
from storygem.pdf_generation.builder import IllustratedPage
from storygem.storage.object_storage import STORYBOOK_BUCKET, ObjectStorage

logger = logging.getLogger(__name__)

T = TypeVar("T")
CANCELLED_SUMMARY = "Story generation was cancelled before it finished."
ProgressCallback = Callable[[str, dict[str, Any]], None]


class NarrativeSource(Protocol):
    async def generate(self, inputs: StoryInputs, *, page_count: int) -> list[StoryPage]:
        ...


class IllustrationSource(Protocol):
    async def generate_illustration(self, prompt: str, *, reference_image: Any = None) -> str:
        ...


class DocumentRenderer(Protocol):
    def render(self, pages: Sequence[IllustratedPage], *, title: str | None = None) -> bytes:
        ...


class StageTimeoutError(TimeoutError):
    """A pipeline stage exceeded its configured timeout."""


class StorybookOrchestrator:
    """
    High-level coordinator that chains narrative, illustration, and PDF stages for one job.

    The job is written to ``processing`` before any provider call. Every
    path after that ends in exactly one terminal write: ``complete`` with
    pages and artifact together, or ``failed`` with a short summary.
    """

    def __init__(
        self,
        *,
        store: JobStore,
        narrative_generator: NarrativeSource,
        illustration_generator: IllustrationSource,
        assembler: DocumentRenderer,
        storage: ObjectStorage,
        settings: StoryGemSettings,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self._store = store
        self._narrative_generator = narrative_generator
        self._illustration_generator = illustration_generator
        self._assembler = assembler
        self._storage = storage
        self._settings = settings
        self._progress_callback = progress_callback

    async def run(self, job_id: str) -> Job:
        """
        Execute the pipeline for ``job_id`` once.

        Raises InvalidStatusTransition if the job is not ``pending``; in that
        case nothing is written. A cancelled run is recorded as ``failed``
        before the cancellation propagates.
        """
        job = await self._store.update(job_id, Job.mark_processing)
        logger.info("Story job %s is processing", job_id)
        self._notify("job:processing", job_id=job_id)

        try:
            pages, artifact_url = await self._produce(job)
            finished = await self._store.update(
                job_id, lambda record: record.mark_complete(pages, artifact_url)
            )
        except asyncio.CancelledError:
            logger.warning("Story job %s was cancelled mid-run", job_id)
            await self._record_failure(job_id, CANCELLED_SUMMARY)
            raise
        except Exception as exc:
            logger.exception("Story job %s failed", job_id)
            return await self._record_failure(job_id, summarize_error(exc))

        logger.info("Story job %s complete: %s", job_id, artifact_url)
        self._notify("job:complete", job_id=job_id, artifact_url=artifact_url)
        return finished

    # ------------------------------------------------------------------ stages

    async def _produce(self, job: Job) -> tuple[list[PageRecord], str]:
        self._notify("narrative:generating", job_id=job.id)
        story_pages = await self._bounded(
            self._narrative_generator.generate(job.inputs, page_count=job.page_count),
            self._settings.text_timeout,
            "narrative generation",
        )
        if len(story_pages) != job.page_count:
            raise ValueError(
                f"Narrative produced {len(story_pages)} pages, expected {job.page_count}."
            )
        self._notify("narrative:ready", job_id=job.id, total_pages=len(story_pages))

        image_urls = await self._illustrate_all(job, story_pages)
        self._notify("illustrations:ready", job_id=job.id, total_pages=len(image_urls))

        records = [
            PageRecord(
                page_number=page.page_number,
                narration=page.narration,
                illustration_url=url,
            )
            for page, url in zip(story_pages, image_urls)
        ]

        self._notify("document:rendering", job_id=job.id)
        document = await self._bounded(
            asyncio.to_thread(
                self._assembler.render,
                [
                    IllustratedPage(
                        page_number=record.page_number,
                        narration=record.narration,
                        image_url=record.illustration_url,
                    )
                    for record in records
                ],
                title=job.inputs.display_title,
            ),
            self._settings.render_timeout,
            "document rendering",
        )

        self._notify("artifact:uploading", job_id=job.id, size=len(document))
        artifact_url = await self._bounded(
            self._storage.upload_and_get_url(
                STORYBOOK_BUCKET,
                f"{job.owner_id}/{job.id}.pdf",
                document,
                content_type="application/pdf",
                upsert=True,
            ),
            self._settings.upload_timeout,
            "artifact upload",
        )
        return records, artifact_url

    async def _illustrate_all(self, job: Job, pages: Sequence[StoryPage]) -> list[str]:
        """
        Fan out one illustration call per page and collect results by page position.

        The first failure cancels the calls still in flight and fails the job.
        """
        total_pages = len(pages)

        async def _illustrate(page: StoryPage) -> str:
            url = await self._bounded(
                self._illustration_generator.generate_illustration(
                    page.illustration_prompt,
                    reference_image=job.inputs.photo_url,
                ),
                self._settings.image_timeout,
                f"illustration for page {page.page_number}",
            )
            if not url:
                raise IllustrationError(f"No illustration returned for page {page.page_number}.")
            self._notify(
                "illustration:done",
                job_id=job.id,
                page_number=page.page_number,
                total_pages=total_pages,
            )
            return url

        tasks = [
            asyncio.create_task(_illustrate(page), name=f"{job.id}:page-{page.page_number}")
            for page in pages
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        # gather yields results in task order, not completion order.
        return list(results)

    # ------------------------------------------------------------------ helpers

    async def _record_failure(self, job_id: str, summary: str) -> Job:
        try:
            failed = await self._store.update(job_id, lambda record: record.mark_failed(summary))
        except Exception:
            logger.exception(
                "Could not record failure for story job %s; it stays processing until reconciled",
                job_id,
            )
            raise
        self._notify("job:failed", job_id=job_id, error_summary=summary)
        return failed

    @staticmethod
    async def _bounded(awaitable: Awaitable[T], timeout: float, stage: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except TimeoutError as exc:
            raise StageTimeoutError(f"{stage} timed out after {timeout:g}s") from exc

    def _notify(self, stage: str, **payload: Any) -> None:
        if self._progress_callback is not None:
            self._progress_callback(stage, payload)
