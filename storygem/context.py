"""
Explicit wiring of StoryGem collaborators, passed to whoever needs them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from storygem.ai_generation import ReplicateImageGenerator
from storygem.config import StoryGemSettings
from storygem.intake import IntakeService
from storygem.jobs import JobStore, StatusPoller, YamlJobStore, reconcile_stuck_jobs
from storygem.pdf_generation import StorybookPDFBuilder
from storygem.pipeline import JobDispatcher, ProgressCallback, StorybookOrchestrator
from storygem.pipeline.orchestrator import DocumentRenderer, IllustrationSource, NarrativeSource
from storygem.storage import LocalObjectStorage, ObjectStorage
from storygem.story_generation import NarrativeGenerator


@dataclass
class AppContext:
    """Everything a request handler or script needs, built once per process."""

    settings: StoryGemSettings
    store: JobStore
    storage: ObjectStorage
    intake: IntakeService
    orchestrator: StorybookOrchestrator
    dispatcher: JobDispatcher
    poller: StatusPoller

    async def reconcile(self) -> list[str]:
        return await reconcile_stuck_jobs(
            self.store,
            max_age=timedelta(minutes=self.settings.stuck_job_minutes),
            active_job_ids=self.dispatcher.active_job_ids,
        )


def build_context(
    settings: StoryGemSettings,
    *,
    store: JobStore | None = None,
    storage: ObjectStorage | None = None,
    narrative_generator: NarrativeSource | None = None,
    illustration_generator: IllustrationSource | None = None,
    assembler: DocumentRenderer | None = None,
    progress_callback: ProgressCallback | None = None,
) -> AppContext:
    """
    Assemble the default collaborators, letting callers substitute any of them.
    """
    store = store or YamlJobStore(settings.jobs_dir)
    storage = storage or LocalObjectStorage(settings.objects_dir, settings.public_base_url)

    if narrative_generator is None:
        narrative_generator = NarrativeGenerator(
            model=settings.story_model,
            api_key=settings.story_api_key,
            timeout=settings.text_timeout,
            max_narration_chars=settings.max_narration_chars,
            retry_delays=settings.retry_delays,
        )
    if illustration_generator is None:
        illustration_generator = ReplicateImageGenerator(
            api_token=settings.replicate_api_token,
            model_identifier=settings.image_model,
            retry_delays=settings.retry_delays,
        )
    if assembler is None:
        assembler = StorybookPDFBuilder(
            font_path=settings.font_path,
            request_timeout=settings.image_fetch_timeout,
        )

    orchestrator = StorybookOrchestrator(
        store=store,
        narrative_generator=narrative_generator,
        illustration_generator=illustration_generator,
        assembler=assembler,
        storage=storage,
        settings=settings,
        progress_callback=progress_callback,
    )
    return AppContext(
        settings=settings,
        store=store,
        storage=storage,
        intake=IntakeService(store=store, storage=storage, settings=settings),
        orchestrator=orchestrator,
        dispatcher=JobDispatcher(orchestrator.run),
        poller=StatusPoller(store),
    )
