"""Pipeline orchestration tests.

Covers the run lifecycle end to end with provider fakes:
- Status written to processing before any provider call, then exactly one terminal write
- Page order preserved when illustrations finish out of order
- Malformed narratives, a single failed illustration, and timeouts all fail the job
- Rendering and upload failures fail the job without publishing pages
- Cancelling a run records it as failed
"""

import asyncio
from dataclasses import replace
from io import BytesIO

import pytest
from pypdf import PdfReader

from conftest import FakeCompletion, FakeIllustrator, story_json
from storygem.common.errors import AssemblyError, InvalidStatusTransition, StorageError
from storygem.jobs import Job, JobStatus
from storygem.pdf_generation import StorybookPDFBuilder
from storygem.pipeline.orchestrator import CANCELLED_SUMMARY
from storygem.storage import STORYBOOK_BUCKET, LocalObjectStorage


async def test_successful_run_completes_with_all_pages(
    make_orchestrator, store, storage, pending_job
):
    stages = []
    illustrator = FakeIllustrator()
    orchestrator = make_orchestrator(
        FakeCompletion(story_json(5)),
        illustrator,
        progress=lambda stage, payload: stages.append(stage),
    )

    finished = await orchestrator.run(pending_job.id)

    assert finished.status is JobStatus.COMPLETE
    assert len(finished.pages) == 5
    assert finished.pages[0].narration
    assert finished.artifact_url == (
        f"http://testserver/files/{STORYBOOK_BUCKET}/parent-1/{pending_job.id}.pdf"
    )
    document = await storage.read(STORYBOOK_BUCKET, f"parent-1/{pending_job.id}.pdf")
    assert len(PdfReader(BytesIO(document)).pages) == 5
    assert illustrator.reference_images == [pending_job.inputs.photo_url] * 5

    assert stages[0] == "job:processing"
    assert stages[-1] == "job:complete"
    assert stages.count("illustration:done") == 5


async def test_status_only_moves_forward_and_completion_is_atomic(
    make_orchestrator, store, pending_job
):
    orchestrator = make_orchestrator(FakeCompletion(story_json(5)), FakeIllustrator())

    await orchestrator.run(pending_job.id)

    history = store.history[pending_job.id]
    assert [status for status, _, _ in history] == [
        JobStatus.PENDING,
        JobStatus.PROCESSING,
        JobStatus.COMPLETE,
    ]
    for status, page_count, artifact_url in history:
        if status is JobStatus.COMPLETE:
            assert page_count == 5 and artifact_url
        else:
            assert page_count == 0 and artifact_url is None


async def test_processing_is_written_before_the_first_provider_call(
    make_orchestrator, store, pending_job
):
    seen = []

    class ObservingCompletion(FakeCompletion):
        async def __call__(self, **kwargs):
            seen.append((await store.get(pending_job.id)).status)
            return await super().__call__(**kwargs)

    await make_orchestrator(ObservingCompletion(story_json(5)), FakeIllustrator()).run(pending_job.id)

    assert seen == [JobStatus.PROCESSING]


async def test_page_order_survives_out_of_order_illustrations(
    make_orchestrator, pending_job, image_loader
):
    # Page 3 finishes first, then 1, then 2; 4 and 5 last.
    illustrator = FakeIllustrator(delays={1: 0.02, 2: 0.04, 3: 0.0, 4: 0.06, 5: 0.08})
    orchestrator = make_orchestrator(FakeCompletion(story_json(5)), illustrator)

    finished = await orchestrator.run(pending_job.id)

    assert illustrator.completion_order[:3] == [3, 1, 2]
    assert [page.page_number for page in finished.pages] == [1, 2, 3, 4, 5]
    assert [page.illustration_url for page in finished.pages] == [
        f"https://images.test/page-{n}.png" for n in range(1, 6)
    ]
    assert [page.narration.split(":")[0] for page in finished.pages] == [
        f"Page {n}" for n in range(1, 6)
    ]
    assert image_loader.requested == [f"https://images.test/page-{n}.png" for n in range(1, 6)]


@pytest.mark.parametrize(
    "raw_story",
    [
        story_json(3),
        '[{"illustration_prompt": "scene 1: meadow"}] ',
        "Once upon a time there was no JSON at all.",
    ],
)
async def test_malformed_narrative_fails_the_job(make_orchestrator, store, pending_job, raw_story):
    illustrator = FakeIllustrator()
    orchestrator = make_orchestrator(FakeCompletion(raw_story), illustrator)

    finished = await orchestrator.run(pending_job.id)

    assert finished.status is JobStatus.FAILED
    assert finished.error_summary.startswith("NarrativeFormatError:")
    assert finished.pages == ()
    assert finished.artifact_url is None
    assert illustrator.prompts == []
    assert (await store.get(pending_job.id)).status is JobStatus.FAILED


async def test_one_failed_illustration_fails_the_whole_job(
    make_orchestrator, store, storage, pending_job
):
    illustrator = FakeIllustrator(fail_pages={3}, hang_pages={5})
    orchestrator = make_orchestrator(FakeCompletion(story_json(5)), illustrator)

    finished = await orchestrator.run(pending_job.id)

    assert finished.status is JobStatus.FAILED
    assert "page 3" in finished.error_summary
    assert finished.pages == ()
    assert finished.artifact_url is None
    assert 5 in illustrator.cancelled
    assert not (storage.root / STORYBOOK_BUCKET).exists()


async def test_illustration_timeout_fails_the_job(make_orchestrator, settings, pending_job):
    fast_timeout = replace(settings, image_timeout=0.05)
    orchestrator = make_orchestrator(
        FakeCompletion(story_json(5)),
        FakeIllustrator(hang_pages={2}),
        settings_override=fast_timeout,
    )

    finished = await orchestrator.run(pending_job.id)

    assert finished.status is JobStatus.FAILED
    assert finished.error_summary == (
        "StageTimeoutError: illustration for page 2 timed out after 0.05s"
    )


async def test_provider_exception_becomes_short_summary(make_orchestrator, pending_job):
    orchestrator = make_orchestrator(
        FakeCompletion(ConnectionError("upstream\n  reset " + "x" * 1000)), FakeIllustrator()
    )

    finished = await orchestrator.run(pending_job.id)

    assert finished.status is JobStatus.FAILED
    assert finished.error_summary.startswith("ConnectionError: upstream reset")
    assert "\n" not in finished.error_summary
    assert len(finished.error_summary) <= 500


async def test_run_refuses_a_job_that_already_started(make_orchestrator, store, pending_job):
    await store.update(pending_job.id, Job.mark_processing)
    completion = FakeCompletion(story_json(5))
    orchestrator = make_orchestrator(completion, FakeIllustrator())

    with pytest.raises(InvalidStatusTransition):
        await orchestrator.run(pending_job.id)

    assert completion.calls == []
    assert (await store.get(pending_job.id)).status is JobStatus.PROCESSING


class RefusingStorage(LocalObjectStorage):
    """Local storage whose uploads are always rejected."""

    async def upload(self, bucket, path, data, *, content_type, upsert=False):
        raise StorageError(f"Bucket '{bucket}' is read-only.")


def _unreachable_image(url):
    raise AssemblyError(f"Could not download illustration from {url}: connection refused")


async def test_upload_failure_fails_the_job_without_pages(
    make_orchestrator, store, settings, pending_job
):
    refusing = RefusingStorage(settings.objects_dir, settings.public_base_url)
    orchestrator = make_orchestrator(
        FakeCompletion(story_json(5)), FakeIllustrator(), storage_override=refusing
    )

    finished = await orchestrator.run(pending_job.id)

    assert finished.status is JobStatus.FAILED
    assert finished.error_summary.startswith("StorageError: Bucket 'storybooks' is read-only")
    assert finished.pages == ()
    assert finished.artifact_url is None
    assert [status for status, _, _ in store.history[pending_job.id]][-1] is JobStatus.FAILED


async def test_render_failure_fails_the_job_without_pages(
    make_orchestrator, store, storage, pending_job
):
    broken_builder = StorybookPDFBuilder(image_loader=_unreachable_image)
    orchestrator = make_orchestrator(
        FakeCompletion(story_json(5)), FakeIllustrator(), assembler_override=broken_builder
    )

    finished = await orchestrator.run(pending_job.id)

    assert finished.status is JobStatus.FAILED
    assert finished.error_summary.startswith("AssemblyError: Could not download illustration")
    assert finished.pages == ()
    assert finished.artifact_url is None
    assert not (storage.root / STORYBOOK_BUCKET).exists()


async def test_cancelled_run_is_recorded_as_failed(make_orchestrator, store, pending_job):
    illustrator = FakeIllustrator(hang_pages={1})
    orchestrator = make_orchestrator(FakeCompletion(story_json(5)), illustrator)

    task = asyncio.create_task(orchestrator.run(pending_job.id))
    while len(illustrator.prompts) < 5:
        await asyncio.sleep(0)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    stored = await store.get(pending_job.id)
    assert stored.status is JobStatus.FAILED
    assert stored.error_summary == CANCELLED_SUMMARY
    assert stored.pages == ()
    assert 1 in illustrator.cancelled
