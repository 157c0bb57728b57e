"""Shared fixtures and provider fakes for StoryGem tests.

Nothing here talks to the network: text and image providers are replaced
by in-process fakes, illustrations are fabricated with Pillow, and storage
lives under pytest's ``tmp_path``.
"""

import asyncio
import json
from io import BytesIO

import pytest
import pytest_asyncio
from PIL import Image

from storygem.common.llm import ChatResult
from storygem.config import StoryGemSettings
from storygem.jobs import InMemoryJobStore, Job, JobStatus, StoryInputs
from storygem.pdf_generation import StorybookPDFBuilder
from storygem.pipeline import StorybookOrchestrator
from storygem.storage import LocalObjectStorage
from storygem.story_generation import NarrativeGenerator

LILY_FORM = {
    "childName": "Lily",
    "age": "5",
    "gender": "girl",
    "genre": "Bedtime",
    "short_description": "a shy firefly learns to shine",
}


def make_image_bytes(width=64, height=48, color=(250, 200, 90), fmt="PNG"):
    """Encode a solid-colour image in memory."""
    buffer = BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


def story_json(page_count, *, prefix="Page"):
    """Build a well-formed narrative response with ``page_count`` pages."""
    return json.dumps(
        [
            {
                "narration": f"{prefix} {number}: Lily glows a little brighter tonight.",
                "illustration_prompt": f"scene {number}: Lily and the firefly in a moonlit meadow",
            }
            for number in range(1, page_count + 1)
        ]
    )


class FakeCompletion:
    """Async stand-in for ``call_chat_completion`` that replays scripted outcomes.

    Each entry in ``responses`` is either text to return or an exception to raise.
    The last entry repeats once the script runs out.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def __call__(self, **kwargs):
        self.calls.append(kwargs)
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        outcome = self.responses[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return ChatResult(text=outcome, raw={"choices": [{"message": {"content": outcome}}]})


class FakeIllustrator:
    """Returns one deterministic URL per prompt, with optional per-page delays and failures.

    Pages are identified by the ``scene <n>:`` prefix that ``story_json`` writes.
    """

    def __init__(self, *, delays=None, fail_pages=(), hang_pages=()):
        self.delays = delays or {}
        self.fail_pages = set(fail_pages)
        self.hang_pages = set(hang_pages)
        self.prompts = []
        self.reference_images = []
        self.completion_order = []
        self.cancelled = []

    @staticmethod
    def page_of(prompt):
        return int(prompt.split(":", 1)[0].split()[-1])

    async def generate_illustration(self, prompt, *, reference_image=None):
        self.prompts.append(prompt)
        self.reference_images.append(reference_image)
        page = self.page_of(prompt)
        try:
            if page in self.hang_pages:
                await asyncio.Event().wait()
            await asyncio.sleep(self.delays.get(page, 0))
        except asyncio.CancelledError:
            self.cancelled.append(page)
            raise
        if page in self.fail_pages:
            raise RuntimeError(f"image provider exploded on page {page}")
        self.completion_order.append(page)
        return f"https://images.test/page-{page}.png"


class RecordingImageLoader:
    """Serves distinct fabricated images per URL and remembers the request order."""

    def __init__(self):
        self.requested = []

    def __call__(self, url):
        self.requested.append(url)
        return make_image_bytes()


class StatusRecordingStore(InMemoryJobStore):
    """In-memory store that remembers every status it ever persisted, per job."""

    def __init__(self):
        super().__init__()
        self.history = {}

    def _save(self, job):
        self.history.setdefault(job.id, []).append(
            (job.status, len(job.pages), job.artifact_url)
        )
        super()._save(job)


@pytest.fixture
def settings(tmp_path):
    return StoryGemSettings(
        page_count=5,
        provider_retries=0,
        data_dir=tmp_path / "data",
        public_base_url="http://testserver/files",
    )


@pytest.fixture
def store():
    return StatusRecordingStore()


@pytest.fixture
def storage(settings):
    return LocalObjectStorage(settings.objects_dir, settings.public_base_url)


@pytest.fixture
def image_loader():
    return RecordingImageLoader()


@pytest.fixture
def pdf_builder(image_loader):
    return StorybookPDFBuilder(image_loader=image_loader)


@pytest.fixture
def photo_bytes():
    return make_image_bytes(320, 240, fmt="JPEG")


@pytest.fixture
def lily_inputs():
    return StoryInputs.from_mapping(LILY_FORM, photo_url="http://testserver/files/child-photos/p/1.jpg")


@pytest_asyncio.fixture
async def pending_job(store, lily_inputs, settings):
    """Insert a pending Lily job and return it."""
    job = Job.new(owner_id="parent-1", inputs=lily_inputs, page_count=settings.page_count)
    await store.insert(job)
    assert job.status is JobStatus.PENDING
    return job


@pytest.fixture
def make_orchestrator(store, storage, settings, pdf_builder):
    """Factory building an orchestrator around the given fakes."""

    def _factory(
        completion,
        illustrator,
        *,
        settings_override=None,
        progress=None,
        storage_override=None,
        assembler_override=None,
    ):
        active = settings_override or settings
        return StorybookOrchestrator(
            store=store,
            narrative_generator=NarrativeGenerator(
                model="test/story-model",
                completion_fn=completion,
                timeout=active.text_timeout,
                retry_delays=(),
            ),
            illustration_generator=illustrator,
            assembler=assembler_override or pdf_builder,
            storage=storage_override or storage,
            settings=active,
            progress_callback=progress,
        )

    return _factory
