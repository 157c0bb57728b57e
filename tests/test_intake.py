"""Intake tests: validation happens before any photo or job is written."""

from dataclasses import replace
from io import BytesIO

import pytest
from PIL import Image

from conftest import LILY_FORM, make_image_bytes
from storygem.common.errors import IntakeValidationError
from storygem.intake import IntakeService, PhotoUpload, inspect_photo
from storygem.intake import photo as photo_module
from storygem.jobs import JobStatus
from storygem.storage import PHOTO_BUCKET


@pytest.fixture
def intake(store, storage, settings):
    return IntakeService(store=store, storage=storage, settings=settings)


def _photo(data, name="lily.jpg", content_type="image/jpeg"):
    return PhotoUpload(filename=name, content_type=content_type, data=data)


async def test_valid_request_creates_one_pending_job(intake, store, storage, photo_bytes):
    job = await intake.submit("parent-1", LILY_FORM, _photo(photo_bytes))

    assert job.status is JobStatus.PENDING
    assert job.pages == ()
    assert job.artifact_url is None
    assert job.page_count == 5
    assert [listed.id for listed in await store.list_for_owner("parent-1")] == [job.id]

    prefix = f"http://testserver/files/{PHOTO_BUCKET}/parent-1/"
    assert job.inputs.photo_url.startswith(prefix)
    assert job.inputs.photo_url.endswith(".jpg")
    stored_path = job.inputs.photo_url[len("http://testserver/files/") :]
    assert (storage.root / stored_path).read_bytes() == photo_bytes


async def test_invalid_fields_and_photo_reported_together(intake, store, storage):
    form = {**LILY_FORM, "age": "30", "genre": ""}

    with pytest.raises(IntakeValidationError) as exc_info:
        await intake.submit("parent-1", form, _photo(b"definitely not an image"))

    assert exc_info.value.fields == {
        "genre": "is required",
        "age": "must be between 3 and 12",
        "photo": "is not a readable image",
    }
    assert await store.list_for_owner("parent-1") == []
    assert not (storage.root / PHOTO_BUCKET).exists()


async def test_missing_photo_is_rejected(intake, store):
    with pytest.raises(IntakeValidationError) as exc_info:
        await intake.submit("parent-1", LILY_FORM, None)

    assert exc_info.value.fields == {"photo": "is required"}
    assert await store.list_for_owner("parent-1") == []


async def test_oversized_photo_is_rejected(store, storage, settings):
    tight = replace(settings, max_photo_bytes=1024)
    intake = IntakeService(store=store, storage=storage, settings=tight)

    with pytest.raises(IntakeValidationError) as exc_info:
        await intake.submit("parent-1", LILY_FORM, _photo(make_image_bytes(400, 400, fmt="BMP")))

    assert exc_info.value.fields["photo"] == "must be at most 1 KiB"


def test_inspect_photo_detects_format():
    inspected = inspect_photo(_photo(make_image_bytes(20, 10, fmt="PNG")), max_bytes=10_000)

    assert inspected.format == "PNG"
    assert (inspected.width, inspected.height) == (20, 10)
    assert inspected.extension == "png"
    assert inspected.content_type == "image/png"


def test_inspect_photo_rejects_unsupported_format():
    with pytest.raises(ValueError, match="must be one of JPEG, PNG, WEBP"):
        inspect_photo(_photo(make_image_bytes(8, 8, fmt="BMP")), max_bytes=100_000)


async def test_missing_owner_is_rejected(intake, photo_bytes):
    with pytest.raises(IntakeValidationError) as exc_info:
        await intake.submit("", LILY_FORM, _photo(photo_bytes))

    assert exc_info.value.fields == {"owner_id": "is required"}


def _truncated_jpeg():
    noisy = Image.effect_noise((640, 480), 64).convert("RGB")
    buffer = BytesIO()
    noisy.save(buffer, format="JPEG", quality=95)
    data = buffer.getvalue()
    return data[: len(data) // 4]


async def test_truncated_jpeg_is_rejected_before_any_write(intake, store, storage):
    with pytest.raises(IntakeValidationError) as exc_info:
        await intake.submit("parent-1", LILY_FORM, _photo(_truncated_jpeg()))

    assert exc_info.value.fields == {"photo": "is not a readable image"}
    assert await store.list_for_owner("parent-1") == []
    assert not (storage.root / PHOTO_BUCKET).exists()


async def test_decompression_bomb_is_a_validation_error(intake, store, monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)

    with pytest.raises(IntakeValidationError) as exc_info:
        await intake.submit("parent-1", LILY_FORM, _photo(make_image_bytes(30, 30, fmt="PNG")))

    assert exc_info.value.fields == {"photo": "has too many pixels"}
    assert await store.list_for_owner("parent-1") == []


def test_inspect_photo_enforces_pixel_ceiling(monkeypatch):
    monkeypatch.setattr(photo_module, "MAX_PHOTO_PIXELS", 150)

    with pytest.raises(ValueError, match="has too many pixels"):
        inspect_photo(_photo(make_image_bytes(20, 10, fmt="PNG")), max_bytes=100_000)
