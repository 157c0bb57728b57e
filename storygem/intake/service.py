"""
Intake: validate a story request, store the reference photo, create the pending job.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Mapping

from storygem.common.errors import IntakeValidationError
from storygem.config import StoryGemSettings
from storygem.jobs.models import Job, StoryInputs
from storygem.jobs.store import JobStore
from storygem.storage.object_storage import PHOTO_BUCKET, ObjectStorage

from .photo import InspectedPhoto, PhotoUpload, inspect_photo

logger = logging.getLogger(__name__)


class IntakeService:
    """
    Turns a submitted form + photo into a ``pending`` job.

    Validation is complete before any write: an invalid request never leaves
    a stored photo or a job record behind.
    """

    def __init__(
        self,
        *,
        store: JobStore,
        storage: ObjectStorage,
        settings: StoryGemSettings,
    ) -> None:
        self._store = store
        self._storage = storage
        self._settings = settings

    async def submit(
        self,
        owner_id: str,
        form: Mapping[str, Any],
        photo: PhotoUpload | None,
    ) -> Job:
        if not owner_id or not owner_id.strip():
            raise IntakeValidationError({"owner_id": "is required"})

        errors = StoryInputs.field_errors(form)
        inspected: InspectedPhoto | None = None
        try:
            inspected = inspect_photo(photo, max_bytes=self._settings.max_photo_bytes)
        except ValueError as exc:
            errors["photo"] = str(exc)

        if errors or inspected is None:
            logger.info("Rejected story request from %s: %s", owner_id, errors)
            raise IntakeValidationError(errors)

        photo_path = f"{owner_id}/{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.{inspected.extension}"
        photo_url = await self._storage.upload_and_get_url(
            PHOTO_BUCKET,
            photo_path,
            inspected.data,
            content_type=inspected.content_type,
        )

        inputs = StoryInputs.from_mapping(form, photo_url=photo_url)
        job = Job.new(
            owner_id=owner_id,
            inputs=inputs,
            page_count=self._settings.page_count,
        )
        return await self._store.insert(job)
