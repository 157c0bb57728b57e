"""
HTTP surface: submit stories, trigger runs, poll their status, and read published samples.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from storygem.common.errors import (
    IntakeValidationError,
    InvalidStatusTransition,
    JobAlreadyRunningError,
    JobNotFoundError,
)
from storygem.config import StoryGemSettings
from storygem.context import AppContext, build_context
from storygem.intake import PhotoUpload
from storygem.jobs import JobStatus
from storygem.storage import LocalObjectStorage

logger = logging.getLogger(__name__)

PHOTO_FIELD = File(None)
OPTIONAL_FIELD = Form(None)


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_owner_id(x_owner_id: str | None = Header(default=None, alias="X-Owner-Id")) -> str:
    # Identity is established upstream; this header is what the auth layer forwards.
    if not x_owner_id or not x_owner_id.strip():
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unauthenticated")
    return x_owner_id.strip()


def get_optional_owner_id(
    x_owner_id: str | None = Header(default=None, alias="X-Owner-Id"),
) -> str | None:
    if not x_owner_id or not x_owner_id.strip():
        return None
    return x_owner_id.strip()


def create_app(context: AppContext | None = None) -> FastAPI:
    """
    Build the FastAPI application around an explicit :class:`AppContext`.
    """
    if context is None:
        settings = StoryGemSettings.from_env()
        logging.basicConfig(level=settings.log_level)
        context = build_context(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        reconciled = await context.reconcile()
        if reconciled:
            logger.warning("Failed %d stuck story jobs at startup", len(reconciled))
        yield
        if context.dispatcher.active_job_ids:
            logger.warning(
                "Shutting down with %d story jobs still running",
                len(context.dispatcher.active_job_ids),
            )

    app = FastAPI(title="StoryGem", lifespan=lifespan)
    app.state.context = context

    if isinstance(context.storage, LocalObjectStorage):
        app.mount("/files", StaticFiles(directory=context.storage.root), name="files")

    @app.exception_handler(IntakeValidationError)
    async def _intake_error(request: Request, exc: IntakeValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"error": "Invalid story request", "fields": exc.fields},
        )

    @app.exception_handler(JobNotFoundError)
    async def _not_found(request: Request, exc: JobNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "Story not found"})

    @app.exception_handler(InvalidStatusTransition)
    @app.exception_handler(JobAlreadyRunningError)
    async def _conflict(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"error": str(exc)})

    @app.get("/health")
    def health(ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
        return {"ok": True, "has_keys": ctx.settings.has_provider_keys()}

    @app.post("/stories", status_code=status.HTTP_201_CREATED)
    async def create_story(
        photo: UploadFile | None = PHOTO_FIELD,
        childName: str | None = OPTIONAL_FIELD,  # noqa: N803
        child_name: str | None = OPTIONAL_FIELD,
        age: str | None = OPTIONAL_FIELD,
        gender: str | None = OPTIONAL_FIELD,
        genre: str | None = OPTIONAL_FIELD,
        short_description: str | None = OPTIONAL_FIELD,
        title: str | None = OPTIONAL_FIELD,
        owner_id: str = Depends(get_owner_id),
        ctx: AppContext = Depends(get_context),
    ) -> dict[str, Any]:
        form = {
            "child_name": child_name or childName,
            "age": age,
            "gender": gender,
            "genre": genre,
            "short_description": short_description,
            "title": title,
        }
        upload = None
        if photo is not None:
            upload = PhotoUpload(
                filename=photo.filename or "photo",
                content_type=photo.content_type,
                data=await photo.read(),
            )

        job = await ctx.intake.submit(owner_id, form, upload)
        ctx.dispatcher.dispatch(job.id)
        return {
            "job_id": job.id,
            "status": job.status.value,
            "photo_url": job.inputs.photo_url,
        }

    @app.post("/stories/{job_id}/start", status_code=status.HTTP_202_ACCEPTED)
    async def start_story(
        job_id: str,
        owner_id: str = Depends(get_owner_id),
        ctx: AppContext = Depends(get_context),
    ) -> dict[str, Any]:
        current = await ctx.poller.get_status(job_id, owner_id)
        if current.status is not JobStatus.PENDING:
            raise InvalidStatusTransition(job_id, current.status.value, JobStatus.PROCESSING.value)
        ctx.dispatcher.dispatch(job_id)
        return {"job_id": job_id, "status": current.status.value}

    @app.get("/stories/{job_id}/status")
    async def story_status(
        job_id: str,
        owner_id: str = Depends(get_owner_id),
        ctx: AppContext = Depends(get_context),
    ) -> dict[str, Any]:
        return (await ctx.poller.get_status(job_id, owner_id)).to_dict()

    @app.get("/stories/{job_id}")
    async def get_story(
        job_id: str,
        owner_id: str | None = Depends(get_optional_owner_id),
        ctx: AppContext = Depends(get_context),
    ) -> dict[str, Any]:
        return {"story": (await ctx.poller.get_story(job_id, owner_id)).to_dict()}

    @app.get("/stories")
    async def list_stories(
        free_only: bool = False,
        owner_id: str | None = Depends(get_optional_owner_id),
        ctx: AppContext = Depends(get_context),
    ) -> dict[str, Any]:
        samples = [summary.to_dict() for summary in await ctx.poller.list_samples()]
        if free_only:
            return {"samples": samples}
        if owner_id is None:
            raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unauthenticated")
        summaries = await ctx.poller.list_jobs(owner_id)
        return {"stories": [summary.to_dict() for summary in summaries], "samples": samples}

    return app
