"""
Environment-driven runtime settings for StoryGem.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_PAGE_COUNT = 5
DEFAULT_STORY_MODEL = "gpt-4.1-mini"
DEFAULT_IMAGE_MODEL = "black-forest-labs/flux-schnell"


def _env_str(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value is not None and value.strip():
            return value.strip()
    return None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}.") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}.") from exc


@dataclass(frozen=True)
class StoryGemSettings:
    """
    Runtime configuration shared by intake, the pipeline, and the HTTP surface.

    Attributes
    ----------
    page_count:
        Number of pages every storybook must have.
    story_model / story_api_key:
        LiteLLM model identifier and key for narrative generation.
    replicate_api_token / image_model:
        Replicate credentials and model used for illustrations.
    text_timeout / image_timeout / render_timeout / upload_timeout / image_fetch_timeout:
        Per-call upper bounds in seconds. Hitting one fails the job.
    provider_retries:
        Extra attempts allowed inside a single provider call when it is throttled.
    stuck_job_minutes:
        Age after which a job still ``processing`` is failed by the reconciliation sweep.
    """

    page_count: int = DEFAULT_PAGE_COUNT
    story_model: str = DEFAULT_STORY_MODEL
    story_api_key: str | None = None
    replicate_api_token: str | None = None
    image_model: str = DEFAULT_IMAGE_MODEL
    text_timeout: float = 90.0
    image_timeout: float = 120.0
    upload_timeout: float = 30.0
    image_fetch_timeout: float = 30.0
    render_timeout: float = 180.0
    provider_retries: int = 2
    max_photo_bytes: int = 5 * 1024 * 1024
    max_narration_chars: int = 600
    stuck_job_minutes: int = 15
    data_dir: Path = field(default_factory=lambda: Path("storygem-data"))
    public_base_url: str = "http://localhost:8000/files"
    font_path: str | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.page_count < 1:
            raise ValueError("page_count must be at least 1.")
        if self.provider_retries < 0:
            raise ValueError("provider_retries cannot be negative.")
        if self.max_narration_chars < 1:
            raise ValueError("max_narration_chars must be positive.")

    @property
    def jobs_dir(self) -> Path:
        return self.data_dir / "jobs"

    @property
    def objects_dir(self) -> Path:
        return self.data_dir / "objects"

    @property
    def retry_delays(self) -> tuple[float, ...]:
        schedule = (2.0, 5.0, 10.0, 20.0)
        if self.provider_retries <= len(schedule):
            return schedule[: self.provider_retries]
        return schedule + (schedule[-1],) * (self.provider_retries - len(schedule))

    def has_provider_keys(self) -> bool:
        return bool(self.story_api_key and self.replicate_api_token)

    @classmethod
    def from_env(cls) -> "StoryGemSettings":
        return cls(
            page_count=_env_int("STORYGEM_PAGE_COUNT", DEFAULT_PAGE_COUNT),
            story_model=_env_str(
                "STORYGEM_STORY_MODEL",
                "LITELLM_STORY_MODEL",
                "OPENAI_STORY_MODEL",
                "LITELLM_MODEL",
            )
            or DEFAULT_STORY_MODEL,
            story_api_key=_env_str("OPENAI_API_KEY", "LITELLM_API_KEY"),
            replicate_api_token=_env_str("REPLICATE_API_TOKEN"),
            image_model=_env_str("STORYGEM_IMAGE_MODEL", "REPLICATE_MODEL") or DEFAULT_IMAGE_MODEL,
            text_timeout=_env_float("STORYGEM_TEXT_TIMEOUT", 90.0),
            image_timeout=_env_float("STORYGEM_IMAGE_TIMEOUT", 120.0),
            upload_timeout=_env_float("STORYGEM_UPLOAD_TIMEOUT", 30.0),
            image_fetch_timeout=_env_float("STORYGEM_IMAGE_FETCH_TIMEOUT", 30.0),
            render_timeout=_env_float("STORYGEM_RENDER_TIMEOUT", 180.0),
            provider_retries=_env_int("STORYGEM_PROVIDER_RETRIES", 2),
            max_photo_bytes=_env_int("STORYGEM_MAX_PHOTO_BYTES", 5 * 1024 * 1024),
            max_narration_chars=_env_int("STORYGEM_MAX_NARRATION_CHARS", 600),
            stuck_job_minutes=_env_int("STORYGEM_STUCK_JOB_MINUTES", 15),
            data_dir=Path(_env_str("STORYGEM_DATA_DIR") or "storygem-data").expanduser(),
            public_base_url=_env_str("STORYGEM_PUBLIC_BASE_URL") or "http://localhost:8000/files",
            font_path=_env_str("STORYGEM_FONT_PATH"),
            log_level=(_env_str("STORYGEM_LOG_LEVEL") or "INFO").upper(),
        )
