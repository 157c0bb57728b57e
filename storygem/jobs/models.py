"""
Story job records, their inputs, and the job status state machine.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from storygem.common.errors import (
    ERROR_SUMMARY_LIMIT,
    IntakeValidationError,
    InvalidStatusTransition,
)

MIN_AGE = 3
MAX_AGE = 12

# Form keys accepted for each input, first match wins.
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "child_name": ("child_name", "childName", "name"),
    "age": ("age",),
    "gender": ("gender", "sex", "pronouns"),
    "genre": ("genre", "theme"),
    "short_description": ("short_description", "shortDescription", "description"),
    "title": ("title",),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _lookup(data: Mapping[str, Any], key: str) -> Any:
    for alias in _FIELD_ALIASES[key]:
        if alias in data and data[alias] is not None:
            return data[alias]
    return None


def _coerce_optional_str(value: Any) -> str | None:
    if value is None:
        return None

    text = str(value).strip()
    return text or None


def _coerce_age(value: Any) -> int:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError("must be a whole number")
    try:
        age = int(value)
    except ValueError as exc:
        raise ValueError("must be a whole number") from exc
    if not MIN_AGE <= age <= MAX_AGE:
        raise ValueError(f"must be between {MIN_AGE} and {MAX_AGE}")
    return age


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.FAILED)


_ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETE, JobStatus.FAILED}),
    JobStatus.COMPLETE: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def is_allowed_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in _ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class StoryInputs:
    """
    Canonical representation of what the parent submitted for one storybook.

    Attributes
    ----------
    child_name:
        The hero of the story.
    age:
        Age in years, bounded to the reading range the prompts are written for.
    gender:
        Gender or pronoun preference, used for respectful phrasing.
    genre:
        Free-text genre chosen on the form (e.g. "Bedtime", "Space adventure").
    short_description:
        One-line premise for the story.
    photo_url:
        Location of the uploaded reference photo.
    title:
        Optional story title; a default is derived when absent.
    """

    child_name: str
    age: int
    gender: str
    genre: str
    short_description: str
    photo_url: str
    title: str | None = None

    @property
    def display_title(self) -> str:
        return self.title or f"{self.child_name}'s {self.genre} Story"

    @staticmethod
    def field_errors(data: Mapping[str, Any]) -> dict[str, str]:
        """
        Validate the profile fields of a story request and describe every problem found.
        """
        errors: dict[str, str] = {}
        for key in ("child_name", "gender", "genre", "short_description"):
            if _coerce_optional_str(_lookup(data, key)) is None:
                errors[key] = "is required"

        raw_age = _lookup(data, "age")
        if _coerce_optional_str(raw_age) is None:
            errors["age"] = "is required"
        else:
            try:
                _coerce_age(raw_age)
            except ValueError as exc:
                errors["age"] = str(exc)
        return errors

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, photo_url: str | None = None) -> "StoryInputs":
        """
        Build inputs from a form or dict-like payload, raising on any invalid field.
        """
        errors = cls.field_errors(data)
        resolved_photo = _coerce_optional_str(photo_url or data.get("photo_url"))
        if resolved_photo is None:
            errors["photo_url"] = "is required"
        if errors:
            raise IntakeValidationError(errors)

        return cls(
            child_name=str(_lookup(data, "child_name")).strip(),
            age=_coerce_age(_lookup(data, "age")),
            gender=str(_lookup(data, "gender")).strip(),
            genre=str(_lookup(data, "genre")).strip(),
            short_description=str(_lookup(data, "short_description")).strip(),
            photo_url=resolved_photo,
            title=_coerce_optional_str(_lookup(data, "title")),
        )

    def context_bullets(self) -> list[str]:
        """
        Produce bullet-friendly lines describing the request, for prompt conditioning.
        """
        return [
            f"Child's name: {self.child_name}",
            f"Age: {self.age}",
            f"Gender/pronouns: {self.gender}",
            f"Genre: {self.genre}",
            f"Story premise: {self.short_description}",
            f"Title: {self.display_title}",
        ]

    def summary_for_prompt(self) -> str:
        return "\n".join(f"- {line}" for line in self.context_bullets())

    def to_dict(self) -> dict[str, Any]:
        return {
            "child_name": self.child_name,
            "age": self.age,
            "gender": self.gender,
            "genre": self.genre,
            "short_description": self.short_description,
            "photo_url": self.photo_url,
            "title": self.title,
        }


@dataclass(frozen=True)
class StoryPage:
    """A single page as written by the narrative model, before illustration."""

    page_number: int
    narration: str
    illustration_prompt: str


@dataclass(frozen=True)
class PageRecord:
    """A finished page: narration plus the reference to its generated illustration."""

    page_number: int
    narration: str
    illustration_url: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "page_number": self.page_number,
            "narration": self.narration,
            "illustration_url": self.illustration_url,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PageRecord":
        try:
            return cls(
                page_number=int(payload["page_number"]),
                narration=str(payload["narration"]),
                illustration_url=str(payload["illustration_url"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid page entry: {payload}") from exc


@dataclass
class Job:
    """
    Durable record of one storybook generation request.

    Status only ever moves ``pending -> processing -> complete|failed``
    (``pending -> failed`` is allowed for the reconciliation sweep). Use the
    ``mark_*`` methods rather than assigning ``status`` directly.
    ``is_free`` marks a complete story published as a public sample.
    """

    id: str
    owner_id: str
    inputs: StoryInputs
    page_count: int
    status: JobStatus = JobStatus.PENDING
    pages: tuple[PageRecord, ...] = ()
    artifact_url: str | None = None
    error_summary: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    is_free: bool = False

    @classmethod
    def new(cls, *, owner_id: str, inputs: StoryInputs, page_count: int) -> "Job":
        if not owner_id:
            raise ValueError("owner_id is required to create a job.")
        now = utcnow()
        return cls(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            inputs=inputs,
            page_count=page_count,
            created_at=now,
            updated_at=now,
        )

    # ------------------------------------------------------------------ transitions

    def _transition(self, target: JobStatus) -> None:
        if not is_allowed_transition(self.status, target):
            raise InvalidStatusTransition(self.id, self.status.value, target.value)
        self.status = target
        self.updated_at = utcnow()

    def mark_processing(self) -> None:
        self._transition(JobStatus.PROCESSING)
        self.started_at = self.updated_at

    def mark_complete(self, pages: Sequence[PageRecord], artifact_url: str) -> None:
        pages = tuple(pages)
        if len(pages) != self.page_count:
            raise ValueError(
                f"Job '{self.id}' needs exactly {self.page_count} pages to complete, got {len(pages)}."
            )
        if not artifact_url:
            raise ValueError(f"Job '{self.id}' cannot complete without an artifact URL.")
        self._transition(JobStatus.COMPLETE)
        self.pages = pages
        self.artifact_url = artifact_url
        self.error_summary = None
        self.completed_at = self.updated_at

    def mark_failed(self, error_summary: str) -> None:
        self._transition(JobStatus.FAILED)
        summary = (error_summary or "").strip() or "Story generation failed."
        self.error_summary = summary[:ERROR_SUMMARY_LIMIT]
        self.pages = ()
        self.artifact_url = None
        self.completed_at = self.updated_at

    def publish_as_sample(self) -> None:
        """Make a finished story readable by anyone, including anonymous visitors."""
        if self.status is not JobStatus.COMPLETE:
            raise ValueError(
                f"Job '{self.id}' is {self.status.value}; only complete stories can be samples."
            )
        self.is_free = True
        self.updated_at = utcnow()

    # ------------------------------------------------------------------ serialization

    def copy(self) -> "Job":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "status": self.status.value,
            "page_count": self.page_count,
            "inputs": self.inputs.to_dict(),
            "pages": [page.to_dict() for page in self.pages],
            "artifact_url": self.artifact_url,
            "error_summary": self.error_summary,
            "created_at": _format_time(self.created_at),
            "updated_at": _format_time(self.updated_at),
            "started_at": _format_time(self.started_at),
            "completed_at": _format_time(self.completed_at),
            "is_free": self.is_free,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Job":
        for key in ("id", "owner_id", "status", "inputs", "page_count"):
            if key not in payload:
                raise ValueError(f"Job payload must include '{key}'.")

        inputs_payload = payload["inputs"]
        if not isinstance(inputs_payload, Mapping):
            raise ValueError("Job payload 'inputs' must be a mapping.")
        inputs = StoryInputs.from_mapping(inputs_payload)

        return cls(
            id=str(payload["id"]),
            owner_id=str(payload["owner_id"]),
            inputs=inputs,
            page_count=int(payload["page_count"]),
            status=JobStatus(payload["status"]),
            pages=tuple(_load_pages(payload.get("pages") or ())),
            artifact_url=payload.get("artifact_url"),
            error_summary=payload.get("error_summary"),
            created_at=_parse_time(payload.get("created_at")) or utcnow(),
            updated_at=_parse_time(payload.get("updated_at")) or utcnow(),
            started_at=_parse_time(payload.get("started_at")),
            completed_at=_parse_time(payload.get("completed_at")),
            is_free=bool(payload.get("is_free", False)),
        )


def _load_pages(entries: Iterable[Mapping[str, Any]]) -> list[PageRecord]:
    return [PageRecord.from_dict(entry) for entry in entries]


def _format_time(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_time(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
