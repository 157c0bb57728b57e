"""
Exception hierarchy shared by the StoryGem intake, pipeline, and API layers.
"""

from __future__ import annotations

import re
from typing import Mapping

ERROR_SUMMARY_LIMIT = 500


class StoryGemError(Exception):
    """Base class for every error raised deliberately by StoryGem."""


class IntakeValidationError(StoryGemError):
    """
    Raised when a story request fails validation at intake.

    Attributes
    ----------
    fields:
        Mapping of offending form field to a human-readable problem description.
    """

    def __init__(self, fields: Mapping[str, str]) -> None:
        self.fields = dict(fields)
        details = "; ".join(f"{name}: {problem}" for name, problem in self.fields.items())
        super().__init__(f"Invalid story request ({details}).")


class JobNotFoundError(StoryGemError):
    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Story job '{job_id}' was not found.")


class DuplicateJobError(StoryGemError):
    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Story job '{job_id}' already exists.")


class InvalidStatusTransition(StoryGemError):
    """Raised when a job is asked to move along an edge the state machine forbids."""

    def __init__(self, job_id: str, current: str, target: str) -> None:
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot transition job '{job_id}' from '{current}' to '{target}'."
        )


class JobAlreadyRunningError(StoryGemError):
    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Story job '{job_id}' already has an active run.")


class ProviderError(StoryGemError):
    """An upstream generative provider failed or returned unusable output."""


class NarrativeFormatError(ProviderError):
    """The text provider's output did not parse into the exact expected page shape."""


class IllustrationError(ProviderError):
    """The image provider failed to return a usable image reference."""


class AssemblyError(StoryGemError):
    """The storybook document could not be rendered."""


class StorageError(StoryGemError):
    """Object storage rejected a read or write."""


def summarize_error(exc: BaseException, limit: int = ERROR_SUMMARY_LIMIT) -> str:
    """
    Render an exception as a short single-line diagnostic suitable for clients.
    """
    message = re.sub(r"\s+", " ", str(exc)).strip()
    name = type(exc).__name__
    if isinstance(exc, TimeoutError) and not message:
        message = "the provider did not respond in time"
    summary = f"{name}: {message}" if message else name
    if len(summary) > limit:
        summary = summary[: max(limit - 1, 0)].rstrip() + "…"
    return summary
