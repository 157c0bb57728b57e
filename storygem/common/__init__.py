"""
Common utilities shared across StoryGem modules.
"""

from .backoff import retry_with_backoff
from .errors import (
    AssemblyError,
    DuplicateJobError,
    IllustrationError,
    IntakeValidationError,
    InvalidStatusTransition,
    JobAlreadyRunningError,
    JobNotFoundError,
    NarrativeFormatError,
    ProviderError,
    StorageError,
    StoryGemError,
    summarize_error,
)
from .llm import ChatResult, CompletionCallable, call_chat_completion

__all__ = [
    "AssemblyError",
    "ChatResult",
    "CompletionCallable",
    "DuplicateJobError",
    "IllustrationError",
    "IntakeValidationError",
    "InvalidStatusTransition",
    "JobAlreadyRunningError",
    "JobNotFoundError",
    "NarrativeFormatError",
    "ProviderError",
    "StorageError",
    "StoryGemError",
    "call_chat_completion",
    "retry_with_backoff",
    "summarize_error",
]
