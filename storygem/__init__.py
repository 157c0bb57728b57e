"""
StoryGem package exposing intake, the story pipeline, and PDF tooling.
"""

from .config import StoryGemSettings
from .context import AppContext, build_context
from .jobs import Job, JobStatus, StatusPoller, StoryInputs
from .pdf_generation import StorybookPDFBuilder
from .pipeline import JobDispatcher, StorybookOrchestrator

__all__ = [
    "AppContext",
    "Job",
    "JobDispatcher",
    "JobStatus",
    "StatusPoller",
    "StoryGemSettings",
    "StoryInputs",
    "StorybookOrchestrator",
    "StorybookPDFBuilder",
    "build_context",
]
