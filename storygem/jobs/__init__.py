"""
Story job records, stores, and the read-only status projection.
"""

from .models import (
    MAX_AGE,
    MIN_AGE,
    Job,
    JobStatus,
    PageRecord,
    StoryInputs,
    StoryPage,
    is_allowed_transition,
)
from .poller import JobSummary, StatusPoller, StatusView, StoryView
from .reconcile import reconcile_stuck_jobs
from .store import InMemoryJobStore, JobStore, YamlJobStore

__all__ = [
    "InMemoryJobStore",
    "Job",
    "JobStatus",
    "JobStore",
    "JobSummary",
    "MAX_AGE",
    "MIN_AGE",
    "PageRecord",
    "StatusPoller",
    "StatusView",
    "StoryInputs",
    "StoryPage",
    "StoryView",
    "YamlJobStore",
    "is_allowed_transition",
    "reconcile_stuck_jobs",
]
