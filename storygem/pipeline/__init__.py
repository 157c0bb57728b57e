"""
End-to-end orchestration of story jobs.
"""

from .dispatch import JobDispatcher
from .orchestrator import ProgressCallback, StageTimeoutError, StorybookOrchestrator

__all__ = [
    "JobDispatcher",
    "ProgressCallback",
    "StageTimeoutError",
    "StorybookOrchestrator",
]
