"""
AI illustration generation for StoryGem.
"""

from .prompting import ILLUSTRATION_STYLE, StorybookPrompt, build_illustration_prompt
from .replicate_service import ReplicateImageGenerator, normalize_image_outputs

__all__ = [
    "ILLUSTRATION_STYLE",
    "ReplicateImageGenerator",
    "StorybookPrompt",
    "build_illustration_prompt",
    "normalize_image_outputs",
]
