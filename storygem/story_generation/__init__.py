"""
Narrative generation for personalised StoryGem storybooks.
"""

from .narrative import NarrativeGenerator, parse_story_pages, strip_code_fence
from .prompting import StoryPrompt, build_narrative_prompt

__all__ = [
    "NarrativeGenerator",
    "StoryPrompt",
    "build_narrative_prompt",
    "parse_story_pages",
    "strip_code_fence",
]
