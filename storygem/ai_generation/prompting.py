"""
Prompt construction utilities for StoryGem illustration generation.
"""

from __future__ import annotations

from dataclasses import dataclass

# Appended to every page prompt of every job so a whole book shares one look.
ILLUSTRATION_STYLE = (
    "children's storybook illustration, soft watercolor and gouache textures, "
    "warm pastel palette, gentle rim lighting, rounded friendly shapes, "
    "clean uncluttered background, whimsical and cozy, high detail, print quality"
)

NEGATIVE_PROMPT = (
    "text, letters, watermark, logo, signature, frightening imagery, gore, "
    "photorealistic skin, uncanny valley, distorted hands, extra limbs, blurry, low resolution"
)


@dataclass(frozen=True)
class StorybookPrompt:
    """Container for the positive and negative prompts passed to the image model."""

    positive: str
    negative: str = NEGATIVE_PROMPT


def build_illustration_prompt(scene_prompt: str, *, style: str = ILLUSTRATION_STYLE) -> StorybookPrompt:
    """
    Combine a page's scene prompt with the house illustration style.
    """
    if not scene_prompt or not scene_prompt.strip():
        raise ValueError("scene_prompt must be a non-empty string.")

    scene = " ".join(scene_prompt.split()).rstrip(" .")
    return StorybookPrompt(positive=f"{scene}. Style: {style}.")
