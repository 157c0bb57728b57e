"""
Narrative generation: one chat completion turned into exactly N story pages.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Sequence

from storygem.common.backoff import DEFAULT_DELAYS, retry_with_backoff
from storygem.common.errors import NarrativeFormatError
from storygem.common.llm import ChatResult, CompletionCallable, call_chat_completion
from storygem.jobs.models import StoryInputs, StoryPage

from .prompting import build_narrative_prompt

logger = logging.getLogger(__name__)

DEFAULT_MAX_NARRATION_CHARS = 600

_FENCE_PATTERN = re.compile(r"^\s*```[a-zA-Z]*\s*\n?(?P<body>.*?)\n?\s*```\s*$", re.DOTALL)


class NarrativeGenerator:
    """
    Asks the text provider for the story and validates the page payload strictly.

    Parameters
    ----------
    model:
        LiteLLM model identifier.
    api_key:
        Provider key forwarded to LiteLLM; ``None`` lets LiteLLM read its own env vars.
    completion_fn:
        Async completion callable. Mainly useful for testing.
    timeout:
        Seconds allowed for one completion call.
    retry_delays:
        Back-off schedule applied only when the provider throttles.
    """

    def __init__(
        self,
        *,
        model: str,
        api_key: str | None = None,
        completion_fn: CompletionCallable | None = None,
        timeout: float = 90.0,
        max_narration_chars: int = DEFAULT_MAX_NARRATION_CHARS,
        retry_delays: Sequence[float] = DEFAULT_DELAYS,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._completion_fn: CompletionCallable = completion_fn or call_chat_completion
        self._timeout = timeout
        self._max_narration_chars = max_narration_chars
        self._retry_delays = tuple(retry_delays)

    @property
    def model(self) -> str:
        return self._model

    async def generate(
        self,
        inputs: StoryInputs,
        *,
        page_count: int,
        temperature: float = 0.8,
        max_output_tokens: int = 2500,
    ) -> list[StoryPage]:
        prompt = build_narrative_prompt(
            inputs,
            page_count=page_count,
            max_narration_chars=self._max_narration_chars,
        )
        result: ChatResult = await retry_with_backoff(
            self._completion_fn,
            model=self._model,
            messages=[
                {"role": "system", "content": prompt.system},
                {"role": "user", "content": prompt.user},
            ],
            temperature=temperature,
            max_tokens=max_output_tokens,
            api_key=self._api_key,
            timeout=self._timeout,
            delays=self._retry_delays,
        )
        pages = parse_story_pages(
            result.text,
            page_count=page_count,
            max_narration_chars=self._max_narration_chars,
        )
        logger.info("Narrative ready: %d pages from %s", len(pages), self._model)
        return pages


def strip_code_fence(raw_text: str) -> str:
    match = _FENCE_PATTERN.match(raw_text)
    return match.group("body").strip() if match else raw_text.strip()


def parse_story_pages(
    raw_text: str,
    *,
    page_count: int,
    max_narration_chars: int = DEFAULT_MAX_NARRATION_CHARS,
) -> list[StoryPage]:
    """
    Parse the model output into exactly ``page_count`` pages or raise NarrativeFormatError.
    """
    try:
        parsed = json.loads(strip_code_fence(raw_text))
    except json.JSONDecodeError as exc:
        raise NarrativeFormatError("Story response was not valid JSON.") from exc

    if not isinstance(parsed, list):
        raise NarrativeFormatError("Story response must be a JSON array of pages.")

    if len(parsed) != page_count:
        raise NarrativeFormatError(
            f"Expected exactly {page_count} pages, received {len(parsed)}."
        )

    return [
        _convert_page(item, number, max_narration_chars)
        for number, item in enumerate(parsed, start=1)
    ]


def _convert_page(item: Any, number: int, max_narration_chars: int) -> StoryPage:
    if not isinstance(item, dict):
        raise NarrativeFormatError(f"Page {number} is not a JSON object.")

    narration = _required_text(item, "narration", number)
    illustration_prompt = _required_text(item, "illustration_prompt", number)

    if len(narration) > max_narration_chars:
        raise NarrativeFormatError(
            f"Page {number} narration is {len(narration)} characters; the limit is {max_narration_chars}."
        )

    return StoryPage(
        page_number=number,
        narration=narration,
        illustration_prompt=illustration_prompt,
    )


def _required_text(item: dict[str, Any], key: str, number: int) -> str:
    value = item.get(key)
    if not isinstance(value, str) or not value.strip():
        raise NarrativeFormatError(f"Page {number} is missing '{key}'.")
    return value.strip()
