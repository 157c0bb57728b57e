"""
Async LiteLLM chat completion helper.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Sequence

from litellm import acompletion

from .errors import ProviderError

ChatMessage = Mapping[str, Any]


@dataclass
class ChatResult:
    """
    Text of the first completion choice plus the provider's raw response.
    """

    text: str
    raw: Any


CompletionCallable = Callable[..., Awaitable[ChatResult]]


async def call_chat_completion(
    *,
    model: str,
    messages: Sequence[ChatMessage],
    temperature: float | None = None,
    max_tokens: int | None = None,
    api_key: str | None = None,
    timeout: float | None = None,
    **extra_kwargs: Any,
) -> ChatResult:
    """
    Send one chat request through ``litellm.acompletion``.

    Optional arguments left as ``None`` are not forwarded, so LiteLLM falls
    back to the provider defaults and its own environment variables.
    """
    optional = {
        "temperature": temperature,
        "max_tokens": max_tokens,
        "api_key": api_key,
        "timeout": timeout,
    }
    request = {key: value for key, value in optional.items() if value is not None}
    request.update(extra_kwargs)

    response = await acompletion(model=model, messages=list(messages), **request)
    return ChatResult(text=_first_choice_text(response), raw=response)


def _first_choice_text(response: Any) -> str:
    try:
        content = response["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ProviderError("Unexpected LiteLLM response format.") from exc

    if content is None:
        raise ProviderError("LiteLLM response contained no message content.")
    return str(content).strip()
