"""
Bounded retry helper for transient provider throttling.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

DEFAULT_DELAYS: tuple[float, ...] = (2.0, 5.0)

_RETRYABLE_MARKERS = (
    "429",
    "too many requests",
    "rate limit",
    "ratelimit",
    "resource exhausted",
    "quota exceeded",
)


def is_rate_limited(exc: BaseException) -> bool:
    """Return True when the error looks like provider throttling rather than a real failure."""
    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    if status == 429:
        return True
    text = f"{type(exc).__name__} {exc}".lower()
    return any(marker in text for marker in _RETRYABLE_MARKERS)


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    delays: Sequence[float] = DEFAULT_DELAYS,
    **kwargs: Any,
) -> T:
    """
    Await ``func`` and retry only on rate-limit errors, sleeping ``delays[i]`` before retry ``i + 1``.

    Any other error propagates immediately, as does the final attempt's error.
    """
    for attempt, delay in enumerate(delays, start=1):
        try:
            return await func(*args, **kwargs)
        except Exception as exc:
            if not is_rate_limited(exc):
                raise
            logger.warning(
                "Provider throttled (attempt %d/%d): %s. Retrying in %.1fs.",
                attempt,
                len(delays) + 1,
                exc,
                delay,
            )
            await asyncio.sleep(delay)

    return await func(*args, **kwargs)
