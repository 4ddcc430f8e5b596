"""Exponential backoff with jitter for platform calls.

Retries on retryable LpoUploaderErrors (transport failures, rate limits).
Respects the platform's Retry-After hint. Logs each retry attempt.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

from lpo_uploader.errors import LpoUploaderError, RateLimitedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: float = 0.3,
    label: str = "",
) -> T:
    """Await ``fn()`` retrying retryable errors with exponential backoff.

    Args:
        fn: Zero-argument coroutine factory, called once per attempt.
        max_retries: Retries after the first attempt.
        base_delay: Initial delay in seconds.
        max_delay: Maximum delay cap in seconds.
        jitter: Jitter factor (0.0-1.0).
        label: Name used in retry log lines.

    Raises:
        The last error once retries are exhausted, or any non-retryable
        error immediately.
    """
    name = label or getattr(fn, "__name__", "call")
    for attempt in range(max_retries + 1):
        try:
            return await fn()
        except LpoUploaderError as e:
            if not e.retryable or attempt == max_retries:
                raise
            retry_after = e.retry_after if isinstance(e, RateLimitedError) else None
            delay = compute_delay(attempt, base_delay, max_delay, jitter, retry_after)
            logger.warning(
                "Retry %d/%d for %s (%s), waiting %.1fs",
                attempt + 1,
                max_retries,
                name,
                type(e).__name__,
                delay,
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover


def compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: float = 0.0,
    retry_after: float | None = None,
) -> float:
    """Compute delay with exponential backoff + jitter, respecting Retry-After."""
    if retry_after is not None:
        return min(max(retry_after, 0.0), max_delay)

    # Exponential backoff: base * 2^attempt
    delay = min(base_delay * (2**attempt), max_delay)

    jitter_amount = delay * jitter
    delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)


def backoff_schedule(attempts: int, base_delay: float, max_delay: float) -> list[float]:
    """Deterministic delays between ``attempts`` polls (no jitter)."""
    return [compute_delay(i, base_delay, max_delay) for i in range(max(attempts - 1, 0))]


