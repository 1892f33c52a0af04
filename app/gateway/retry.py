"""Retry with linear backoff for provider calls.

Only transient provider failures are retried. Delay before attempt n (n >= 2)
is ``base_delay * (n - 1)``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from app.gateway.errors import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, ProviderError) and error.retryable


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 2,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or a non-retryable error occurs.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        max_attempts: Total attempts including the first one.
        base_delay: Seconds; multiplied by the number of failed attempts so far.
        sleep: Awaitable sleep, injectable for tests.

    Raises:
        The last error unchanged once attempts are exhausted, or the first
        non-retryable error immediately.
    """
    max_attempts = max(1, max_attempts)
    last_error: BaseException | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            last_error = e
            if not is_retryable(e) or attempt == max_attempts:
                raise

            wait = base_delay * attempt
            logger.info(
                "AI call failed (attempt %d/%d): %s; retrying in %.1fs",
                attempt,
                max_attempts,
                e,
                wait,
            )
            await sleep(wait)

    # Unreachable: the loop either returns or raises
    raise last_error  # type: ignore[misc]
