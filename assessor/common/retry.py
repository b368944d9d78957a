"""Bounded retry with jittered exponential backoff for async callers."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Full-jitter delay before retry number ``attempt`` (1-based)."""
    return random.uniform(0, min(cap, base * (2 ** (attempt - 1))))


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    retry_on: tuple[type[BaseException], ...],
    max_attempts: int,
    base_delay: float,
    max_delay: float,
    description: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or ``max_attempts`` is reached.

    Only exceptions listed in ``retry_on`` are retried; anything else, and the
    last retryable failure, propagates unchanged.

    Args:
        operation: Zero-argument coroutine factory
        retry_on: Exception types worth retrying
        max_attempts: Total attempts including the first
        base_delay: Backoff base in seconds
        max_delay: Cap on a single backoff in seconds
        description: Human readable name of the operation for logs
        sleep: Injected sleep (tests pass a no-op)

    Returns:
        Result of the first successful attempt
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except retry_on as e:
            if attempt >= max_attempts:
                logger.warning(f"{description} failed after {attempt} attempt(s): {e}")
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.info(
                f"{description} failed (attempt {attempt}/{max_attempts}): {e}; "
                f"retrying in {delay:.2f}s"
            )
            await sleep(delay)
            attempt += 1
