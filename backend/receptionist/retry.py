"""Bounded exponential-backoff retry for async provider calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

BACKOFF_MULTIPLIER = 2.0


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    label: str = "operation",
) -> T:
    """Await *operation* until it succeeds or *max_attempts* is reached.

    The delay before attempt ``n + 1`` is ``base_delay * 2 ** (n - 1)``.
    Exceptions outside *retry_on* propagate immediately; after the last
    attempt the final exception propagates.
    """
    attempts = max(1, max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            if attempt == attempts:
                logger.warning("%s failed after %d attempt(s): %s", label, attempt, exc)
                raise
            delay = base_delay * BACKOFF_MULTIPLIER ** (attempt - 1)
            logger.info(
                "%s attempt %d/%d failed (%s); retrying in %.2fs",
                label, attempt, attempts, exc, delay,
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
