"""Bounded exponential backoff for upstream rate limiting."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

import httpx

from .errors import RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def is_rate_limited(exc: BaseException) -> bool:
    """Return True when ``exc`` signals upstream rate limiting (HTTP 429)."""
    if isinstance(exc, RateLimitError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429
    return False


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 2,
    initial_delay: float = 1.0,
    *,
    sleep: Sleep = asyncio.sleep,
    is_retryable: Callable[[BaseException], bool] = is_rate_limited,
) -> T:
    """Run ``operation``, retrying only on rate-limit errors.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt.
        max_attempts: Number of retries allowed after the first call.
        initial_delay: Seconds to wait before the first retry; doubled each time.
        sleep: Awaitable sleep, injectable for tests.
        is_retryable: Predicate selecting which errors are retried.

    Returns:
        The operation's result.

    Raises:
        The operation's own error when it is not retryable, or the last
        rate-limit error once ``max_attempts`` retries are used up.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if not is_retryable(exc) or attempt >= max_attempts:
                raise
            delay = initial_delay * (2**attempt)
            attempt += 1
            logger.warning(
                "Upstream rate limited (%s), retry %d/%d in %.1fs",
                exc,
                attempt,
                max_attempts,
                delay,
            )
            await sleep(delay)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings shared by every upstream call site."""

    max_attempts: int = 2
    initial_delay: float = 1.0
    sleep: Sleep = field(default=asyncio.sleep, compare=False)

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        return await with_retry(
            operation,
            self.max_attempts,
            self.initial_delay,
            sleep=self.sleep,
        )
