"""
Bounded retry for cloud API calls.

Cloud APIs are eventually consistent after a topology change, so every
mutating call is retried a fixed number of times with a fixed interval.
"""

from __future__ import annotations

import asyncio

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from cloudfailover.constants import MAX_RETRIES, RETRY_INTERVAL
from cloudfailover.core.errors import RetryExhaustedError, format_error

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget applied to a single call."""

    max_retries: int = MAX_RETRIES
    interval: float = RETRY_INTERVAL  # seconds

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


async def retrier(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    policy: RetryPolicy | None = None,
    **kwargs: Any,
) -> T:
    """Await ``func(*args, **kwargs)`` until it succeeds or the budget runs out.

    Args:
        func: Coroutine function to call
        *args: Positional arguments for func
        policy: Retry budget, defaults to RetryPolicy()
        **kwargs: Keyword arguments for func

    Returns:
        Whatever func returns on its first successful attempt

    Raises:
        RetryExhaustedError: every attempt raised
        ValueError: the policy allows no attempts
    """
    policy = policy or RetryPolicy()

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            logger.warning(
                "Call failed",
                call=getattr(func, "__name__", repr(func)),
                attempt=attempt,
                max_attempts=policy.max_attempts,
                error=format_error(e),
            )
            if attempt == policy.max_attempts:
                raise RetryExhaustedError(policy.max_attempts, e) from e
            await asyncio.sleep(policy.interval)

    raise ValueError(f"Retry policy allows no attempts: {policy}")
