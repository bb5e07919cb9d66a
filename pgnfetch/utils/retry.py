"""
Retry policy shared by the session connector and the navigation fallback.

The retried callable receives the 0-indexed attempt number so that callers
can vary behaviour per attempt (the navigation fallback loosens its wait
criterion on the second attempt).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from pgnfetch.utils.backoff import BackoffConfig, calculate_backoff
from pgnfetch.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """Raised when all attempts failed.

    Attributes:
        attempts: Number of attempts made
        last_error: The exception raised by the final attempt
    """

    def __init__(self, message: str, attempts: int, last_error: Exception | None = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


@dataclass
class RetryPolicy:
    """Retry policy: how many attempts, how long to wait, what to retry.

    Attributes:
        max_attempts: Total attempts including the first one
        backoff: Delay calculation between attempts
        retryable_exceptions: Exception types that trigger another attempt;
            anything else propagates immediately

    Example:
        >>> policy = RetryPolicy(max_attempts=3)
        >>> policy.delay_after(0)
        1.0
    """

    max_attempts: int = 3
    backoff: BackoffConfig = field(default_factory=BackoffConfig)
    retryable_exceptions: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def should_retry(self, exc: BaseException) -> bool:
        return isinstance(exc, self.retryable_exceptions)

    def delay_after(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt (0-indexed)."""
        return calculate_backoff(attempt, self.backoff)


async def retry_async(
    func: Callable[[int], Awaitable[T]],
    *,
    policy: RetryPolicy,
    operation_name: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run func until it succeeds or the policy is exhausted.

    Args:
        func: Async callable taking the attempt index (0-indexed)
        policy: Retry policy
        operation_name: Name for logging
        sleep: Sleep coroutine (injectable for tests)

    Returns:
        Result of the first successful attempt

    Raises:
        RetryExhaustedError: When every attempt failed with a retryable error
        Exception: The original error when it is not retryable
    """
    last_error: Exception | None = None

    for attempt in range(policy.max_attempts):
        try:
            return await func(attempt)
        except Exception as e:
            last_error = e

            if not policy.should_retry(e):
                logger.warning(
                    "Non-retryable exception",
                    operation=operation_name,
                    error_type=type(e).__name__,
                    error=str(e),
                    attempt=attempt + 1,
                )
                raise

            if attempt + 1 >= policy.max_attempts:
                break

            delay = policy.delay_after(attempt)
            logger.info(
                "Retrying after exception",
                operation=operation_name,
                error_type=type(e).__name__,
                attempt=attempt + 1,
                max_attempts=policy.max_attempts,
                delay_seconds=round(delay, 2),
            )
            if delay > 0:
                await sleep(delay)

    logger.warning(
        "Retries exhausted",
        operation=operation_name,
        attempts=policy.max_attempts,
        error_type=type(last_error).__name__ if last_error else None,
    )
    raise RetryExhaustedError(
        f"{operation_name} failed after {policy.max_attempts} attempts",
        attempts=policy.max_attempts,
        last_error=last_error,
    )
