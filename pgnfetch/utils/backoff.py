"""
Backoff calculation utilities.

Shared by:
- SessionConnector connect retries (pgnfetch/browser/connector.py)
- PageWorkspace navigation fallback (pgnfetch/browser/workspace.py)

Two strategies:
- linear: delay = base_delay * attempt_number (1-indexed)
- exponential: delay = base_delay * exponential_base ^ attempt (0-indexed)
Both are capped at max_delay.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum


class BackoffStrategy(str, Enum):
    """Delay growth between attempts."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class BackoffConfig:
    """Configuration for backoff calculation.

    - base_delay: Starting delay in seconds (0 disables waiting)
    - max_delay: Maximum delay cap in seconds
    - strategy: Linear or exponential growth
    - exponential_base: Base for exponential calculation
    - jitter_factor: Random variation factor (0 = deterministic)

    Example:
        >>> config = BackoffConfig(base_delay=2.0, max_delay=10.0)
    """

    base_delay: float = 1.0
    max_delay: float = 30.0
    strategy: BackoffStrategy = BackoffStrategy.LINEAR
    exponential_base: float = 2.0
    jitter_factor: float = 0.0

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.exponential_base <= 1:
            raise ValueError("exponential_base must be > 1")
        if self.jitter_factor < 0 or self.jitter_factor > 1:
            raise ValueError("jitter_factor must be between 0 and 1")


def calculate_backoff(
    attempt: int,
    config: BackoffConfig | None = None,
    *,
    add_jitter: bool = True,
) -> float:
    """Calculate the delay to wait after a failed attempt.

    Args:
        attempt: Failed attempt index (0-indexed, 0 = first failure)
        config: Backoff configuration (default: BackoffConfig())
        add_jitter: Whether to add random jitter when jitter_factor > 0

    Returns:
        Delay in seconds

    Example:
        >>> calculate_backoff(0)  # linear, after first failure
        1.0
        >>> calculate_backoff(2)  # linear, after third failure
        3.0
        >>> calculate_backoff(2, BackoffConfig(strategy=BackoffStrategy.EXPONENTIAL))
        4.0
    """
    if attempt < 0:
        raise ValueError("attempt must be non-negative")

    if config is None:
        config = BackoffConfig()

    if config.strategy is BackoffStrategy.LINEAR:
        raw = config.base_delay * (attempt + 1)
    else:
        raw = config.base_delay * (config.exponential_base**attempt)

    delay = min(raw, config.max_delay)

    if add_jitter and config.jitter_factor > 0:
        jitter_range = delay * config.jitter_factor
        delay += random.uniform(-jitter_range, jitter_range)

    return max(0.0, delay)


def calculate_total_delay(
    max_attempts: int,
    config: BackoffConfig | None = None,
) -> float:
    """Worst-case total wait for max_attempts attempts (no jitter).

    Useful for estimating timeout budgets. There are max_attempts - 1 waits.

    Example:
        >>> calculate_total_delay(3)  # 1 + 2
        3.0
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    if config is None:
        config = BackoffConfig()

    return sum(
        calculate_backoff(attempt, config, add_jitter=False) for attempt in range(max_attempts - 1)
    )
