"""
pgnfetch utilities module.
"""

from pgnfetch.utils.backoff import BackoffConfig, BackoffStrategy, calculate_backoff
from pgnfetch.utils.config import Settings, get_settings, load_settings
from pgnfetch.utils.logging import LogContext, configure_logging, get_logger
from pgnfetch.utils.retry import RetryExhaustedError, RetryPolicy, retry_async

__all__ = [
    "BackoffConfig",
    "BackoffStrategy",
    "calculate_backoff",
    "Settings",
    "get_settings",
    "load_settings",
    "LogContext",
    "configure_logging",
    "get_logger",
    "RetryExhaustedError",
    "RetryPolicy",
    "retry_async",
]
