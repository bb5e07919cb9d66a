"""
Error definitions for pgnfetch.

Components raise the typed errors below; only the HTTP boundary maps them to
response categories. Each error carries an ErrorCode and the HTTP status the
boundary should answer with.

Error codes:
- BAD_REQUEST: Missing or malformed input (client-side fix needed)
- NOT_FOUND: Page loaded but no move list was found
- UPSTREAM_FAILURE: Remote browser or target page unreachable
- SERVICE_BUSY: Concurrency gate queue is full or the wait timed out
- SERVER_ERROR: Unexpected internal error
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Response error categories."""

    BAD_REQUEST = "BAD_REQUEST"
    """URL missing, not a string, or not http(s).
    Action: Fix the request and resend."""

    NOT_FOUND = "NOT_FOUND"
    """No move tokens were extracted from the page.
    Action: Check the URL points at a game page."""

    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"
    """Remote browser connection or page navigation failed.
    Action: Retry the whole request later."""

    SERVICE_BUSY = "SERVICE_BUSY"
    """Too many requests are queued for a browser slot.
    Action: Retry after a short delay."""

    SERVER_ERROR = "SERVER_ERROR"
    """Unexpected internal error.
    Action: Check request_id in logs."""


HTTP_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.BAD_REQUEST: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.UPSTREAM_FAILURE: 502,
    ErrorCode.SERVICE_BUSY: 503,
    ErrorCode.SERVER_ERROR: 500,
}


class FetcherError(Exception):
    """
    Base exception for pgnfetch errors.

    Provides structured error responses for the HTTP boundary.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize error.

        Args:
            code: Error code from ErrorCode enum.
            message: Human-readable error message (safe to return to clients).
            details: Optional additional error details.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    @property
    def http_status(self) -> int:
        """HTTP status the boundary should answer with."""
        return HTTP_STATUS_BY_CODE[self.code]

    def to_dict(self) -> dict[str, Any]:
        """
        Convert error to response format.

        Returns:
            Dictionary suitable for a JSON error response.
        """
        result: dict[str, Any] = {
            "ok": False,
            "status": "error",
            "error_code": self.code.value,
            "error": self.message,
        }

        if self.details:
            result["details"] = self.details

        return result


class InvalidInputError(FetcherError):
    """Raised when the request URL is missing or malformed."""

    def __init__(self, message: str, *, received: Any = None):
        details = {}
        if received is not None:
            details["received"] = str(received)[:200]
        super().__init__(
            ErrorCode.BAD_REQUEST,
            message,
            details=details if details else None,
        )


class BrowserConnectionError(FetcherError, ConnectionError):
    """Raised when the remote browser endpoint is unreachable after all retries."""

    def __init__(self, endpoint: str, *, attempts: int, last_error: Exception | None = None):
        super().__init__(
            ErrorCode.UPSTREAM_FAILURE,
            f"Remote browser unreachable after {attempts} attempts",
            details={"endpoint": endpoint, "attempts": attempts},
        )
        self.attempts = attempts
        self.last_error = last_error


class NavigationError(FetcherError):
    """Raised when the target page fails to load under every wait criterion."""

    def __init__(self, url: str, *, attempts: int, last_error: Exception | None = None):
        super().__init__(
            ErrorCode.UPSTREAM_FAILURE,
            "Target page failed to load",
            details={"url": url[:200], "attempts": attempts},
        )
        self.attempts = attempts
        self.last_error = last_error


class GateOverloadedError(FetcherError):
    """Raised when a browser slot cannot be granted (queue full or wait timed out)."""

    def __init__(self, reason: str, *, waiting: int, max_waiters: int):
        super().__init__(
            ErrorCode.SERVICE_BUSY,
            "Service busy, retry later",
            details={"reason": reason, "waiting": waiting, "max_waiters": max_waiters},
        )
        self.reason = reason


class ConfigurationError(Exception):
    """Raised when a required setting is missing or invalid at startup."""

    def __init__(self, message: str, *, setting: str | None = None):
        super().__init__(message)
        self.setting = setting


def server_error() -> FetcherError:
    """Generic error returned for unclassified faults (no internal detail)."""
    return FetcherError(ErrorCode.SERVER_ERROR, "server error")


def pgn_not_found() -> FetcherError:
    """Error returned when the page loaded but held no move list."""
    return FetcherError(ErrorCode.NOT_FOUND, "PGN not found")
