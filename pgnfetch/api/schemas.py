"""
Pydantic schemas for the pgnfetch HTTP API.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Fetch PGN
# =============================================================================


class FetchPgnRequest(BaseModel):
    """Fetch request.

    url is left loosely typed; the fetch service reports a missing or
    non-http(s) value as a bad request with a precise message.
    """

    model_config = ConfigDict(extra="ignore")

    url: Any = Field(default=None, description="http(s) URL of a game page")


class FetchPgnResponse(BaseModel):
    """Successful fetch response."""

    ok: bool = True
    status: str = "ok"
    pgn: str
    moves: int = Field(..., ge=0, description="Number of half-move tokens")
    strategy: str | None = None
    elapsed_ms: float = 0.0
    request_id: str


class ErrorResponse(BaseModel):
    """Error response for every failure category."""

    ok: bool = False
    status: str = "error"
    error_code: str
    error: str
    details: dict[str, Any] | None = None
    request_id: str


# =============================================================================
# Health Check
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    ok: bool = True
    status: str = "ok"
    running: bool = False
    in_flight: int = 0
    waiting: int = 0
    max_slots: int = 0
    connection: dict[str, Any] = Field(default_factory=dict)
