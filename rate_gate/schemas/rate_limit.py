"""Pydantic schemas for rate limit diagnostics."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RateLimitStatusResponse(BaseModel):
    """Caller's quota as seen by the limiter, without consuming any."""

    key_hash: str = Field(
        ..., description="SHA-256 prefix of the client key the caller is counted under."
    )
    limit: int = Field(
        ..., description="Admitted requests per window."
    )
    remaining: int | None = Field(
        ..., description="Requests left in the current window. Null when the store is unavailable."
    )
    reset_at: int | None = Field(
        ...,
        description=(
            "UNIX time (seconds) at which the oldest counted request expires. "
            "Null when the store is unavailable."
        ),
    )
    window_seconds: float = Field(
        ..., description="Sliding window length in seconds."
    )
    store_available: bool = Field(
        True, description="False when the window store could not be reached."
    )
