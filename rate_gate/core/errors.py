"""Application-level exception types.

This module defines domain errors used across the limiter, its stores and
the HTTP layer, enabling consistent error handling, logging, and API
responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep shapes flexible while encouraging
    consistent keys across the codebase.
    """

    code: str
    message: str
    hint: str
    field: str
    actual_value: Any
    backend: str
    timeout_s: float
    error_type: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ConfigurationAppError(AppError):
    """Raised when limiter or store configuration is invalid.

    Only ever raised while wiring components together, never while a
    request is being handled.
    """


class KeyExtractionAppError(AppError):
    """Raised by a key extractor that found no identifying data."""


class StoreUnavailableAppError(AppError):
    """Raised when the window store cannot be reached or timed out."""
