"""Library-level exception types.

Construction errors are raised to the caller. Validation and transport
errors are raised internally and turned into denial records by the
protection service, so they never cross the ``protect()`` boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and callers."""

    code: str
    message: str
    hint: str
    missing: list[str]
    algorithm: str
    http_status: int
    timeout_seconds: float
    url: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for zsecure failures.

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


class ConfigurationError(AppError):
    """Raised when the client is constructed with an unusable configuration."""


class PayloadValidationError(AppError):
    """Raised when an assembled protection payload fails validation."""


class TransportError(AppError):
    """Raised when the protection service cannot be reached or answers badly."""


class TransportTimeoutError(TransportError):
    """Raised when the protection service does not answer in time."""
