"""Schemas for decisions synthesized locally by the client."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RATE_LIMIT_EXCEEDED_MESSAGE = "Rate limit exceeded"
INTERNAL_ERROR_MESSAGE = "Internal server error"
TIMEOUT_MESSAGE = "Protection request timed out"
INVALID_USER_ID_MESSAGE = "Invalid userId: expected a string"
INVALID_REQUESTED_MESSAGE = "Invalid requested tokens: expected a positive integer"


class Denial(BaseModel):
    """Denial record returned when the client refuses a request on its own.

    Remote decisions are passed through untouched; this shape is only used
    for validation failures, caller errors and transport failures.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    is_denied: bool = Field(True, description="Always true for local denials")
    status: int = Field(..., description="HTTP-like status code")
    message: str = Field(..., description="Reason for the denial")

    def to_decision(self) -> dict[str, Any]:
        """Return the camelCase dict handed back to ``protect()`` callers."""
        return self.model_dump(by_alias=True)


def deny(status: int, message: str) -> dict[str, Any]:
    """Build a local denial decision."""
    return Denial(status=status, message=message).to_decision()
