"""Pydantic schemas for protection rules.

Rate-limiting rules form a discriminated union on ``algorithm``: each variant
owns exactly its own fields, and fields belonging to another algorithm are
rejected. Attribute names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

# Integers stay integers on the wire; fractional rates are kept as floats
Number = Union[int, float]


class Mode(str, Enum):
    """Enforcement mode forwarded to the protection service."""

    LIVE = "LIVE"
    DRY_RUN = "DRY_RUN"


class Algorithm(str, Enum):
    """Wire tags of the supported rate-limiting algorithms."""

    TOKEN_BUCKET = "TokenBucketRule"
    FIXED_WINDOW = "FixedWindowRule"
    LEAKY_BUCKET = "LeakyBucketRule"
    SLIDING_WINDOW = "SlidingWindowRule"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump the rule with camelCase keys and JSON-ready values."""
        return self.model_dump(by_alias=True, mode="json")


class TokenBucketRule(_WireModel):
    """Token bucket: ``refill_rate`` tokens every ``interval`` seconds."""

    algorithm: Literal["TokenBucketRule"] = "TokenBucketRule"
    mode: Mode = Mode.LIVE
    refill_rate: Number = Field(..., description="Tokens added per interval")
    interval: Number = Field(..., description="Refill interval in seconds")
    capacity: Number = Field(..., description="Maximum tokens held by the bucket")


class FixedWindowRule(_WireModel):
    """Fixed window: at most ``limit`` requests per ``window_ms``."""

    algorithm: Literal["FixedWindowRule"] = "FixedWindowRule"
    mode: Mode = Mode.LIVE
    window_ms: Number = Field(..., description="Window length in milliseconds")
    limit: Number = Field(..., description="Requests allowed per window")


class LeakyBucketRule(_WireModel):
    """Leaky bucket draining ``leak_rate`` requests per second."""

    algorithm: Literal["LeakyBucketRule"] = "LeakyBucketRule"
    mode: Mode = Mode.LIVE
    leak_rate: Number = Field(..., description="Requests drained per second")
    capacity: Number = Field(..., description="Queue capacity")
    timeout: Number = Field(..., description="Maximum queue wait in milliseconds")


class SlidingWindowRule(_WireModel):
    """Sliding window: at most ``limit`` requests in any ``window_ms`` span."""

    algorithm: Literal["SlidingWindowRule"] = "SlidingWindowRule"
    mode: Mode = Mode.LIVE
    window_ms: Number = Field(..., description="Window length in milliseconds")
    limit: Number = Field(..., description="Requests allowed per window")


RateLimitingRule = Annotated[
    Union[TokenBucketRule, FixedWindowRule, LeakyBucketRule, SlidingWindowRule],
    Field(discriminator="algorithm"),
]


class ShieldRule(_WireModel):
    """Abuse-shield configuration. All fields are required together."""

    mode: Mode = Mode.LIVE
    window_ms: Number = Field(..., description="Observation window in milliseconds")
    limit: Number = Field(..., description="Requests allowed per window")
    threshold: Number = Field(..., description="Suspicious hits before blocking")


_rate_limiting_adapter: TypeAdapter[RateLimitingRule] = TypeAdapter(RateLimitingRule)


def parse_rate_limiting_rule(value: RateLimitingRule | Mapping[str, Any]) -> RateLimitingRule:
    """Coerce a rule model or mapping into a rate-limiting rule variant.

    Mappings may be flat (``{"algorithm": ..., "windowMs": ...}``) or use the
    nested ``{"algorithm": ..., "rule": {...}}`` form.

    Raises:
        pydantic.ValidationError: If the tag is unknown or fields do not match.
    """
    if isinstance(value, (TokenBucketRule, FixedWindowRule, LeakyBucketRule, SlidingWindowRule)):
        return value

    data = dict(value)
    nested = data.pop("rule", None)
    if isinstance(nested, Mapping):
        data = {**nested, **data}

    return _rate_limiting_adapter.validate_python(data)


def parse_shield_rule(value: ShieldRule | Mapping[str, Any]) -> ShieldRule:
    """Coerce a shield model or mapping into a ``ShieldRule``."""
    if isinstance(value, ShieldRule):
        return value
    return ShieldRule.model_validate(dict(value))
