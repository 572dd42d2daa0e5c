"""Structural validation of protection payloads.

The payload is checked before any network call so that a request which can
never be honoured costs neither a round trip nor a billable API call, and the
caller gets a local 400-class reason distinct from the service's own errors.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from zsecure.core.errors import PayloadValidationError
from zsecure.schemas.rules import Algorithm

REQUIRED_RULE_FIELDS: dict[str, tuple[str, ...]] = {
    Algorithm.TOKEN_BUCKET.value: ("refillRate", "interval", "capacity"),
    Algorithm.FIXED_WINDOW.value: ("windowMs", "limit"),
    Algorithm.SLIDING_WINDOW.value: ("windowMs", "limit"),
    Algorithm.LEAKY_BUCKET.value: ("leakRate", "capacity", "timeout"),
}

REQUIRED_SHIELD_FIELDS: tuple[str, ...] = ("windowMs", "limit", "threshold")


def _missing(fragment: Mapping[str, Any], fields: tuple[str, ...]) -> list[str]:
    # Zero and empty values count as missing
    return [name for name in fields if not fragment.get(name)]


def _validate_rate_limiting(fragment: Any) -> None:
    if not isinstance(fragment, Mapping):
        raise PayloadValidationError(
            code="unsupported_algorithm",
            message="Rate limiting rule must be an object with an algorithm",
        )

    algorithm = fragment.get("algorithm")
    if isinstance(algorithm, Algorithm):
        algorithm = algorithm.value

    required = REQUIRED_RULE_FIELDS.get(algorithm) if isinstance(algorithm, str) else None
    if required is None:
        raise PayloadValidationError(
            code="unsupported_algorithm",
            message=(
                f"Unsupported rate limiting algorithm: '{algorithm}'. "
                f"Supported algorithms: {', '.join(REQUIRED_RULE_FIELDS)}"
            ),
            details={"algorithm": str(algorithm)},
        )

    missing = _missing(fragment, required)
    if missing:
        raise PayloadValidationError(
            code="incomplete_rule",
            message=f"Incomplete {algorithm} rule: missing {', '.join(missing)}",
            details={"algorithm": algorithm, "missing": missing},
        )


def _validate_shield(fragment: Any) -> None:
    if not isinstance(fragment, Mapping):
        raise PayloadValidationError(
            code="incomplete_shield_rule",
            message=f"Incomplete shield rule: missing {', '.join(REQUIRED_SHIELD_FIELDS)}",
            details={"missing": list(REQUIRED_SHIELD_FIELDS)},
        )

    missing = _missing(fragment, REQUIRED_SHIELD_FIELDS)
    if fragment.get("requestDetails") is None:
        missing.append("requestDetails")

    if missing:
        raise PayloadValidationError(
            code="incomplete_shield_rule",
            message=f"Incomplete shield rule: missing {', '.join(missing)}",
            details={"missing": missing},
        )


def validate_payload(payload: Mapping[str, Any]) -> None:
    """Validate an assembled payload, stopping at the first failure.

    Checks, in order: API key, identification key, rate-limiting algorithm
    and its required fields, shield fields and request snapshot.

    Args:
        payload: Wire payload produced by ``build_payload``.

    Raises:
        PayloadValidationError: With code ``missing_api_key``,
            ``missing_identification_key``, ``unsupported_algorithm``,
            ``incomplete_rule`` or ``incomplete_shield_rule``.
    """
    if not payload.get("key"):
        raise PayloadValidationError(
            code="missing_api_key",
            message="API key is required",
            details={"missing": ["key"]},
        )

    if not payload.get("identificationKey"):
        raise PayloadValidationError(
            code="missing_identification_key",
            message="Identification key is required",
            details={"missing": ["identificationKey"]},
        )

    if payload.get("rateLimiting") is not None:
        _validate_rate_limiting(payload["rateLimiting"])

    if payload.get("shield") is not None:
        _validate_shield(payload["shield"])
