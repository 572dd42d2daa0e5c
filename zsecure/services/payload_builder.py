"""Assembly of the protection payload sent to the remote service.

Everything here is a pure transformation from configuration and request
data to the camelCase wire record:

    {
      "key": ..., "identificationKey": ..., "userId": ...,
      "rateLimiting": {"algorithm": ..., "mode": ..., <fields>, "requested": n},
      "shield": {"mode": ..., "windowMs": ..., "limit": ..., "threshold": ...,
                 "requestDetails": {"params": ..., "url": ..., "query": ..., "body": ...}}
    }

Fragments for rules that are not configured are left out entirely.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from zsecure.schemas.rules import RateLimitingRule, ShieldRule

if TYPE_CHECKING:
    from zsecure.services.protection_service import ProtectionConfig

SNAPSHOT_FIELDS: dict[str, tuple[str, ...]] = {
    "params": ("params", "path_params", "pathParameters"),
    "url": ("url", "path", "rawPath"),
    "query": ("query", "query_params", "queryStringParameters"),
    "body": ("body",),
}


def _stringify(value: Any) -> str:
    if value is None or callable(value):
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        value = dict(value)
    elif isinstance(value, (tuple, set, frozenset)):
        value = list(value)
    elif not isinstance(value, (list, int, float, bool)):
        # URL objects and similar render as their text form
        return str(value)
    try:
        return json.dumps(value, default=str, separators=(",", ":"))
    except (TypeError, ValueError):
        return str(value)


def _field(request: Any, names: tuple[str, ...]) -> Any:
    for name in names:
        if isinstance(request, Mapping):
            value = request.get(name)
        else:
            try:
                value = getattr(request, name, None)
            except Exception:  # noqa: BLE001 - properties on framework requests may raise
                value = None
        if value is not None and not callable(value):
            return value
    return None


def build_request_snapshot(request: Any) -> dict[str, str]:
    """Serialize the parts of the inbound request the shield inspects.

    Args:
        request: Mapping or object describing the inbound request.

    Returns:
        dict[str, str]: ``params``, ``url``, ``query`` and ``body`` as strings,
        each ``""`` when the request does not carry it.
    """
    return {key: _stringify(_field(request, names)) for key, names in SNAPSHOT_FIELDS.items()}


def normalize_rate_limiting(rule: RateLimitingRule | None, requested: int) -> dict[str, Any] | None:
    """Flatten the active rate-limiting rule and attach ``requested``."""
    if rule is None:
        return None
    return {**rule.to_wire(), "requested": requested}


def normalize_shield(rule: ShieldRule | None, request: Any) -> dict[str, Any] | None:
    """Flatten the shield rule and attach the request snapshot."""
    if rule is None:
        return None
    return {**rule.to_wire(), "requestDetails": build_request_snapshot(request)}


def build_payload(
    config: "ProtectionConfig",
    *,
    user_id: str,
    requested: int,
    request: Any,
) -> dict[str, Any]:
    """Build the full wire payload for one ``protect()`` call.

    Args:
        config: Frozen client configuration.
        user_id: Resolved caller identity.
        requested: Number of tokens requested.
        request: Inbound request used for the shield snapshot.

    Returns:
        dict[str, Any]: JSON-ready payload; absent rules produce no fragment.
    """
    payload: dict[str, Any] = {
        "key": config.api_key,
        "identificationKey": config.identification_key,
        "userId": user_id,
    }

    rate_limiting = normalize_rate_limiting(config.rate_limiting_rule, requested)
    if rate_limiting is not None:
        payload["rateLimiting"] = rate_limiting

    shield = normalize_shield(config.shield_rule, request)
    if shield is not None:
        payload["shield"] = shield

    return payload
