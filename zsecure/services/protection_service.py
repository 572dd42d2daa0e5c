"""Protection service orchestrating identity, payload, validation and dispatch.

This is the client's public entry point. For every ``protect()`` call it:
- Rejects malformed caller input locally
- Resolves the caller identity when no user id is given
- Builds and validates the protection payload
- Sends the payload to ``POST {base_url}/protection``
- Maps every failure to a uniform denial record

Only construction errors are raised; everything that happens inside
``protect()`` comes back as a decision dict.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from zsecure.adapters.transport.base import AbstractTransport
from zsecure.adapters.transport.factory import create_transport
from zsecure.core.config import ClientSettings, settings
from zsecure.core.errors import (
    ConfigurationError,
    PayloadValidationError,
    TransportError,
    TransportTimeoutError,
)
from zsecure.core.identity import resolve_client_ip
from zsecure.core.keys import generate_identification_key
from zsecure.core.logging import get_logger
from zsecure.schemas.decision import (
    INTERNAL_ERROR_MESSAGE,
    INVALID_REQUESTED_MESSAGE,
    INVALID_USER_ID_MESSAGE,
    RATE_LIMIT_EXCEEDED_MESSAGE,
    TIMEOUT_MESSAGE,
    deny,
)
from zsecure.schemas.rules import (
    RateLimitingRule,
    ShieldRule,
    parse_rate_limiting_rule,
    parse_shield_rule,
)
from zsecure.services.payload_builder import build_payload
from zsecure.services.payload_validator import validate_payload

PROTECTION_PATH = "/protection"
DEFAULT_REQUESTED = 1


class ProtectionConfig(BaseModel):
    """Immutable client configuration, fixed at construction time."""

    model_config = ConfigDict(frozen=True)

    api_key: str = Field(..., min_length=1)
    base_url: str
    log_enabled: bool = False
    timeout_seconds: float = Field(5.0, gt=0)
    identification_key: str = Field(default_factory=generate_identification_key)
    rate_limiting_rule: RateLimitingRule | None = None
    shield_rule: ShieldRule | None = None
    trusted_proxies: tuple[str, ...] = Field(
        default=(),
        description="Reserved: proxies whose forwarding headers may be trusted (not enforced)",
    )

    @property
    def protection_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{PROTECTION_PATH}"


def _fingerprint(value: str) -> str:
    """Hash a secret for logging without exposing it."""
    return hashlib.sha256(value.encode()).hexdigest()[:16]


class ProtectionService:
    """Client deciding whether an inbound request may proceed.

    Attributes:
        config: Frozen configuration shared by all calls.
        transport: Transport used to reach the protection service.
        logger: Logger receiving diagnostics and failure reports.
    """

    def __init__(
        self,
        api_key: str,
        *,
        rate_limiting_rule: RateLimitingRule | Mapping[str, Any] | None = None,
        shield_rule: ShieldRule | Mapping[str, Any] | None = None,
        base_url: str | None = None,
        log_enabled: bool | None = None,
        timeout_seconds: float | None = None,
        trusted_proxies: Sequence[str] = (),
        transport: AbstractTransport | None = None,
        logger: logging.Logger | None = None,
        client_settings: ClientSettings | None = None,
    ) -> None:
        """Validate configuration and prepare the transport.

        Args:
            api_key: Secret API key for the protection service.
            rate_limiting_rule: Rate-limiting rule (model or mapping).
            shield_rule: Shield rule (model or mapping).
            base_url: Service base URL; defaults to ``ZSECURE_BASE_URL``/``BASE_URL``
                or ``http://localhost:3000``.
            log_enabled: Enable diagnostic logging of configuration, payloads and responses.
            timeout_seconds: Request timeout; defaults to ``ZSECURE_TIMEOUT_SECONDS``.
            trusted_proxies: Reserved allowlist of trusted proxies (not enforced).
            transport: Optional transport (not closed by ``aclose``); an httpx
                transport is created and owned otherwise.
            logger: Optional logger; defaults to the ``zsecure`` logger.
            client_settings: Environment defaults; defaults to global settings.

        Raises:
            ConfigurationError: If the API key is missing, no rule is configured,
                or a rule is malformed.
        """
        defaults = client_settings or settings.client

        if not api_key or not isinstance(api_key, str):
            raise ConfigurationError(
                code="missing_api_key",
                message="API key is required",
            )

        if rate_limiting_rule is None and shield_rule is None:
            raise ConfigurationError(
                code="missing_rules",
                message="At least one of rate_limiting_rule or shield_rule is required",
                details={"hint": "Configure a rate limiting rule, a shield rule, or both"},
            )

        try:
            self.config = ProtectionConfig(
                api_key=api_key,
                base_url=base_url or defaults.base_url,
                log_enabled=defaults.logging if log_enabled is None else log_enabled,
                timeout_seconds=(
                    defaults.timeout_seconds if timeout_seconds is None else timeout_seconds
                ),
                rate_limiting_rule=(
                    parse_rate_limiting_rule(rate_limiting_rule)
                    if rate_limiting_rule is not None
                    else None
                ),
                shield_rule=parse_shield_rule(shield_rule) if shield_rule is not None else None,
                trusted_proxies=tuple(trusted_proxies),
            )
        except (ValidationError, TypeError, ValueError) as exc:
            raise ConfigurationError(
                code="invalid_rule",
                message=f"Invalid protection configuration: {exc}",
            ) from exc

        self.logger = logger or get_logger(__name__)
        self._owns_transport = transport is None
        self.transport = transport or create_transport(self.config.timeout_seconds)

        self._debug(
            "protect.configured",
            base_url=self.config.base_url,
            timeout_seconds=self.config.timeout_seconds,
            rate_limiting_rule=(
                self.config.rate_limiting_rule.to_wire()
                if self.config.rate_limiting_rule
                else None
            ),
            shield_rule=self.config.shield_rule.to_wire() if self.config.shield_rule else None,
            api_key_hash=_fingerprint(self.config.api_key),
        )

    def _debug(self, event: str, **fields: Any) -> None:
        """Emit a diagnostic record when logging is enabled on this client."""
        if self.config.log_enabled:
            self.logger.info(event, extra=fields)

    def _resolve_user_id(self, request: Any, user_id: str | None) -> str:
        if user_id:
            return user_id
        return resolve_client_ip(request)

    async def _send(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Send the payload and translate the outcome into a decision.

        Args:
            payload: Validated wire payload.

        Returns:
            dict[str, Any]: Remote decision unchanged, or a local denial.
        """
        url = self.config.protection_url

        try:
            response = await self.transport.post_json(url, payload)
        except TransportTimeoutError as exc:
            self.logger.warning(
                "protect.timeout",
                extra={"url": url, "error_code": exc.code, "error_message": exc.message},
            )
            return deny(504, TIMEOUT_MESSAGE)
        except TransportError as exc:
            self.logger.error(
                "protect.transport_error",
                extra={"url": url, "error_code": exc.code, "error_message": exc.message},
            )
            return deny(500, INTERNAL_ERROR_MESSAGE)

        self._debug(
            "protect.response",
            status_code=response.status_code,
            response_body=response.body,
        )

        if response.status_code == 429:
            return deny(429, RATE_LIMIT_EXCEEDED_MESSAGE)

        if not response.is_success:
            self.logger.error(
                "protect.server_error",
                extra={"url": url, "status_code": response.status_code},
            )
            return deny(500, INTERNAL_ERROR_MESSAGE)

        if response.body is None:
            self.logger.error(
                "protect.malformed_response",
                extra={"url": url, "status_code": response.status_code},
            )
            return deny(500, INTERNAL_ERROR_MESSAGE)

        return response.body

    async def protect(
        self,
        request: Any,
        user_id: str | None = None,
        requested: int | None = None,
    ) -> dict[str, Any]:
        """Ask the protection service whether ``request`` may proceed.

        Args:
            request: Inbound request (mapping, Starlette request, event dict...).
            user_id: Caller identity; the client address is used when empty.
            requested: Tokens to consume; ``None`` means 1.

        Returns:
            dict[str, Any]: The service's decision body unchanged, or a local
            denial ``{"isDenied": True, "status": int, "message": str}``.
        """
        if user_id is not None and not isinstance(user_id, str):
            self.logger.warning(
                "protect.invalid_user_id",
                extra={"user_id_type": type(user_id).__name__},
            )
            return deny(400, INVALID_USER_ID_MESSAGE)

        if requested is None:
            requested = DEFAULT_REQUESTED
        elif isinstance(requested, bool) or not isinstance(requested, int) or requested < 1:
            self.logger.warning(
                "protect.invalid_requested",
                extra={"requested": repr(requested)},
            )
            return deny(400, INVALID_REQUESTED_MESSAGE)

        resolved_user_id = self._resolve_user_id(request, user_id)
        payload = build_payload(
            self.config,
            user_id=resolved_user_id,
            requested=requested,
            request=request,
        )

        try:
            validate_payload(payload)
        except PayloadValidationError as exc:
            self.logger.warning(
                "protect.invalid_payload",
                extra={"error_code": exc.code, "error_message": exc.message},
            )
            return deny(400, exc.message)

        self._debug("protect.request", url=self.config.protection_url, payload=payload)

        return await self._send(payload)

    async def aclose(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport:
            await self.transport.aclose()

    async def __aenter__(self) -> "ProtectionService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def create_protection_service(api_key: str, **options: Any) -> ProtectionService:
    """Factory mirroring ``ProtectionService(...)`` for call sites that prefer functions.

    Args:
        api_key: Secret API key for the protection service.
        **options: Keyword options accepted by ``ProtectionService``.

    Returns:
        ProtectionService: Configured client.

    Raises:
        ConfigurationError: If the configuration is unusable.
    """
    return ProtectionService(api_key, **options)
