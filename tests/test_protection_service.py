"""Tests for the protection service (dispatcher)."""

import asyncio
import logging
from unittest.mock import MagicMock

import pytest

from zsecure.core.config import ClientSettings
from zsecure.core.errors import ConfigurationError, TransportError, TransportTimeoutError
from zsecure.schemas.rules import FixedWindowRule, TokenBucketRule
from zsecure.services.protection_service import (
    ProtectionService,
    create_protection_service,
)

FORWARDED_REQUEST = {"headers": {"x-forwarded-for": "1.2.3.4, 5.6.7.8"}, "url": "/items"}


def _service(transport, **options) -> ProtectionService:
    options.setdefault(
        "rate_limiting_rule",
        {"algorithm": "FixedWindowRule", "mode": "LIVE", "windowMs": 60000, "limit": 5},
    )
    return ProtectionService("secret-key", transport=transport, **options)


class TestConstruction:
    """Construction-time configuration errors are fatal."""

    def test_missing_api_key_raises(self, transport, fixed_window_rule) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            ProtectionService("", rate_limiting_rule=fixed_window_rule, transport=transport)

        assert exc_info.value.code == "missing_api_key"

    def test_no_rules_raises(self, transport) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            ProtectionService("secret-key", transport=transport)

        assert exc_info.value.code == "missing_rules"

    def test_malformed_rule_raises(self, transport) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            ProtectionService(
                "secret-key",
                rate_limiting_rule={"algorithm": "TokenBucketRule", "windowMs": 1, "limit": 1},
                transport=transport,
            )

        assert exc_info.value.code == "invalid_rule"

    def test_shield_only_is_valid(self, transport, shield_rule) -> None:
        service = ProtectionService("secret-key", shield_rule=shield_rule, transport=transport)

        assert service.config.rate_limiting_rule is None
        assert service.config.shield_rule is not None

    def test_identification_key_is_generated_once_per_instance(self, transport, fixed_window_rule) -> None:
        first = ProtectionService("k", rate_limiting_rule=fixed_window_rule, transport=transport)
        second = ProtectionService("k", rate_limiting_rule=fixed_window_rule, transport=transport)

        assert first.config.identification_key
        assert first.config.identification_key != second.config.identification_key

    def test_base_url_defaults(self, transport, fixed_window_rule) -> None:
        env_default = ClientSettings(base_url="http://from-env:9000")
        service = ProtectionService(
            "k",
            rate_limiting_rule=fixed_window_rule,
            transport=transport,
            client_settings=env_default,
        )
        explicit = ProtectionService(
            "k",
            rate_limiting_rule=fixed_window_rule,
            transport=transport,
            base_url="https://explicit.example",
            client_settings=env_default,
        )

        assert service.config.protection_url == "http://from-env:9000/protection"
        assert explicit.config.protection_url == "https://explicit.example/protection"

    def test_hardcoded_base_url_when_environment_is_silent(self, transport, fixed_window_rule, monkeypatch) -> None:
        monkeypatch.delenv("ZSECURE_BASE_URL", raising=False)
        monkeypatch.delenv("BASE_URL", raising=False)

        service = ProtectionService(
            "k",
            rate_limiting_rule=fixed_window_rule,
            transport=transport,
            client_settings=ClientSettings(),
        )

        assert service.config.base_url == "http://localhost:3000"

    def test_factory_builds_service(self, transport, fixed_window_rule) -> None:
        service = create_protection_service(
            "k", rate_limiting_rule=fixed_window_rule, transport=transport
        )

        assert isinstance(service, ProtectionService)
        assert isinstance(service.config.rate_limiting_rule, FixedWindowRule)


class TestProtect:
    """Behaviour of protect() across its outcomes."""

    @pytest.mark.asyncio
    async def test_allowed_decision_is_returned_unchanged(self, transport_factory) -> None:
        transport = transport_factory(status_code=200, body={"allow": True})
        service = _service(transport)

        decision = await service.protect(FORWARDED_REQUEST, "user-1", 1)

        assert decision == {"allow": True}
        assert transport.call_count == 1

    @pytest.mark.asyncio
    async def test_fractional_leak_rate_is_sent(self, transport) -> None:
        service = _service(
            transport,
            rate_limiting_rule={
                "algorithm": "LeakyBucketRule",
                "mode": "LIVE",
                "leakRate": 0.5,
                "capacity": 10,
                "timeout": 1000,
            },
        )

        decision = await service.protect(FORWARDED_REQUEST, "user-1", 1)

        assert decision == {"allow": True}
        sent = transport.calls[0][1]["rateLimiting"]
        assert sent["leakRate"] == 0.5
        assert sent["capacity"] == 10

    @pytest.mark.asyncio
    async def test_rate_limited_by_service(self, transport_factory) -> None:
        transport = transport_factory(status_code=429, body={"error": "slow down"})
        service = _service(transport)

        decision = await service.protect(FORWARDED_REQUEST, "user-1", 1)

        assert decision == {"isDenied": True, "status": 429, "message": "Rate limit exceeded"}

    @pytest.mark.asyncio
    async def test_posts_payload_to_protection_endpoint(self, transport) -> None:
        service = _service(transport, base_url="http://svc.local/")

        await service.protect(FORWARDED_REQUEST, None, 3)

        url, payload = transport.calls[0]
        assert url == "http://svc.local/protection"
        assert payload["key"] == "secret-key"
        assert payload["identificationKey"] == service.config.identification_key
        assert payload["userId"] == "1.2.3.4"
        assert payload["rateLimiting"] == {
            "algorithm": "FixedWindowRule",
            "mode": "LIVE",
            "windowMs": 60000,
            "limit": 5,
            "requested": 3,
        }
        assert "shield" not in payload

    @pytest.mark.asyncio
    async def test_explicit_user_id_skips_identity_resolution(self, transport) -> None:
        service = _service(transport)

        await service.protect(FORWARDED_REQUEST, "user-42")

        assert transport.calls[0][1]["userId"] == "user-42"

    @pytest.mark.asyncio
    async def test_empty_user_id_falls_back_to_client_address(self, transport) -> None:
        service = _service(transport)

        await service.protect({"headers": {}, "socket": {"remoteAddress": "9.9.9.9"}}, "")

        assert transport.calls[0][1]["userId"] == "9.9.9.9"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id", [42, 4.2, ["user"], {"id": 1}, True])
    async def test_malformed_user_id_is_denied_without_network(self, transport, user_id) -> None:
        service = _service(transport)

        decision = await service.protect(FORWARDED_REQUEST, user_id, 1)

        assert decision["isDenied"] is True
        assert decision["status"] == 400
        assert transport.call_count == 0

    @pytest.mark.asyncio
    async def test_requested_defaults_to_one(self, transport) -> None:
        service = _service(transport)

        await service.protect(FORWARDED_REQUEST, "u")

        assert transport.calls[0][1]["rateLimiting"]["requested"] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("requested", [0, -3, 1.5, "2", True])
    async def test_invalid_requested_is_denied_without_network(self, transport, requested) -> None:
        service = _service(transport)

        decision = await service.protect(FORWARDED_REQUEST, "u", requested)

        assert decision["isDenied"] is True
        assert decision["status"] == 400
        assert transport.call_count == 0

    @pytest.mark.asyncio
    async def test_invalid_payload_is_denied_without_network(self, transport) -> None:
        service = _service(
            transport,
            rate_limiting_rule=TokenBucketRule(refill_rate=1, interval=60, capacity=0),
        )

        decision = await service.protect(FORWARDED_REQUEST, "u", 1)

        assert decision["isDenied"] is True
        assert decision["status"] == 400
        assert "capacity" in decision["message"]
        assert transport.call_count == 0

    @pytest.mark.asyncio
    async def test_incomplete_shield_is_denied_without_network(self, transport) -> None:
        service = ProtectionService(
            "secret-key",
            shield_rule={"mode": "LIVE", "windowMs": 60000, "limit": 0, "threshold": 5},
            transport=transport,
        )

        decision = await service.protect(FORWARDED_REQUEST)

        assert decision["status"] == 400
        assert "limit" in decision["message"]
        assert transport.call_count == 0

    @pytest.mark.asyncio
    async def test_shield_payload_carries_request_snapshot(self, transport, shield_rule) -> None:
        service = ProtectionService("secret-key", shield_rule=shield_rule, transport=transport)

        await service.protect({"url": "/login", "body": {"user": "a"}, "headers": {}})

        shield = transport.calls[0][1]["shield"]
        assert shield["requestDetails"] == {
            "params": "",
            "url": "/login",
            "query": "",
            "body": '{"user":"a"}',
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [400, 401, 403, 500, 502, 503])
    async def test_other_error_statuses_become_internal_error(self, transport_factory, status_code) -> None:
        transport = transport_factory(status_code=status_code, body={"error": "nope"})
        service = _service(transport)

        decision = await service.protect(FORWARDED_REQUEST, "u", 1)

        assert decision == {"isDenied": True, "status": 500, "message": "Internal server error"}

    @pytest.mark.asyncio
    async def test_transport_error_becomes_internal_error(self, transport_factory) -> None:
        transport = transport_factory(
            error=TransportError(code="transport_error", message="connection refused")
        )
        service = _service(transport)

        decision = await service.protect(FORWARDED_REQUEST, "u", 1)

        assert decision == {"isDenied": True, "status": 500, "message": "Internal server error"}
        assert transport.call_count == 1

    @pytest.mark.asyncio
    async def test_timeout_has_dedicated_denial(self, transport_factory) -> None:
        transport = transport_factory(
            error=TransportTimeoutError(code="transport_timeout", message="timed out")
        )
        service = _service(transport)

        decision = await service.protect(FORWARDED_REQUEST, "u", 1)

        assert decision == {"isDenied": True, "status": 504, "message": "Protection request timed out"}

    @pytest.mark.asyncio
    async def test_malformed_response_becomes_internal_error(self, transport_factory) -> None:
        transport = transport_factory(status_code=200, body=None)
        transport.body = None
        service = _service(transport)

        decision = await service.protect(FORWARDED_REQUEST, "u", 1)

        assert decision["status"] == 500

    @pytest.mark.asyncio
    async def test_concurrent_calls_do_not_share_state(self, transport) -> None:
        service = _service(transport)

        await asyncio.gather(*(service.protect(FORWARDED_REQUEST, f"user-{i}", i + 1) for i in range(10)))

        sent = sorted((p["userId"], p["rateLimiting"]["requested"]) for _, p in transport.calls)
        assert sent == sorted((f"user-{i}", i + 1) for i in range(10))

    @pytest.mark.asyncio
    async def test_async_context_manager_leaves_injected_transport_open(self, transport) -> None:
        async with _service(transport) as service:
            await service.protect(FORWARDED_REQUEST, "u")

        assert transport.closed is False

    @pytest.mark.asyncio
    async def test_shared_transport_survives_one_service_closing(self, transport) -> None:
        first = _service(transport)
        second = _service(transport)

        await first.aclose()
        decision = await second.protect(FORWARDED_REQUEST, "u")

        assert transport.closed is False
        assert decision == {"allow": True}

    @pytest.mark.asyncio
    async def test_owned_transport_is_closed(self, transport_factory, monkeypatch) -> None:
        created = transport_factory()
        monkeypatch.setattr(
            "zsecure.services.protection_service.create_transport",
            lambda timeout_seconds: created,
        )

        async with _service(None) as service:
            assert service.transport is created

        assert created.closed is True


class TestDiagnostics:
    """Diagnostic logging goes through the injected logger only when enabled."""

    @pytest.mark.asyncio
    async def test_logging_disabled_emits_no_diagnostics(self, transport) -> None:
        logger = MagicMock(spec=logging.Logger)
        service = _service(transport, logger=logger, log_enabled=False)

        await service.protect(FORWARDED_REQUEST, "u")

        logger.info.assert_not_called()

    @pytest.mark.asyncio
    async def test_logging_enabled_emits_config_payload_and_response(self, transport) -> None:
        logger = MagicMock(spec=logging.Logger)
        service = _service(transport, logger=logger, log_enabled=True)

        decision = await service.protect(FORWARDED_REQUEST, "u")

        events = [call.args[0] for call in logger.info.call_args_list]
        assert events == ["protect.configured", "protect.request", "protect.response"]
        assert decision == {"allow": True}

    @pytest.mark.asyncio
    async def test_configuration_diagnostics_do_not_leak_api_key(self, transport) -> None:
        logger = MagicMock(spec=logging.Logger)
        _service(transport, logger=logger, log_enabled=True)

        configured = logger.info.call_args_list[0]
        assert "secret-key" not in repr(configured)
        assert "api_key_hash" in configured.kwargs["extra"]

    @pytest.mark.asyncio
    async def test_failures_are_reported_even_when_logging_disabled(self, transport_factory) -> None:
        transport = transport_factory(status_code=503, body={})
        logger = MagicMock(spec=logging.Logger)
        service = _service(transport, logger=logger, log_enabled=False)

        await service.protect(FORWARDED_REQUEST, "u")

        logger.error.assert_called_once()
        assert logger.error.call_args.args[0] == "protect.server_error"
