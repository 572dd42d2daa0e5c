"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment defaults are set before any zsecure import so the global
settings object sees them.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["ZSECURE_ENV"] = "testing"
os.environ.setdefault("ZSECURE_BASE_URL", "http://protection.test")
os.environ.setdefault("ZSECURE_TIMEOUT_SECONDS", "2.0")

from typing import Any

import pytest

from zsecure.adapters.transport.base import AbstractTransport, TransportResponse


class RecordingTransport(AbstractTransport):
    """In-memory transport that records calls and replays a canned outcome."""

    def __init__(
        self,
        *,
        status_code: int = 200,
        body: Any = None,
        error: Exception | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = {"allow": True} if body is None and error is None else body
        self.error = error
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def post_json(self, url: str, payload: dict[str, Any]) -> TransportResponse:
        self.calls.append((url, payload))
        if self.error is not None:
            raise self.error
        return TransportResponse(status_code=self.status_code, body=self.body)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def fixed_window_rule() -> dict[str, Any]:
    return {"algorithm": "FixedWindowRule", "mode": "LIVE", "windowMs": 60000, "limit": 5}


@pytest.fixture
def shield_rule() -> dict[str, Any]:
    return {"mode": "LIVE", "windowMs": 60000, "limit": 100, "threshold": 5}


@pytest.fixture
def transport_factory() -> type[RecordingTransport]:
    return RecordingTransport
