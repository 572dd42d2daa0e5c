"""httpx transport adapter."""

from collections.abc import Mapping
from typing import Any

import httpx

from zsecure.adapters.transport.base import AbstractTransport, TransportResponse
from zsecure.core.errors import TransportError, TransportTimeoutError


class HttpxTransport(AbstractTransport):
    """Transport posting protection payloads with ``httpx.AsyncClient``.

    A single client is reused across calls so concurrent ``protect()``
    invocations share the connection pool.
    """

    def __init__(
        self,
        timeout_seconds: float = 5.0,
        *,
        client: httpx.AsyncClient | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the async HTTP client.

        Args:
            timeout_seconds: Timeout applied to every request, in seconds.
            client: Optional preconfigured client (not closed by ``aclose``).
            headers: Extra headers sent with every request.
        """
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self.timeout_seconds = timeout_seconds
        self.headers = dict(headers or {})

    async def post_json(self, url: str, payload: dict[str, Any]) -> TransportResponse:
        """POST ``payload`` as JSON to ``url``.

        Args:
            url: Absolute endpoint URL.
            payload: JSON-serializable request body.

        Returns:
            TransportResponse: Status code and parsed JSON body (None if unparsable).

        Raises:
            TransportTimeoutError: If httpx reports a connect/read/write/pool timeout.
            TransportError: For any other httpx transport failure.
        """
        try:
            response = await self.client.post(
                url,
                json=payload,
                headers=self.headers or None,
                timeout=self.timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            raise TransportTimeoutError(
                code="transport_timeout",
                message=f"Protection request timed out after {self.timeout_seconds}s",
                details={"url": url, "timeout_seconds": self.timeout_seconds},
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(
                code="transport_error",
                message=f"Protection request failed: {exc}",
                details={"url": url},
            ) from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        return TransportResponse(status_code=response.status_code, body=body)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
