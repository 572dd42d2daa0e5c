"""Factory for transport instances."""

from zsecure.adapters.transport.base import AbstractTransport
from zsecure.adapters.transport.httpx_client import HttpxTransport
from zsecure.core.config import settings
from zsecure.core.errors import ConfigurationError


def create_transport(timeout_seconds: float | None = None) -> AbstractTransport:
    """Instantiate the default transport.

    Args:
        timeout_seconds: Request timeout; defaults to ``ZSECURE_TIMEOUT_SECONDS``.

    Returns:
        AbstractTransport: Configured transport instance.

    Raises:
        ConfigurationError: If the timeout is not positive.
    """
    timeout = settings.client.timeout_seconds if timeout_seconds is None else timeout_seconds

    if timeout <= 0:
        raise ConfigurationError(
            code="invalid_timeout",
            message=f"timeout_seconds must be > 0, got {timeout}",
            details={"timeout_seconds": timeout},
        )

    return HttpxTransport(timeout_seconds=timeout)
