"""Transport adapter layer - abstracts the HTTP call to the protection service."""

from zsecure.adapters.transport.base import AbstractTransport, TransportResponse
from zsecure.adapters.transport.factory import create_transport
from zsecure.adapters.transport.httpx_client import HttpxTransport

__all__ = [
    "AbstractTransport",
    "HttpxTransport",
    "TransportResponse",
    "create_transport",
]
