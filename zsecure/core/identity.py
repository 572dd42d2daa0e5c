"""Best-effort client address resolution.

The resolver accepts the request shapes Python services usually hand around:
plain mappings (including AWS API Gateway events and ASGI scopes), Starlette
or FastAPI ``Request`` objects, and objects exposing ``META`` or ``environ``
dictionaries (Django, WSGI).

Lookup order (first value found wins):
1. ``x-forwarded-for`` header: first list element, or first comma token.
2. Transport peer address (socket, ASGI client, ``REMOTE_ADDR``).
3. Platform request context (``requestContext.identity.sourceIp``).
4. ``127.0.0.1``.

Forwarding headers are taken at face value. They can be spoofed by any
client unless an upstream proxy strips them; the ``trusted_proxies`` option
on the client configuration is reserved for restricting this.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

FALLBACK_IP = "127.0.0.1"
FORWARDED_FOR_HEADER = "x-forwarded-for"

_MISSING = object()


def _lookup(source: Any, *names: str) -> Any:
    """Return the first present key or attribute among ``names``."""
    if source is None:
        return None
    for name in names:
        if isinstance(source, Mapping):
            value = source.get(name, _MISSING)
        else:
            value = getattr(source, name, _MISSING)
        if value is not _MISSING and value is not None:
            return value
    return None


def _get_header(headers: Any, name: str) -> Any:
    """Case-insensitive header lookup over mappings and header lists.

    ASGI scopes carry headers as a list of ``(bytes, bytes)`` pairs.
    """
    if headers is None:
        return None

    if isinstance(headers, Mapping) or hasattr(headers, "items"):
        try:
            items = list(headers.items())
        except TypeError:
            return None
    elif isinstance(headers, Sequence) and not isinstance(headers, (str, bytes)):
        items = [pair for pair in headers if isinstance(pair, (tuple, list)) and len(pair) == 2]
    else:
        return None

    for key, value in items:
        if isinstance(key, bytes):
            key = key.decode("latin-1")
        if isinstance(value, bytes):
            value = value.decode("latin-1")
        if isinstance(key, str) and key.lower() == name:
            return value
    return None


def _from_forwarded_for(request: Any) -> str | None:
    value = _get_header(_lookup(request, "headers"), FORWARDED_FOR_HEADER)

    if isinstance(value, str):
        first = value.split(",")[0].strip()
        return first or None

    if isinstance(value, Sequence) and value:
        first = value[0]
        return first if isinstance(first, str) and first else None

    return None


def _from_transport(request: Any) -> str | None:
    for container in ("socket", "info", "connection"):
        address = _lookup(_lookup(request, container), "remoteAddress", "remote_address")
        if isinstance(address, str) and address:
            return address

    client = _lookup(request, "client")
    if isinstance(client, (tuple, list)) and client:
        host = client[0]
    else:
        host = _lookup(client, "host")
    if isinstance(host, str) and host:
        return host

    for environ in ("META", "environ"):
        address = _lookup(_lookup(request, environ), "REMOTE_ADDR")
        if isinstance(address, str) and address:
            return address

    return None


def _from_request_context(request: Any) -> str | None:
    context = _lookup(request, "requestContext", "request_context")
    source_ip = _lookup(_lookup(context, "identity"), "sourceIp", "source_ip")
    if isinstance(source_ip, str) and source_ip:
        return source_ip
    return None


def resolve_client_ip(request: Any) -> str:
    """Resolve the caller's network address from a request-like object.

    Never raises: malformed or unknown shapes fall through to the next
    source and finally to ``127.0.0.1``. The value is not checked to be a
    syntactically valid IP address.

    Args:
        request: Mapping or object describing the inbound request.

    Returns:
        str: Client identifier used when no explicit user id is given.

    Examples:
        >>> resolve_client_ip({"headers": {"x-forwarded-for": "1.2.3.4, 5.6.7.8"}})
        '1.2.3.4'
        >>> resolve_client_ip({"headers": {}})
        '127.0.0.1'
    """
    for source in (_from_forwarded_for, _from_transport, _from_request_context):
        try:
            address = source(request)
        except Exception:  # noqa: BLE001 - arbitrary request objects
            continue
        if address:
            return address
    return FALLBACK_IP
