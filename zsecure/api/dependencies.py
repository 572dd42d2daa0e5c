"""FastAPI dependency wiring the protection client into routes.

Usage:
    guard = protection_dependency(service)

    @app.get("/items", dependencies=[Depends(guard)])
    async def list_items(): ...

The dependency snapshots the Starlette request into a plain mapping (the
body has to be awaited, which the payload builder cannot do), calls
``protect()`` and raises ``HTTPException`` when the decision is a denial.
"""

from __future__ import annotations

import hashlib
import inspect
import logging
from typing import Any, Awaitable, Callable

from fastapi import HTTPException, Request, status

from zsecure.services.protection_service import ProtectionService

logger = logging.getLogger(__name__)

UserIdGetter = Callable[[Request], "str | None | Awaitable[str | None]"]


async def snapshot_request(request: Request) -> dict[str, Any]:
    """Copy the parts of a Starlette request the protection client reads.

    Args:
        request: FastAPI/Starlette request.

    Returns:
        dict[str, Any]: Mapping with headers, client, url, query, params, body.
    """
    body = await request.body()

    # Repeated headers are joined in arrival order so the first hop stays first
    headers: dict[str, str] = {}
    for key, value in request.headers.items():
        headers[key] = f"{headers[key]}, {value}" if key in headers else value

    return {
        "headers": headers,
        "client": (request.client.host, request.client.port) if request.client else None,
        "url": str(request.url),
        "query": dict(request.query_params),
        "params": dict(request.path_params),
        "body": body.decode("utf-8", errors="replace") if body else None,
    }


def _is_denied(decision: Any) -> bool:
    if not isinstance(decision, dict):
        return False
    return decision.get("isDenied") is True


def _denial_status(decision: dict[str, Any]) -> int:
    code = decision.get("status")
    if isinstance(code, int) and 400 <= code < 600:
        return code
    return status.HTTP_403_FORBIDDEN


def _hash_user_id(user_id: Any) -> str | None:
    """Hash the user id for logging without exposing it."""
    if not user_id:
        return None
    return hashlib.sha256(str(user_id).encode()).hexdigest()[:16]


def protection_dependency(
    service: ProtectionService,
    *,
    user_id_getter: UserIdGetter | None = None,
    requested: int | None = None,
) -> Callable[[Request], Awaitable[dict[str, Any]]]:
    """Build a FastAPI dependency enforcing ``service`` on each request.

    Args:
        service: Configured protection client.
        user_id_getter: Optional (sync or async) callable returning the user id
            for a request; the client address is used when it returns None.
        requested: Tokens consumed per request (default 1).

    Returns:
        Async dependency returning the decision when the request is allowed.
    """

    async def enforce_protection(request: Request) -> dict[str, Any]:
        """Raise HTTPException with the denial status when protection denies.

        Raises:
            HTTPException: 429 on rate limiting, the denial status otherwise.
        """
        user_id = None
        if user_id_getter is not None:
            user_id = user_id_getter(request)
            if inspect.isawaitable(user_id):
                user_id = await user_id

        snapshot = await snapshot_request(request)
        decision = await service.protect(snapshot, user_id, requested)

        if not _is_denied(decision):
            logger.debug(
                "protection.allowed",
                extra={"user_id_hash": _hash_user_id(user_id), "route": request.url.path},
            )
            return decision

        status_code = _denial_status(decision)
        logger.warning(
            "protection.denied",
            extra={
                "user_id_hash": _hash_user_id(user_id),
                "route": request.url.path,
                "status_code": status_code,
            },
        )

        headers: dict[str, str] = {}
        retry_after = decision.get("retryAfter")
        if status_code == status.HTTP_429_TOO_MANY_REQUESTS and retry_after is not None:
            headers["Retry-After"] = str(retry_after)

        raise HTTPException(
            status_code=status_code,
            detail=decision.get("message") or "Request denied",
            headers=headers or None,
        )

    return enforce_protection
