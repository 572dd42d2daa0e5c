"""Identification key generation."""

from __future__ import annotations

import base64
import secrets

DEFAULT_KEY_BYTES = 16


def generate_identification_key(length: int = DEFAULT_KEY_BYTES) -> str:
    """Generate a random, URL-safe identification key.

    The key tells apart logical callers that share one configured API key,
    so it comes from the OS CSPRNG rather than ``random``.

    Args:
        length: Number of random bytes to encode (default 16).

    Returns:
        Base64 text with ``/`` replaced by ``_`` and ``+`` replaced by ``-``.

    Raises:
        ValueError: If length is not positive.

    Examples:
        >>> len(generate_identification_key())
        24
    """
    if length < 1:
        raise ValueError("length must be >= 1")

    raw = secrets.token_bytes(length)
    encoded = base64.b64encode(raw).decode("ascii")
    return encoded.replace("/", "_").replace("+", "-")
