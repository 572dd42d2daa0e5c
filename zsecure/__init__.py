"""zsecure - client-side request guard backed by a remote protection service."""

from zsecure.core.errors import (
    AppError,
    ConfigurationError,
    PayloadValidationError,
    TransportError,
    TransportTimeoutError,
)
from zsecure.core.identity import resolve_client_ip
from zsecure.core.keys import generate_identification_key
from zsecure.schemas.rules import (
    Algorithm,
    FixedWindowRule,
    LeakyBucketRule,
    Mode,
    RateLimitingRule,
    ShieldRule,
    SlidingWindowRule,
    TokenBucketRule,
)
from zsecure.services.protection_service import (
    ProtectionConfig,
    ProtectionService,
    create_protection_service,
)

__all__ = [
    "Algorithm",
    "AppError",
    "ConfigurationError",
    "FixedWindowRule",
    "LeakyBucketRule",
    "Mode",
    "PayloadValidationError",
    "ProtectionConfig",
    "ProtectionService",
    "RateLimitingRule",
    "ShieldRule",
    "SlidingWindowRule",
    "TokenBucketRule",
    "TransportError",
    "TransportTimeoutError",
    "create_protection_service",
    "generate_identification_key",
    "resolve_client_ip",
]
