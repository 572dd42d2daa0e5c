"""Client configuration using Pydantic Settings.

Configuration is environment-aware:
- ZSECURE_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

The environment is only read here. Everything downstream receives resolved
values (for example the default base URL as a single optional string).
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "http://localhost:3000"

# Determine which environment to load (default: development)
ZSECURE_ENV = os.getenv("ZSECURE_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(ZSECURE_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None

# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=False)


def _build_client_settings() -> "ClientSettings":
    return ClientSettings()


def _build_log_settings() -> "LogSettings":
    return LogSettings()


class ClientSettings(BaseSettings):
    """Defaults for protection clients, read from the environment."""

    base_url: str = Field(
        DEFAULT_BASE_URL,
        description="Protection service base URL",
        validation_alias=AliasChoices("ZSECURE_BASE_URL", "BASE_URL"),
    )
    timeout_seconds: float = Field(
        5.0,
        description="Timeout for calls to the protection service, in seconds",
        gt=0,
    )
    logging: bool = Field(
        False,
        description="Log configuration, payloads and responses for debugging",
    )

    model_config = SettingsConfigDict(
        env_prefix="ZSECURE_",
        case_sensitive=False,
        populate_by_name=True,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        0,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(3, description="Rotated files to keep", ge=0)

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Settings container composed from the domain-specific settings."""

    zsecure_env: str = ZSECURE_ENV
    client: ClientSettings = Field(default_factory=_build_client_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance; nested settings are created via default_factory
settings = Settings()
