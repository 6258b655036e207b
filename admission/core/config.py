"""Library configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (deployments may inject env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings.
# Nested BaseSettings don't inherit env_file, and tests skip the file entirely.
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_limiter_settings() -> "LimiterSettings":
    """Build limiter settings from environment.

    Pydantic Settings (v2) populates values from environment variables;
    the explicit factory keeps nested groups re-read on every Settings().
    """

    return LimiterSettings()


def _build_log_settings() -> "LogSettings":
    """Build logging settings from environment."""

    return LogSettings()


def _build_app_settings() -> "AppSettings":
    return AppSettings()


class LimiterSettings(BaseSettings):
    """Rate limits used by the connection example and stream defaults.

    Rates are expressed as text understood by ``parse_rate`` (e.g. ``2/s``,
    ``10/m``, ``inf``) so they can be set from plain environment variables.
    """

    api_second_rate: str = Field(
        "2/s",
        description="Per-second API budget",
    )
    api_second_burst: int = Field(
        2,
        description="Burst capacity of the per-second API budget",
        ge=1,
    )
    api_minute_rate: str = Field(
        "10/m",
        description="Per-minute API budget",
    )
    api_minute_burst: int = Field(
        10,
        description="Burst capacity of the per-minute API budget",
        ge=1,
    )
    disk_rate: str = Field(
        "1/s",
        description="Disk access budget",
    )
    disk_burst: int = Field(
        1,
        description="Burst capacity of the disk budget",
        ge=1,
    )
    network_rate: str = Field(
        "3/s",
        description="Network access budget",
    )
    network_burst: int = Field(
        3,
        description="Burst capacity of the network budget",
        ge=1,
    )
    stream_poll_interval_seconds: float = Field(
        0.01,
        description="How often queue hand-offs re-check their cancellation signal",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="LIMITER_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field(
        "INFO",
        description="Root log level name",
    )
    format: str = Field(
        "json",
        description="Log format: json or plain",
    )
    output: str = Field(
        "stdout",
        description="Log destination: stdout or file",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file",
    )
    max_bytes: int = Field(
        0,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(
        3,
        description="Number of rotated log files to keep",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Demo runner configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    demo_workers: int = Field(
        10,
        description="Number of read_file and resolve_address calls issued by the demo",
        ge=1,
    )
    demo_timeout_seconds: float | None = Field(
        None,
        description="Cancel demo calls still waiting after this many seconds",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if a setting is out of range.
    """

    app_env: str = APP_ENV
    limiter: LimiterSettings = Field(default_factory=_build_limiter_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
