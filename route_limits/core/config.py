"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Rate limiting is configured through ``RATE_LIMIT_*`` variables. Leaving
``RATE_LIMIT_DRIVER`` unset keeps the whole engine inert.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from route_limits.domain.policy import Policy


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

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


RunMode = Literal["http", "cli", "background"]
Driver = Literal["file", "db"]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    run_mode: RunMode = Field(
        "http",
        description="How the process runs: served HTTP requests, a CLI, or a background job",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10_485_760,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Rate limiting engine configuration.

    ``default`` is read from ``RATE_LIMIT_DEFAULT`` as JSON, for example
    ``{"limit": 100, "within": 60, "by": ["api_key", "ip"]}``.
    """

    driver: Driver | None = Field(
        None,
        description="Counter storage driver (file or db); unset disables rate limiting",
    )
    file_directory: Path | None = Field(
        None,
        description="Directory holding one file per active counter (file driver)",
    )
    db_table: str = Field(
        "rate_limits",
        description="Counter table name (db driver)",
    )
    db_prefix: str = Field(
        "",
        description="Prefix prepended to the counter table name",
    )
    db_url: str | None = Field(
        None,
        description="SQLAlchemy database URL (db driver)",
    )
    exclude_tests: bool = Field(
        False,
        description="Skip rate limiting for automated test traffic unless a policy overrides it",
    )
    default: Policy | None = Field(
        None,
        description="Global policy evaluated once per request; unset disables global limiting",
    )
    cleanup_on_request: bool = Field(
        True,
        description="Sweep expired counters on every request in addition to startup",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    @property
    def table_name(self) -> str:
        """Physical table name including the configured prefix."""
        return f"{self.db_prefix}{self.db_table}"


def _build_app_settings() -> AppSettings:
    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> LogSettings:
    return LogSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> RateLimitSettings:
    return RateLimitSettings()  # type: ignore[call-arg]


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    testing: bool = Field(
        False,
        description="Set by the test harness (TESTING=true) to mark automated test traffic",
    )
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    rate_limits: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )

    @property
    def is_test(self) -> bool:
        return self.testing or self.app_env == "testing"


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
