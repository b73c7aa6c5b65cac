"""
Application configuration via Pydantic Settings.

All values are sourced from environment variables or an .env file.
No defaults expose insecure behaviour in production.
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import (
    AnyHttpUrl,
    BeforeValidator,
    Field,
    SecretStr,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    """Deployment environment identifiers."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class LogLevel(StrEnum):
    """Structured log level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DiffGranularity(StrEnum):
    """Unit of comparison used by the diff engine."""

    LINE = "line"
    WORD = "word"


DEFAULT_VERSION_CODE_LABELS: dict[str, str] = {
    "IH": "Introduced in House",
    "RH": "Reported in House",
    "EH": "Engrossed in House",
    "IS": "Introduced in Senate",
    "RS": "Reported in Senate",
    "ES": "Engrossed in Senate",
    "PCS": "Placed on Calendar Senate",
    "EAS": "Engrossed Amendment Senate",
    "ENR": "Enrolled",
    "PL": "Public Law",
}


def _parse_cors_origins(value: str | list[str]) -> list[str]:
    """Accept comma-separated string or list for CORS origins."""
    if isinstance(value, list):
        return value
    return [origin.strip() for origin in value.split(",") if origin.strip()]


class Settings(BaseSettings):
    """
    Centralised, type-validated application configuration.

    Reads from environment variables with an optional .env file.
    The Congress.gov API key is a SecretStr to prevent accidental logging.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="forbid",
    )

    # ── Application ────────────────────────────────────────────────────── #
    app_name: str = Field(default="DeltaGov", description="Human-readable application name")
    app_version: str = Field(default="1.0.0", description="Semantic version string")
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development|testing|production)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode. Must be False in production.",
    )

    # ── Server ─────────────────────────────────────────────────────────── #
    host: str = Field(default="127.0.0.1", description="Bind host. Default local-only.")
    port: int = Field(default=8080, ge=1024, le=65535, description="Bind port")

    # ── CORS ───────────────────────────────────────────────────────────── #
    cors_origins: Annotated[list[str], BeforeValidator(_parse_cors_origins)] = Field(
        default=["http://localhost:4200"],
        description="Comma-separated list of allowed CORS origins",
    )

    # ── Database ───────────────────────────────────────────────────────── #
    database_url: str = Field(
        default="sqlite+aiosqlite:///./deltagov.db",
        description=(
            "Async SQLAlchemy connection string. "
            "Use sqlite+aiosqlite:// for local or postgresql+asyncpg:// for production."
        ),
    )
    db_pool_size: int = Field(default=5, ge=1, le=50, description="Connection pool size")
    db_max_overflow: int = Field(default=10, ge=0, le=100, description="Pool max overflow")
    db_echo: bool = Field(default=False, description="Log all SQL statements (debug only)")
    run_migrations_on_startup: bool = Field(
        default=True,
        description="Apply Alembic migrations when the API starts",
    )
    alembic_config: Path = Field(
        default=Path(__file__).resolve().parents[2] / "alembic.ini",
        description="Path to the Alembic configuration file",
    )

    # ── Rate Limiting ──────────────────────────────────────────────────── #
    rate_limit_default: str = Field(
        default="120/minute",
        description="Default rate limit string (slowapi format)",
    )

    # ── Logging ────────────────────────────────────────────────────────── #
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Minimum log level")
    log_json: bool = Field(default=True, description="Emit logs as JSON (False for dev console)")

    # ── Diff engine ────────────────────────────────────────────────────── #
    diff_granularity: DiffGranularity = Field(
        default=DiffGranularity.LINE,
        description="Comparison unit: line or word",
    )
    diff_context_lines: int = Field(
        default=3,
        ge=0,
        le=50,
        description="Unchanged tokens kept around each change run",
    )
    diff_size_limit_bytes: int = Field(
        default=100 * 1024,
        ge=1,
        description="Inputs larger than this get an approximate delta instead of a real diff",
    )
    diff_full_context_when_unchanged: bool = Field(
        default=False,
        description="Return one all-unchanged hunk when two versions are identical",
    )
    diff_claim_wait_seconds: float = Field(
        default=30.0,
        gt=0,
        le=600,
        description="How long a caller waits on another worker's in-flight computation",
    )
    diff_claim_poll_seconds: float = Field(
        default=0.25,
        gt=0,
        le=10,
        description="Polling interval while waiting on another worker's computation",
    )
    diff_claim_stale_seconds: float = Field(
        default=300.0,
        gt=0,
        description="A pending claim older than this may be taken over",
    )
    version_code_labels: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_VERSION_CODE_LABELS),
        description="Version code to human-readable label",
    )

    # ── Congress.gov ───────────────────────────────────────────────────── #
    congress_api_key: SecretStr | None = Field(
        default=None,
        description="Congress.gov v3 API key. Ingestion is disabled without it.",
    )
    congress_base_url: AnyHttpUrl = Field(
        default="https://api.congress.gov/v3",
        description="Congress.gov API base URL",
    )
    congress_timeout_seconds: int = Field(
        default=30,
        ge=1,
        le=600,
        description="HTTP timeout for Congress.gov calls (seconds)",
    )
    congress_max_text_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1024,
        description="Maximum bytes read from a single bill text download",
    )
    ingest_default_limit: int = Field(
        default=50,
        ge=1,
        le=250,
        description="Bills fetched per ingestion run when no limit is given",
    )
    ingest_poll_interval_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Delay between runs of the continuous ingest worker",
    )

    # ── Validators ─────────────────────────────────────────────────────── #

    @model_validator(mode="after")
    def production_safety_checks(self) -> Settings:
        if self.environment == Environment.PRODUCTION:
            if self.debug:
                raise ValueError("debug must be False in production")
            if self.db_echo:
                raise ValueError("db_echo must be False in production")
        return self

    @model_validator(mode="after")
    def claim_timeouts_are_ordered(self) -> Settings:
        if self.diff_claim_poll_seconds > self.diff_claim_wait_seconds:
            raise ValueError("diff_claim_poll_seconds must not exceed diff_claim_wait_seconds")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the cached Settings singleton.

    Use dependency injection in FastAPI routes:
        settings: Settings = Depends(get_settings)
    """
    return Settings()
