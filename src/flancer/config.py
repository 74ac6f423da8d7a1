"""Centralized, typed configuration using pydantic-settings.

Provides a single ``Settings`` class backed by ``.env`` file and environment
variables and a cached ``get_settings()`` accessor.

This module has no imports from the ``flancer`` package to prevent
circular imports.
"""

from __future__ import annotations

import sys
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env`` file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- General ---------------------------------------------------------------
    production: bool = False
    api_port: int = 8000

    # -- Storage ---------------------------------------------------------------
    database_path: Path = Path("data/flancer.db")
    audit_db_path: Path = Path("data/audit.db")

    # -- Negotiation rules -----------------------------------------------------
    collaborator_timeout_seconds: float = Field(default=5.0, gt=0)
    default_deadline_days: int = Field(default=7, ge=1)
    allow_self_agreement: bool = False

    # -- Notifications ---------------------------------------------------------
    notification_retry_attempts: int = Field(default=3, ge=1)

    # -- Error reporting (secret) ----------------------------------------------
    sentry_dsn: SecretStr = SecretStr("")


@lru_cache
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance.

    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    try:
        return Settings()
    except ValidationError as exc:
        # Log only the structured errors list -- never the full exception
        # which may contain raw SecretStr values.
        logger.error("settings_validation_failed", errors=exc.errors())
        sys.exit(1)
