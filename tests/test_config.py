"""Tests for centralized Settings and the get_settings cache.

Covers: defaults, env-override, validation failures, and lru_cache behavior.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from flancer.config import Settings, get_settings

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _clear_settings_cache() -> None:
    """Clear get_settings lru_cache before each test."""
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Settings defaults
# ---------------------------------------------------------------------------

class TestSettingsDefaults:
    """Verify that Settings fields have the expected default values."""

    def test_settings_defaults(self) -> None:
        s = Settings(_env_file=None)  # type: ignore[call-arg]

        assert s.production is False
        assert s.api_port == 8000
        assert s.database_path == Path("data/flancer.db")
        assert s.audit_db_path == Path("data/audit.db")
        assert s.collaborator_timeout_seconds == 5.0
        assert s.default_deadline_days == 7
        assert s.allow_self_agreement is False
        assert s.notification_retry_attempts == 3
        assert s.sentry_dsn.get_secret_value() == ""

    def test_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PRODUCTION", "true")
        monkeypatch.setenv("API_PORT", "9090")
        monkeypatch.setenv("ALLOW_SELF_AGREEMENT", "true")
        monkeypatch.setenv("SENTRY_DSN", "https://key@o0.ingest.sentry.io/0")

        s = Settings(_env_file=None)  # type: ignore[call-arg]

        assert s.production is True
        assert s.api_port == 9090
        assert s.allow_self_agreement is True
        assert s.sentry_dsn.get_secret_value() == "https://key@o0.ingest.sentry.io/0"

    def test_secret_not_in_repr(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SENTRY_DSN", "https://secret@o0.ingest.sentry.io/0")
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert "secret@" not in repr(s)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class TestValidation:
    """Invalid values make get_settings exit instead of running misconfigured."""

    @pytest.mark.parametrize(
        ("name", "value"),
        [
            ("COLLABORATOR_TIMEOUT_SECONDS", "0"),
            ("DEFAULT_DEADLINE_DAYS", "0"),
            ("NOTIFICATION_RETRY_ATTEMPTS", "0"),
            ("API_PORT", "not-a-port"),
        ],
    )
    def test_invalid_value_exits(
        self, monkeypatch: pytest.MonkeyPatch, name: str, value: str
    ) -> None:
        monkeypatch.setenv(name, value)

        with pytest.raises(SystemExit) as exc_info:
            get_settings()

        assert exc_info.value.code == 1


# ---------------------------------------------------------------------------
# get_settings cache
# ---------------------------------------------------------------------------

class TestGetSettingsCached:
    """Verify lru_cache on get_settings."""

    def test_get_settings_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Calling get_settings() twice returns the exact same object."""
        monkeypatch.delenv("PRODUCTION", raising=False)

        first = get_settings()
        second = get_settings()

        assert first is second
