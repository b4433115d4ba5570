"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from micropatrons.config import Settings, get_settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("MP_DATABASE_URL", "MP_REDIS_URL", "MP_LEDGER_BACKEND", "MP_LOG_FORMAT"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.database_url == "sqlite+aiosqlite:///./micropatrons.db"
        assert settings.ledger_backend == "sql"
        assert settings.redis_url == ""
        assert settings.starting_balance == 200_000
        assert settings.opsec_penalty_amount == 20_000
        assert settings.activity_default_limit == 50
        assert settings.activity_stats_default_days == 7
        assert settings.api_prefix == "/api"

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("MP_OPSEC_PENALTY_AMOUNT", "500")
        monkeypatch.setenv("MP_LEDGER_BACKEND", "memory")

        settings = Settings(_env_file=None)

        assert settings.opsec_penalty_amount == 500
        assert settings.ledger_backend == "memory"

    def test_unknown_backend_rejected(self, monkeypatch):
        monkeypatch.setenv("MP_LEDGER_BACKEND", "postgres")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
