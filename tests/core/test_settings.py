"""Tests for DurableSettings (pydantic-settings)."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from durable_mr.core.settings import DurableSettings, get_settings


class TestDurableSettings:
    """Tests for defaults, env overrides and validation."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DURABLE_HISTORY_BACKEND", raising=False)
        settings = DurableSettings(_env_file=None)
        assert settings.history_backend == "memory"
        assert settings.max_workers == 8
        assert settings.retry_max_attempts == 3
        assert settings.task_timeout_seconds is None
        assert settings.api_prefix == "/api"

    def test_env_prefix(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DURABLE_HISTORY_BACKEND", "sqlite")
        monkeypatch.setenv("DURABLE_MAX_WORKERS", "16")
        monkeypatch.setenv("DURABLE_DATABASE_PATH", str(tmp_path / "h.db"))
        settings = DurableSettings(_env_file=None)
        assert settings.history_backend == "sqlite"
        assert settings.max_workers == 16
        assert settings.database_path == Path(tmp_path / "h.db")

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            DurableSettings(_env_file=None, history_backend="postgres")

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValidationError):
            DurableSettings(_env_file=None, task_timeout_seconds=0)

    def test_max_workers_lower_bound(self):
        with pytest.raises(ValidationError):
            DurableSettings(_env_file=None, max_workers=0)

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
