"""Tests for ChainSettings and the cached settings factory."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from chainspine.core.settings import ChainSettings, clear_settings_cache, get_settings


class TestChainSettings:
    def test_defaults(self):
        settings = ChainSettings(_env_file=None)

        assert settings.max_retries == 3
        assert settings.step_timeout_ms == 300_000
        assert settings.total_timeout_ms == 1_800_000
        assert settings.error_handling_strategy == "retry_on_error"
        assert settings.log_level == "INFO"
        assert settings.log_format == "console"
        assert settings.history_limit == 1000

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("CHAINSPINE_STEP_TIMEOUT_MS", "60000")
        monkeypatch.setenv("CHAINSPINE_ERROR_HANDLING_STRATEGY", "fail_fast")
        monkeypatch.setenv("CHAINSPINE_DATA_VALIDATION", "false")

        settings = ChainSettings(_env_file=None)

        assert settings.step_timeout_ms == 60000
        assert settings.error_handling_strategy == "fail_fast"
        assert settings.data_validation is False

    def test_log_level_normalized(self):
        assert ChainSettings(_env_file=None, log_level="warn").log_level == "WARNING"
        assert ChainSettings(_env_file=None, log_level="debug").log_level == "DEBUG"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"log_level": "chatty"},
            {"max_retries": -1},
            {"step_timeout_ms": 0},
            {"error_handling_strategy": "yolo"},
            {"log_format": "xml"},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValidationError):
            ChainSettings(_env_file=None, **kwargs)


class TestGetSettings:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_force_reload(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("CHAINSPINE_MAX_RETRIES", "9")

        assert get_settings().max_retries == first.max_retries
        assert get_settings(_force_reload=True).max_retries == 9

    def test_clear_cache(self):
        first = get_settings()
        clear_settings_cache()
        assert get_settings() is not first
