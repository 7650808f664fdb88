"""
Centralized settings for chainspine.

One validated, cached settings object holds the engine-wide defaults that a
run configuration falls back to: retry budget, step and run timeouts, the
default error handling strategy and the logging setup.

All fields can be set via ``CHAINSPINE_*`` environment variables (e.g.
``CHAINSPINE_STEP_TIMEOUT_MS=60000``) or a ``.env`` file.

Examples:
    >>> from chainspine.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.max_retries
    3

Tags:
    chainspine, configuration, settings, pydantic
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChainSettings(BaseSettings):
    """Chainspine engine-wide configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CHAINSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Run defaults ─────────────────────────────────────────────
    max_retries: int = Field(default=3, ge=0, description="Default retry budget per step")
    step_timeout_ms: int = Field(default=300_000, gt=0, description="Default per-step timeout")
    total_timeout_ms: int = Field(default=1_800_000, gt=0, description="Default whole-run budget; runs stop once it is spent")
    enable_parallel_execution: bool = Field(default=False)
    error_handling_strategy: Literal[
        "fail_fast", "continue_on_error", "retry_on_error", "skip_on_error"
    ] = Field(default="retry_on_error")
    data_validation: bool = Field(default=True)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: Literal["console", "json"] = Field(default="console")
    service_name: str = Field(default="chainspine")

    # ── Registry housekeeping ────────────────────────────────────
    cleanup_max_age_ms: int = Field(default=3_600_000, gt=0)
    history_limit: int = Field(default=1000, ge=0, description="Terminal results kept for statistics")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "WARN", "ERROR"}:
            raise ValueError(f"Unsupported log level: {value}")
        return "WARNING" if level == "WARN" else level


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, ChainSettings] = {}


def get_settings(*, _force_reload: bool = False) -> ChainSettings:
    """Load, validate, and cache a :class:`ChainSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]

    settings = ChainSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Drop the cached settings (for tests)."""
    _settings_cache.clear()


__all__ = ["ChainSettings", "get_settings", "clear_settings_cache"]
