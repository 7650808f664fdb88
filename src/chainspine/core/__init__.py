"""
Chainspine core primitives: logging, errors and settings.

These modules have no dependency on the orchestration layer and can be
imported on their own.
"""

from chainspine.core.errors import (
    ChainSpineError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    OrchestrationError,
    StorageError,
    ValidationError,
    categorize_error,
)
from chainspine.core.logging import LogContext, configure_logging, get_logger
from chainspine.core.settings import ChainSettings, get_settings

__all__ = [
    "ChainSpineError",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidConfigError",
    "OrchestrationError",
    "StorageError",
    "ValidationError",
    "categorize_error",
    "LogContext",
    "configure_logging",
    "get_logger",
    "ChainSettings",
    "get_settings",
]
