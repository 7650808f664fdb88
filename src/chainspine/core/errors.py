"""
Structured error types for chainspine.

Provides a small hierarchy of typed errors carrying the metadata the chain
engine needs to classify a failure: which category it belongs to, whether
retrying makes sense, which chain/step it happened in, and what caused it.

Manifesto:
    - **Typed Error Hierarchy:** different error types for different concerns
    - **Explicit Retry Semantics:** each error knows if it's retryable
    - **Rich Context:** errors carry chain/step metadata for logging
    - **Error Chaining:** the original exception is preserved as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                    ChainSpineError                        │
        │     (category, retryable, context, cause)                │
        ├──────────────────────────────────────────────────────────┤
        │  ValidationError      ConfigError      StorageError      │
        │  (VALIDATION)         (CONFIG)         (STORAGE)         │
        │                                                           │
        │  OrchestrationError                                       │
        │  (ORCHESTRATION)  ── see chainspine.orchestration.exceptions
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> error = StorageError("record store offline")
    >>> error.with_context(chain_id="abc", step_index=2)
    StorageError('record store offline', category=STORAGE)
    >>> error.context.step_index
    2

Guardrails:
    ❌ DON'T: Set retryable=True for validation/config errors
    ✅ DO: Let the error type's default_retryable handle it

    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as cause= for error chaining
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Infrastructure
    STORAGE = "STORAGE"           # Task record store, persistence
    TIMEOUT = "TIMEOUT"           # Deadline exceeded

    # Definition / data
    VALIDATION = "VALIDATION"     # Chain definition or data shape violations
    CONFIG = "CONFIG"             # Missing config, invalid settings

    # Application
    STEP = "STEP"                 # A step contract failed
    ORCHESTRATION = "ORCHESTRATION"  # Engine bookkeeping, registry

    # Internal
    INTERNAL = "INTERNAL"         # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"           # Uncategorized errors


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Only non-None fields are emitted by :meth:`to_dict`; anything that does
    not have a dedicated field goes into ``metadata``.

    Attributes:
        chain_id: Run identifier of the chain execution
        definition_id: Id of the chain definition being executed
        step_index: Index of the step within the chain
        prompt_id: Prompt handle of the step
        task_id: Backing task record id
        metadata: Additional key-value pairs
    """

    chain_id: str | None = None
    definition_id: str | None = None
    step_index: int | None = None
    prompt_id: str | None = None
    task_id: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["chain_id", "definition_id", "step_index", "prompt_id", "task_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ChainSpineError(Exception):
    """
    Base exception for all chainspine errors.

    Subclasses set ``default_category`` and ``default_retryable`` to give
    sensible defaults for their concern; both can be overridden per instance.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ChainSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise StorageError("write rejected").with_context(
                chain_id=chain_id, step_index=i
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class ValidationError(ChainSpineError):
    """
    Definition or data validation error.

    Never retryable - the input must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class ConfigError(ChainSpineError):
    """Configuration error. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidConfigError(ConfigError):
    """Configuration value has an invalid value."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid value for {key}: {value!r}")


class StorageError(ChainSpineError):
    """Storage / record store error."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class OrchestrationError(ChainSpineError):
    """Chain orchestration error."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, ChainSpineError):
        return error.category
    if isinstance(error, TimeoutError):
        return ErrorCategory.TIMEOUT
    if isinstance(error, (ValueError, TypeError)):
        return ErrorCategory.VALIDATION
    if isinstance(error, (KeyError, AttributeError)):
        return ErrorCategory.CONFIG
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ChainSpineError",
    "ValidationError",
    "ConfigError",
    "InvalidConfigError",
    "StorageError",
    "OrchestrationError",
    "categorize_error",
]
