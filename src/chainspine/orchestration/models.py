"""Chain data model — definitions, run configuration, errors, events, results.

Manifesto:
    Definitions and run configuration are immutable values: a chain is
    validated once at start and never mutated afterwards.  Errors, events
    and results are plain records that serialize to JSON-friendly dicts.

ARCHITECTURE
────────────
::

    ChainDefinition(id, name, steps=[ChainStepSpec, ...])
      └── ChainStepSpec(prompt_id, input_mapping, output_mapping, ...)

    RunConfig            ── per-run knobs, resolved over ChainSettings
    ExecutionError       ── one failed step (or run-level timeout)
    ExecutionEvent       ── one entry of a run's append-only history
    ExecutionResult      ── terminal outcome of ExecuteChain
    StepRetryOutcome     ── outcome of re-invoking one failed step

Tags:
    chainspine, orchestration, models, dataclasses
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from chainspine.core.errors import InvalidConfigError

if TYPE_CHECKING:
    from chainspine.core.settings import ChainSettings


class ErrorHandlingStrategy(str, Enum):
    """What the step loop does after a step fails."""

    FAIL_FAST = "fail_fast"  # abort the run
    CONTINUE_ON_ERROR = "continue_on_error"
    RETRY_ON_ERROR = "retry_on_error"  # continue; retry via manager
    SKIP_ON_ERROR = "skip_on_error"


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class ChainErrorType(str, Enum):
    """Classification of an :class:`ExecutionError`."""

    MAPPING_ERROR = "mapping_error"
    STEP_EXECUTION_FAILED = "step_execution_failed"
    TIMEOUT = "timeout"
    SYSTEM_ERROR = "system_error"


class ChainEventType(str, Enum):
    CHAIN_STARTED = "chain_started"
    STEP_STARTED = "step_started"
    STEP_COMPLETED = "step_completed"
    STEP_FAILED = "step_failed"
    CHAIN_COMPLETED = "chain_completed"
    CHAIN_FAILED = "chain_failed"
    CHAIN_CANCELLED = "chain_cancelled"
    CHAIN_PAUSED = "chain_paused"
    CHAIN_RESUMED = "chain_resumed"


# =============================================================================
# Definitions
# =============================================================================


@dataclass(frozen=True)
class ChainStepSpec:
    """
    One step of a chain.

    Attributes:
        prompt_id: Opaque handle to the work the step performs
        step_name: Display name
        category: Optional grouping tag
        input_mapping: target key -> source key, read from shared data
        output_mapping: source key -> target key, written into shared data
        retry_count: Retry budget for this step (default: run max_retries)
        timeout_ms: Step timeout (default: run step_timeout_ms)
    """

    prompt_id: str
    step_name: str = ""
    category: str | None = None
    input_mapping: dict[str, str] = field(default_factory=dict)
    output_mapping: dict[str, str] = field(default_factory=dict)
    retry_count: int | None = None
    timeout_ms: int | None = None

    def __post_init__(self):
        # Own the tables so a caller's dict can't change a definition later
        object.__setattr__(self, "input_mapping", dict(self.input_mapping or {}))
        object.__setattr__(self, "output_mapping", dict(self.output_mapping or {}))

    @property
    def display_name(self) -> str:
        return self.step_name or self.prompt_id

    def effective_timeout_ms(self, config: RunConfig) -> int:
        return self.timeout_ms if self.timeout_ms else config.step_timeout_ms

    def effective_max_retries(self, config: RunConfig) -> int:
        return self.retry_count if self.retry_count is not None else config.max_retries

    def to_dict(self) -> dict[str, Any]:
        return {
            "prompt_id": self.prompt_id,
            "step_name": self.step_name,
            "category": self.category,
            "input_mapping": dict(self.input_mapping),
            "output_mapping": dict(self.output_mapping),
            "retry_count": self.retry_count,
            "timeout_ms": self.timeout_ms,
        }


@dataclass(frozen=True)
class ChainDefinition:
    """An ordered, immutable list of steps. Validated once at chain start."""

    id: str
    name: str
    steps: tuple[ChainStepSpec, ...] = ()
    description: str = ""
    enabled: bool = True

    def __post_init__(self):
        object.__setattr__(self, "steps", tuple(self.steps))

    def __len__(self) -> int:
        return len(self.steps)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "steps": [s.to_dict() for s in self.steps],
        }


# =============================================================================
# Run configuration
# =============================================================================


@dataclass(frozen=True)
class RunConfig:
    """Immutable per-run configuration. Durations are milliseconds.

    ``total_timeout_ms`` is enforced: once the budget (30 minutes by
    default, ``CHAINSPINE_TOTAL_TIMEOUT_MS``) is spent, the run stops before its
    next step with a non-recoverable ``TIMEOUT`` error, whatever the
    error handling strategy.  The step in flight is allowed to finish.
    Raise the budget for chains expected to run longer.
    """

    max_retries: int = 3
    step_timeout_ms: int = 300_000
    total_timeout_ms: int = 1_800_000
    enable_parallel_execution: bool = False
    error_handling_strategy: ErrorHandlingStrategy = ErrorHandlingStrategy.RETRY_ON_ERROR
    data_validation: bool = True
    log_level: LogLevel = LogLevel.INFO

    def __post_init__(self):
        object.__setattr__(
            self, "error_handling_strategy", _coerce_strategy(self.error_handling_strategy)
        )
        object.__setattr__(self, "log_level", _coerce_log_level(self.log_level))
        if self.max_retries < 0:
            raise InvalidConfigError("max_retries", self.max_retries, "max_retries must be >= 0")
        for key in ("step_timeout_ms", "total_timeout_ms"):
            if getattr(self, key) <= 0:
                raise InvalidConfigError(key, getattr(self, key), f"{key} must be positive")

    @classmethod
    def from_settings(cls, settings: ChainSettings) -> RunConfig:
        """Engine defaults taken from :class:`ChainSettings`."""
        return cls(
            max_retries=settings.max_retries,
            step_timeout_ms=settings.step_timeout_ms,
            total_timeout_ms=settings.total_timeout_ms,
            enable_parallel_execution=settings.enable_parallel_execution,
            error_handling_strategy=settings.error_handling_strategy,
            data_validation=settings.data_validation,
            log_level=settings.log_level,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_retries": self.max_retries,
            "step_timeout_ms": self.step_timeout_ms,
            "total_timeout_ms": self.total_timeout_ms,
            "enable_parallel_execution": self.enable_parallel_execution,
            "error_handling_strategy": self.error_handling_strategy.value,
            "data_validation": self.data_validation,
            "log_level": self.log_level.value,
        }


_RUN_CONFIG_FIELDS = frozenset(f.name for f in fields(RunConfig))


def resolve_run_config(
    defaults: RunConfig,
    overrides: RunConfig | Mapping[str, Any] | None = None,
) -> RunConfig:
    """Merge ``overrides`` over ``defaults``.

    A full :class:`RunConfig` replaces the defaults outright.  A mapping
    overrides only the fields it names; ``None`` values are ignored.
    """
    if overrides is None:
        return defaults
    if isinstance(overrides, RunConfig):
        return overrides

    unknown = set(overrides) - _RUN_CONFIG_FIELDS
    if unknown:
        key = sorted(unknown)[0]
        raise InvalidConfigError(key, overrides[key], f"Unknown run config field: {key}")

    changes = {k: v for k, v in overrides.items() if v is not None}
    return replace(defaults, **changes)


def _coerce_strategy(value: ErrorHandlingStrategy | str) -> ErrorHandlingStrategy:
    if isinstance(value, ErrorHandlingStrategy):
        return value
    try:
        return ErrorHandlingStrategy(str(value).lower())
    except ValueError:
        raise InvalidConfigError("error_handling_strategy", value) from None


def _coerce_log_level(value: LogLevel | str) -> LogLevel:
    if isinstance(value, LogLevel):
        return value
    level = str(value).lower()
    if level == "warning":
        level = "warn"
    try:
        return LogLevel(level)
    except ValueError:
        raise InvalidConfigError("log_level", value) from None


# =============================================================================
# Errors, events, results
# =============================================================================


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class ExecutionError:
    """A step failure (or run-level timeout) recorded on the result."""

    step_index: int
    error_type: ChainErrorType
    message: str
    task_id: str | None = None
    recoverable: bool = True
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_index": self.step_index,
            "task_id": self.task_id,
            "error_type": self.error_type.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
        }


@dataclass
class ExecutionEvent:
    """One entry of a run's execution history."""

    event_type: ChainEventType
    step_index: int | None = None
    task_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "step_index": self.step_index,
            "task_id": self.task_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


@dataclass
class ExecutionResult:
    """
    Terminal outcome of a chain run.

    ``success`` is true iff ``errors`` is empty.  ``cancelled`` marks runs
    stopped by an explicit cancel; ``completed_steps`` then counts the steps
    processed before the cancel took effect.
    """

    chain_id: str
    success: bool
    completed_steps: int
    total_steps: int
    execution_time_ms: float
    results: dict[int, dict[str, Any]] = field(default_factory=dict)
    errors: list[ExecutionError] = field(default_factory=list)
    final_data: dict[str, Any] = field(default_factory=dict)
    cancelled: bool = False
    finished_at: datetime = field(default_factory=_utcnow)

    @property
    def failed_step_indexes(self) -> list[int]:
        return [e.step_index for e in self.errors]

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "success": self.success,
            "completed_steps": self.completed_steps,
            "total_steps": self.total_steps,
            "execution_time_ms": round(self.execution_time_ms, 3),
            "results": {str(k): v for k, v in self.results.items()},
            "errors": [e.to_dict() for e in self.errors],
            "final_data": self.final_data,
            "cancelled": self.cancelled,
            "finished_at": self.finished_at.isoformat(),
        }


@dataclass
class StepRetryOutcome:
    """Outcome of re-invoking one step with its captured mapped input."""

    chain_id: str
    step_index: int | None
    success: bool
    message: str = ""
    output: dict[str, Any] | None = None
    error: ExecutionError | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "step_index": self.step_index,
            "success": self.success,
            "message": self.message,
            "output": self.output,
            "error": self.error.to_dict() if self.error else None,
        }


__all__ = [
    "ErrorHandlingStrategy",
    "LogLevel",
    "ChainErrorType",
    "ChainEventType",
    "ChainStepSpec",
    "ChainDefinition",
    "RunConfig",
    "resolve_run_config",
    "ExecutionError",
    "ExecutionEvent",
    "ExecutionResult",
    "StepRetryOutcome",
]
