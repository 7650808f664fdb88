"""Chain Manager — lifecycle, query and validation surface for chain runs.

WHY
───
The executor knows how to run one chain.  Callers also need to find a
run again by id, see how far it got, stop it, retry the step that
failed, and keep the registry from leaking.  ``ChainManager`` owns the
active-run registry and the executor and exposes those operations.

ARCHITECTURE
────────────
::

    ChainManager(store, resolver)
      ├── start_chain_execution(def, data, config)   → ExecutionResult
      ├── submit_chain_execution(def, data, config)  → (chain_id, Future)
      ├── get_execution_status(chain_id)             → ExecutionStatus
      ├── pause_execution / resume_execution         → bool
      ├── cancel_execution(chain_id)                 → CancelOutcome
      ├── retry_failed_step(chain_id, step_index?)   → RetryOutcome
      ├── execute_retry(chain_id, def, step_index?)  → StepRetryOutcome
      ├── validate_chain_definition(def)             → ValidationReport
      ├── get_active_executions()                    → list[str]
      ├── cleanup_completed_executions(max_age_ms)   → int
      └── get_execution_statistics()                 → ExecutionStatistics

    Owns:
      ExecutionRegistry   — chain_id → (ExecutionContext, CancellationToken)
      ChainExecutor       — step loop, sharing the registry
      result history      — bounded, feeds the statistics

Envelope-returning operations never raise for unknown chain ids; they
return ``success=False`` with a message.

Example::

    manager = ChainManager(resolver=contracts)
    result = manager.start_chain_execution(definition, {"doc": text})
    if not result.success:
        retry = manager.retry_failed_step(result.chain_id)
        if retry.success:
            manager.execute_retry(result.chain_id, definition, retry.retry_step_index)
"""

from __future__ import annotations

import threading
import uuid
from collections import deque
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from chainspine.core.logging import get_logger
from chainspine.core.settings import ChainSettings, get_settings
from chainspine.orchestration.context import ExecutionContext
from chainspine.orchestration.executor import ChainExecutor, EventListener
from chainspine.orchestration.models import (
    ChainDefinition,
    ExecutionResult,
    RunConfig,
    StepRetryOutcome,
)
from chainspine.orchestration.records import (
    ChainProgress,
    ChainRecordStatus,
    InMemoryTaskRecordStore,
    TaskRecord,
    TaskRecordStore,
    TaskStatus,
    can_execute_chain_task,
    cancel_chain_tasks,
    get_chain_progress,
    get_chain_tasks,
)
from chainspine.orchestration.registry import ExecutionRegistry
from chainspine.orchestration.step_contract import StepResolver, simulated_contracts
from chainspine.orchestration.validation import ValidationReport, validate_chain_definition

logger = get_logger(__name__)


# =============================================================================
# Envelopes
# =============================================================================


@dataclass(frozen=True, slots=True)
class ExecutionStatus:
    """Live context (if still active), record-derived progress and records."""

    chain_id: str
    context: ExecutionContext | None
    progress: ChainProgress
    records: list[TaskRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "context": self.context.to_dict() if self.context else None,
            "progress": self.progress.to_dict(),
            "records": [r.to_dict() for r in self.records],
        }


@dataclass(frozen=True, slots=True)
class CancelOutcome:
    success: bool
    message: str
    cancelled_task_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "cancelled_task_count": self.cancelled_task_count,
        }


@dataclass(frozen=True, slots=True)
class RetryOutcome:
    success: bool
    message: str
    retry_step_index: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "retry_step_index": self.retry_step_index,
        }


@dataclass(frozen=True, slots=True)
class ExecutionStatistics:
    """Aggregates over the registry and the bounded result history.

    ``success_rate`` is a percentage (0-100).
    """

    active_executions: int
    total_executions_today: int
    average_execution_time_ms: float
    success_rate: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "active_executions": self.active_executions,
            "total_executions_today": self.total_executions_today,
            "average_execution_time_ms": self.average_execution_time_ms,
            "success_rate": self.success_rate,
        }


@dataclass(frozen=True, slots=True)
class _HistoryEntry:
    finished_at: datetime
    execution_time_ms: float
    success: bool


# =============================================================================
# Manager
# =============================================================================


class ChainManager:
    """Externally facing lifecycle layer over a :class:`ChainExecutor`."""

    def __init__(
        self,
        store: TaskRecordStore | None = None,
        resolver: StepResolver | None = None,
        *,
        settings: ChainSettings | None = None,
        defaults: RunConfig | None = None,
        max_workers: int = 4,
    ) -> None:
        """
        Args:
            store: Backing task store (default: in-memory)
            resolver: Step contract resolver (default: simulated steps)
            settings: Engine settings (default: ``get_settings()``)
            defaults: Run defaults (default: from ``settings``)
            max_workers: Threads for :meth:`submit_chain_execution`
        """
        self._settings = settings or get_settings()
        self._registry = ExecutionRegistry()
        self._executor = ChainExecutor(
            store=store if store is not None else InMemoryTaskRecordStore(),
            resolver=resolver if resolver is not None else simulated_contracts(),
            registry=self._registry,
            defaults=defaults if defaults is not None else RunConfig.from_settings(self._settings),
        )
        self._history: deque[_HistoryEntry] = deque(maxlen=self._settings.history_limit)
        self._history_lock = threading.Lock()
        self._max_workers = max_workers
        self._pool: ThreadPoolExecutor | None = None
        self._pool_lock = threading.Lock()

    @property
    def executor(self) -> ChainExecutor:
        return self._executor

    @property
    def registry(self) -> ExecutionRegistry:
        return self._registry

    @property
    def store(self) -> TaskRecordStore:
        return self._executor.store

    def add_listener(self, listener: EventListener) -> None:
        self._executor.add_listener(listener)

    # -------------------------------------------------------------------------
    # Start
    # -------------------------------------------------------------------------

    def start_chain_execution(
        self,
        definition: ChainDefinition,
        initial_data: Mapping[str, Any] | None = None,
        config: RunConfig | Mapping[str, Any] | None = None,
        *,
        chain_id: str | None = None,
    ) -> ExecutionResult:
        """Run a chain to completion on the calling thread."""
        logger.info("manager.start", definition_id=definition.id, chain_name=definition.name)
        try:
            result = self._executor.execute_chain(definition, initial_data, config, chain_id=chain_id)
        except Exception as e:
            logger.error("manager.start_failed", definition_id=definition.id, error=str(e))
            raise

        self._record_history(result)
        if result.success:
            logger.info("manager.succeeded", chain_id=result.chain_id)
        else:
            logger.warning(
                "manager.failed",
                chain_id=result.chain_id,
                cancelled=result.cancelled,
                errors=[e.to_dict() for e in result.errors],
            )
        return result

    def submit_chain_execution(
        self,
        definition: ChainDefinition,
        initial_data: Mapping[str, Any] | None = None,
        config: RunConfig | Mapping[str, Any] | None = None,
    ) -> tuple[str, Future[ExecutionResult]]:
        """Run a chain on a worker thread; returns its id and a future."""
        chain_id = str(uuid.uuid4())
        future = self._get_pool().submit(
            self.start_chain_execution, definition, initial_data, config, chain_id=chain_id
        )
        logger.debug("manager.submitted", chain_id=chain_id, definition_id=definition.id)
        return chain_id, future

    def _get_pool(self) -> ThreadPoolExecutor:
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="chainspine-run"
                )
            return self._pool

    def shutdown(self, wait: bool = True) -> None:
        """Stop the background pool used by :meth:`submit_chain_execution`."""
        with self._pool_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=wait)

    def __enter__(self) -> ChainManager:
        return self

    def __exit__(self, *args: Any) -> None:
        self.shutdown()

    # -------------------------------------------------------------------------
    # Query / control
    # -------------------------------------------------------------------------

    def get_execution_status(self, chain_id: str) -> ExecutionStatus:
        store = self._executor.store
        return ExecutionStatus(
            chain_id=chain_id,
            context=self._executor.get_chain_status(chain_id),
            progress=get_chain_progress(store, chain_id),
            records=get_chain_tasks(store, chain_id),
        )

    def get_active_executions(self) -> list[str]:
        return self._registry.chain_ids()

    def pause_execution(self, chain_id: str) -> bool:
        paused = self._executor.pause_chain(chain_id)
        logger.info("manager.pause", chain_id=chain_id, paused=paused)
        return paused

    def resume_execution(self, chain_id: str) -> bool:
        resumed = self._executor.resume_chain(chain_id)
        logger.info("manager.resume", chain_id=chain_id, resumed=resumed)
        return resumed

    def cancel_execution(self, chain_id: str) -> CancelOutcome:
        """Cancel the in-memory run and its non-terminal backing records."""
        logger.info("manager.cancel", chain_id=chain_id)
        run_cancelled = self._executor.cancel_chain(chain_id)
        records = cancel_chain_tasks(self._executor.store, chain_id)

        success = run_cancelled or records["success"]
        if run_cancelled and not records["success"]:
            message = "Chain run cancelled"
        else:
            message = records["message"]
        return CancelOutcome(
            success=success,
            message=message,
            cancelled_task_count=records["cancelled_tasks"],
        )

    # -------------------------------------------------------------------------
    # Retry
    # -------------------------------------------------------------------------

    def retry_failed_step(self, chain_id: str, step_index: int | None = None) -> RetryOutcome:
        """Mark a failed step for re-invocation.

        Without ``step_index`` the first record in ``chain_failed`` (or
        blocked) state is used.  The step must have all earlier steps
        completed and retry budget left.
        """
        logger.info("manager.retry", chain_id=chain_id, step_index=step_index)
        store = self._executor.store
        tasks = get_chain_tasks(store, chain_id)
        if not tasks:
            return RetryOutcome(False, f"No chain execution found: {chain_id}")

        if step_index is None:
            failed = next(
                (
                    t
                    for t in tasks
                    if t.chain_status == ChainRecordStatus.CHAIN_FAILED
                    or t.status == TaskStatus.BLOCKED
                ),
                None,
            )
            if failed is None or failed.step_index is None:
                return RetryOutcome(False, "No failed step found")
            step_index = failed.step_index

        target = next((t for t in tasks if t.step_index == step_index), None)
        if target is None:
            return RetryOutcome(False, f"No task found for step index {step_index}")
        if target.retry_requested:
            return RetryOutcome(False, f"Step {step_index} is already marked for retry")

        check = can_execute_chain_task(store, target.id)
        if not check.can_execute:
            return RetryOutcome(False, f"Cannot retry step {step_index}: {check.reason}")

        if target.retry_attempts >= target.max_retries:
            return RetryOutcome(
                False,
                f"Retry budget exhausted for step {step_index} "
                f"({target.retry_attempts}/{target.max_retries})",
            )

        store.update_task(
            target.id,
            chain_status=ChainRecordStatus.WAITING_FOR_PARENT,
            status=TaskStatus.PENDING,
            retry_requested=True,
            retry_attempts=target.retry_attempts + 1,
        )
        logger.info(
            "manager.retry.marked",
            chain_id=chain_id,
            step_index=step_index,
            attempt=target.retry_attempts + 1,
        )
        return RetryOutcome(True, f"Retry of step {step_index} requested", step_index)

    def execute_retry(
        self,
        chain_id: str,
        definition: ChainDefinition,
        step_index: int | None = None,
        config: RunConfig | Mapping[str, Any] | None = None,
    ) -> StepRetryOutcome:
        """Mark a failed step for retry (unless already marked) and re-run it."""
        target = step_index
        if target is None or not self._is_marked(chain_id, target):
            marked = self.retry_failed_step(chain_id, step_index)
            if not marked.success:
                return StepRetryOutcome(
                    chain_id=chain_id,
                    step_index=step_index,
                    success=False,
                    message=marked.message,
                )
            target = marked.retry_step_index

        return self._executor.rerun_step(chain_id, definition, target, config)

    def _is_marked(self, chain_id: str, step_index: int) -> bool:
        return any(
            t.step_index == step_index and t.retry_requested
            for t in get_chain_tasks(self._executor.store, chain_id)
        )

    # -------------------------------------------------------------------------
    # Validation / housekeeping
    # -------------------------------------------------------------------------

    def validate_chain_definition(self, definition: ChainDefinition) -> ValidationReport:
        return validate_chain_definition(definition)

    def cleanup_completed_executions(self, max_age_ms: float | None = None) -> int:
        """Drop registered runs older than ``max_age_ms``; return how many."""
        if max_age_ms is None:
            max_age_ms = self._settings.cleanup_max_age_ms
        removed = self._registry.remove_older_than(max_age_ms)
        for chain_id in removed:
            logger.debug("manager.cleanup.removed", chain_id=chain_id)
        if removed:
            logger.info("manager.cleanup", removed=len(removed))
        return len(removed)

    def _record_history(self, result: ExecutionResult) -> None:
        with self._history_lock:
            self._history.append(
                _HistoryEntry(
                    finished_at=result.finished_at,
                    execution_time_ms=result.execution_time_ms,
                    success=result.success,
                )
            )

    def get_execution_statistics(self) -> ExecutionStatistics:
        with self._history_lock:
            history = list(self._history)

        today = datetime.now(UTC).date()
        total = len(history)
        return ExecutionStatistics(
            active_executions=len(self._registry),
            total_executions_today=sum(1 for h in history if h.finished_at.date() == today),
            average_execution_time_ms=(
                round(sum(h.execution_time_ms for h in history) / total, 3) if total else 0.0
            ),
            success_rate=(
                round(sum(1 for h in history if h.success) / total * 100, 2) if total else 0.0
            ),
        )


__all__ = [
    "ChainManager",
    "ExecutionStatus",
    "CancelOutcome",
    "RetryOutcome",
    "ExecutionStatistics",
]
