"""Backing task records — audit trail of a chain run's steps.

Manifesto:
    Every step of a run is mirrored by one task record in an external
    store so that operators can see what ran, with which data, and where
    it stopped.  The executor never makes a control-flow decision from a
    record; the manager reads them for status, cancel and retry.

ARCHITECTURE
────────────
::

    TaskRecordStore (Protocol)            InMemoryTaskRecordStore
      ├── create_task(name, ...)          lock-protected dict,
      ├── update_task(id, **fields)       returns copies so callers
      ├── update_task_status(id, status)  never alias stored records
      ├── get_task_by_id(id)
      └── list_tasks()

    get_chain_tasks(store, chain_id)        records ordered by step index
    get_chain_progress(store, chain_id)     ChainProgress summary
    cancel_chain_tasks(store, chain_id)     mark non-terminal records cancelled
    can_execute_chain_task(store, task_id)  all earlier steps completed?

Record lifecycle::

    waiting_for_parent ──► executing ──► step_completed
                                     └─► chain_failed ──(retry)──► waiting_for_parent
    waiting_for_parent / executing ──(cancel)──► cancelled

Tags:
    chainspine, orchestration, records, audit, store
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field, fields, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any, NamedTuple, Protocol, runtime_checkable

from chainspine.core.logging import get_logger
from chainspine.orchestration.exceptions import RecordStoreError
from chainspine.orchestration.mapping import copy_value

logger = get_logger(__name__)


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class ChainRecordStatus(str, Enum):
    """Chain-level status of a backing record."""

    WAITING_FOR_PARENT = "waiting_for_parent"
    EXECUTING = "executing"
    STEP_COMPLETED = "step_completed"
    CHAIN_FAILED = "chain_failed"
    CANCELLED = "cancelled"


_NON_TERMINAL = frozenset({ChainRecordStatus.WAITING_FOR_PARENT, ChainRecordStatus.EXECUTING})


@dataclass
class TaskRecord:
    """One backing record; chain fields are ``None`` for plain tasks."""

    id: str
    name: str
    description: str = ""
    notes: str = ""
    dependencies: list[str] = field(default_factory=list)
    related_files: list[str] = field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    summary: str | None = None

    chain_id: str | None = None
    step_index: int | None = None
    chain_status: ChainRecordStatus | None = None
    chain_data: dict[str, Any] = field(default_factory=dict)
    parent_step_id: str | None = None
    child_step_ids: list[str] = field(default_factory=list)
    mapped_input: dict[str, Any] | None = None
    max_retries: int = 0
    retry_attempts: int = 0
    retry_requested: bool = False
    errors: list[dict[str, Any]] = field(default_factory=list)

    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_chain_task(self) -> bool:
        return self.chain_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "notes": self.notes,
            "dependencies": list(self.dependencies),
            "related_files": list(self.related_files),
            "status": self.status.value,
            "summary": self.summary,
            "chain_id": self.chain_id,
            "step_index": self.step_index,
            "chain_status": self.chain_status.value if self.chain_status else None,
            "chain_data": self.chain_data,
            "parent_step_id": self.parent_step_id,
            "child_step_ids": list(self.child_step_ids),
            "mapped_input": self.mapped_input,
            "max_retries": self.max_retries,
            "retry_attempts": self.retry_attempts,
            "retry_requested": self.retry_requested,
            "errors": list(self.errors),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


_UPDATABLE_FIELDS = frozenset(f.name for f in fields(TaskRecord)) - {"id", "created_at", "updated_at"}
_CONTAINER_FIELDS = (
    "dependencies",
    "related_files",
    "chain_data",
    "child_step_ids",
    "mapped_input",
    "errors",
)


def _copy_record(record: TaskRecord) -> TaskRecord:
    return replace(record, **{name: copy_value(getattr(record, name)) for name in _CONTAINER_FIELDS})


@runtime_checkable
class TaskRecordStore(Protocol):
    """CRUD surface the chain engine needs from a task store.

    Implementations raise :class:`RecordStoreError` when a write is
    rejected or the target record does not exist.
    """

    def create_task(
        self,
        name: str,
        description: str = "",
        notes: str = "",
        dependencies: Sequence[str] = (),
        related_files: Sequence[str] = (),
    ) -> TaskRecord: ...

    def update_task(self, task_id: str, **fields: Any) -> TaskRecord: ...

    def update_task_status(self, task_id: str, status: TaskStatus) -> TaskRecord: ...

    def get_task_by_id(self, task_id: str) -> TaskRecord | None: ...

    def list_tasks(self) -> list[TaskRecord]: ...


class InMemoryTaskRecordStore:
    """Thread-safe in-process task store.

    Records live only as long as the store; suitable for the CLI and tests.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, TaskRecord] = {}
        self._lock = threading.Lock()

    def create_task(
        self,
        name: str,
        description: str = "",
        notes: str = "",
        dependencies: Sequence[str] = (),
        related_files: Sequence[str] = (),
    ) -> TaskRecord:
        record = TaskRecord(
            id=str(uuid.uuid4()),
            name=name,
            description=description,
            notes=notes,
            dependencies=list(dependencies),
            related_files=list(related_files),
        )
        with self._lock:
            for dep in record.dependencies:
                if dep not in self._tasks:
                    raise RecordStoreError(f"Unknown dependency: {dep}").with_context(task_id=dep)
            self._tasks[record.id] = record
            return _copy_record(record)

    def update_task(self, task_id: str, **fields: Any) -> TaskRecord:
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise RecordStoreError(f"Unknown task fields: {sorted(unknown)}").with_context(
                task_id=task_id
            )
        with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                raise RecordStoreError(f"Task not found: {task_id}").with_context(task_id=task_id)
            copied = {name: copy_value(value) for name, value in fields.items()}
            updated = replace(current, **copied, updated_at=datetime.now(UTC))
            self._tasks[task_id] = updated
            return _copy_record(updated)

    def update_task_status(self, task_id: str, status: TaskStatus) -> TaskRecord:
        return self.update_task(task_id, status=TaskStatus(status))

    def get_task_by_id(self, task_id: str) -> TaskRecord | None:
        with self._lock:
            record = self._tasks.get(task_id)
            return _copy_record(record) if record is not None else None

    def list_tasks(self) -> list[TaskRecord]:
        with self._lock:
            return [_copy_record(r) for r in self._tasks.values()]

    def clear(self) -> None:
        with self._lock:
            self._tasks.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)


# =============================================================================
# Chain queries
# =============================================================================


@dataclass(frozen=True)
class ChainProgress:
    """Coarse progress of one chain derived from its records."""

    total_steps: int
    completed_steps: int
    current_step: int
    progress: float
    status: str  # pending | running | completed | failed | cancelled

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_steps": self.total_steps,
            "completed_steps": self.completed_steps,
            "current_step": self.current_step,
            "progress": self.progress,
            "status": self.status,
        }


class CanExecute(NamedTuple):
    can_execute: bool
    reason: str | None = None


def get_chain_tasks(store: TaskRecordStore, chain_id: str) -> list[TaskRecord]:
    """Records of ``chain_id`` ordered by step index."""
    tasks = [t for t in store.list_tasks() if t.chain_id == chain_id]
    return sorted(tasks, key=lambda t: t.step_index if t.step_index is not None else -1)


def get_chain_progress(store: TaskRecordStore, chain_id: str) -> ChainProgress:
    tasks = get_chain_tasks(store, chain_id)
    total = len(tasks)
    statuses = [t.chain_status for t in tasks]
    completed = statuses.count(ChainRecordStatus.STEP_COMPLETED)

    current = total
    for task in tasks:
        if task.chain_status != ChainRecordStatus.STEP_COMPLETED:
            current = task.step_index if task.step_index is not None else 0
            break

    if ChainRecordStatus.CANCELLED in statuses:
        status = "cancelled"
    elif ChainRecordStatus.CHAIN_FAILED in statuses:
        status = "failed"
    elif total and completed == total:
        status = "completed"
    elif completed or ChainRecordStatus.EXECUTING in statuses:
        status = "running"
    else:
        status = "pending"

    return ChainProgress(
        total_steps=total,
        completed_steps=completed,
        current_step=current,
        progress=round(completed / total * 100, 2) if total else 0.0,
        status=status,
    )


def cancel_chain_tasks(store: TaskRecordStore, chain_id: str) -> dict[str, Any]:
    """Mark every non-terminal record of ``chain_id`` as cancelled."""
    tasks = get_chain_tasks(store, chain_id)
    if not tasks:
        return {"success": False, "message": f"No tasks found for chain {chain_id}", "cancelled_tasks": 0}

    cancelled = 0
    for task in tasks:
        if task.chain_status in _NON_TERMINAL:
            store.update_task(task.id, chain_status=ChainRecordStatus.CANCELLED)
            cancelled += 1

    logger.debug("records.chain_cancelled", chain_id=chain_id, cancelled_tasks=cancelled)
    if cancelled == 0:
        return {"success": False, "message": "No pending tasks to cancel", "cancelled_tasks": 0}
    return {
        "success": True,
        "message": f"Cancelled {cancelled} task(s)",
        "cancelled_tasks": cancelled,
    }


def can_execute_chain_task(store: TaskRecordStore, task_id: str) -> CanExecute:
    """A chain task may run once every earlier step has completed."""
    task = store.get_task_by_id(task_id)
    if task is None:
        return CanExecute(False, f"Task not found: {task_id}")
    if not task.is_chain_task or task.step_index is None:
        return CanExecute(True)

    for other in get_chain_tasks(store, task.chain_id):
        if other.step_index is None or other.step_index >= task.step_index:
            continue
        if other.chain_status != ChainRecordStatus.STEP_COMPLETED:
            status = other.chain_status.value if other.chain_status else "unknown"
            return CanExecute(False, f"Step {other.step_index} has not completed ({status})")
    return CanExecute(True)


__all__ = [
    "TaskStatus",
    "ChainRecordStatus",
    "TaskRecord",
    "TaskRecordStore",
    "InMemoryTaskRecordStore",
    "ChainProgress",
    "CanExecute",
    "get_chain_tasks",
    "get_chain_progress",
    "cancel_chain_tasks",
    "can_execute_chain_task",
]
