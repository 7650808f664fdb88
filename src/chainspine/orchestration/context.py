"""
Execution Context - mutable record of one in-flight chain run.

Only the step loop of the run that owns a context mutates it; the manager
and status queries read it through :meth:`ExecutionContext.snapshot`,
which returns a detached copy taken under the context's lock.

Example:
    ctx = ExecutionContext.create("run-1", definition, config, {"doc": "..."})
    ctx.set_current_step(0)
    ctx.merge_shared_data({"summary": "..."})
    view = ctx.snapshot()          # safe to hand to another thread

Tags:
    chainspine, orchestration, context, shared-data
"""

from __future__ import annotations

import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from chainspine.orchestration.mapping import copy_data
from chainspine.orchestration.models import ChainDefinition, ExecutionEvent, RunConfig


@dataclass
class ExecutionContext:
    """
    Mutable per-run state.

    Attributes:
        chain_id: Unique run identifier (distinct from the definition id)
        definition_id: Id of the executed ChainDefinition
        total_steps: Number of steps in the definition
        config: Resolved run configuration
        start_time: Wall-clock start (UTC)
        current_step_index: Index of the step the loop is on
        shared_data: The accumulating data bag
        step_results: Mapped output of each completed step, by index
        execution_history: Append-only event log
    """

    chain_id: str
    definition_id: str
    total_steps: int
    config: RunConfig
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    current_step_index: int = 0
    shared_data: dict[str, Any] = field(default_factory=dict)
    step_results: dict[int, dict[str, Any]] = field(default_factory=dict)
    execution_history: list[ExecutionEvent] = field(default_factory=list)
    task_ids: list[str] = field(default_factory=list)
    _started_monotonic: float = field(default_factory=time.monotonic, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @classmethod
    def create(
        cls,
        chain_id: str,
        definition: ChainDefinition,
        config: RunConfig,
        initial_data: Mapping[str, Any] | None = None,
    ) -> ExecutionContext:
        return cls(
            chain_id=chain_id,
            definition_id=definition.id,
            total_steps=len(definition.steps),
            config=config,
            shared_data=copy_data(initial_data or {}),
        )

    @property
    def lock(self) -> threading.RLock:
        """Held while checking cancellation and recording a step start."""
        return self._lock

    # -------------------------------------------------------------------------
    # Mutation (step loop only)
    # -------------------------------------------------------------------------

    def set_current_step(self, index: int) -> None:
        with self._lock:
            self.current_step_index = index

    def merge_shared_data(self, updates: Mapping[str, Any]) -> None:
        with self._lock:
            self.shared_data.update(updates)

    def record_step_result(self, index: int, output: Mapping[str, Any]) -> None:
        with self._lock:
            self.step_results[index] = dict(output)

    def record_event(self, event: ExecutionEvent) -> None:
        with self._lock:
            self.execution_history.append(event)

    def set_task_ids(self, task_ids: list[str]) -> None:
        with self._lock:
            self.task_ids = list(task_ids)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def shared_data_copy(self) -> dict[str, Any]:
        with self._lock:
            return copy_data(self.shared_data)

    def step_results_copy(self) -> dict[int, dict[str, Any]]:
        with self._lock:
            return {index: copy_data(output) for index, output in self.step_results.items()}

    def task_id_for(self, index: int) -> str | None:
        with self._lock:
            if 0 <= index < len(self.task_ids):
                return self.task_ids[index]
            return None

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self._started_monotonic) * 1000

    def snapshot(self) -> ExecutionContext:
        """Detached copy of the current state, safe to read from any thread."""
        with self._lock:
            return ExecutionContext(
                chain_id=self.chain_id,
                definition_id=self.definition_id,
                total_steps=self.total_steps,
                config=self.config,
                start_time=self.start_time,
                current_step_index=self.current_step_index,
                shared_data=copy_data(self.shared_data),
                step_results=self.step_results_copy(),
                execution_history=[replace(e, data=copy_data(e.data)) for e in self.execution_history],
                task_ids=list(self.task_ids),
                _started_monotonic=self._started_monotonic,
            )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for status endpoints / JSON output."""
        with self._lock:
            return {
                "chain_id": self.chain_id,
                "definition_id": self.definition_id,
                "current_step_index": self.current_step_index,
                "total_steps": self.total_steps,
                "start_time": self.start_time.isoformat(),
                "config": self.config.to_dict(),
                "shared_data": copy_data(self.shared_data),
                "step_results": {str(k): copy_data(v) for k, v in self.step_results.items()},
                "execution_history": [e.to_dict() for e in self.execution_history],
                "task_ids": list(self.task_ids),
            }

    def __repr__(self) -> str:
        return (
            f"ExecutionContext(chain_id={self.chain_id!r}, "
            f"step={self.current_step_index}/{self.total_steps})"
        )


__all__ = ["ExecutionContext"]
