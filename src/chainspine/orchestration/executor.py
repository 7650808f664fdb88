"""Chain Executor — drives one chain definition through its steps.

The executor turns a :class:`ChainDefinition` plus an initial data bag into
an :class:`ExecutionContext`, creates one backing task record per step,
and runs the steps in order:

- **Input mapping** overlays renamed shared-data keys on the data bag
- **Step contract** is resolved by prompt id and invoked with a timeout
- **Output mapping** merges the (renamed) output back into the data bag
- **Error strategy** decides whether a failed step aborts the run
- **Events** are appended to the context history and sent to listeners

ARCHITECTURE
────────────
::

    execute_chain(definition, initial_data, config)
      ├── validate definition          ChainValidationError if invalid
      ├── register context + token     in the shared ExecutionRegistry
      ├── create backing records       one per step, linked parent → child
      ├── CHAIN_STARTED
      ├── step loop ───────────────────────────────────────────────┐
      │     wait while paused / stop if cancelled                  │
      │     stop if the run budget is spent (TIMEOUT)              │
      │     STEP_STARTED → map input → invoke → map output         │
      │     STEP_COMPLETED | STEP_FAILED (+ fail_fast abort)       │
      ├─────────────────────────────────────────────────────────────┘
      ├── CHAIN_COMPLETED | CHAIN_FAILED   (none after a cancel)
      └── deregister (always)

Failures of the engine's own bookkeeping (record store, registry) end the
run with a non-recoverable ``SYSTEM_ERROR`` regardless of strategy.

Example::

    executor = ChainExecutor(store=InMemoryTaskRecordStore(), resolver=contracts)
    result = executor.execute_chain(definition, {"doc": text})
    if not result.success:
        for error in result.errors:
            print(error.step_index, error.error_type, error.message)
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from chainspine.core.errors import categorize_error
from chainspine.core.logging import LogContext, get_logger
from chainspine.core.settings import get_settings
from chainspine.execution.cancellation import CancellationToken, use_token
from chainspine.execution.timeout import DeadlineContext, TimeoutExpired, run_with_timeout
from chainspine.orchestration.context import ExecutionContext
from chainspine.orchestration.exceptions import (
    ChainError,
    ChainNotFoundError,
    ChainValidationError,
    RecordStoreError,
    StepContractError,
)
from chainspine.orchestration.mapping import apply_input_mapping, apply_output_mapping, missing_sources
from chainspine.orchestration.models import (
    ChainDefinition,
    ChainErrorType,
    ChainEventType,
    ChainStepSpec,
    ErrorHandlingStrategy,
    ExecutionError,
    ExecutionEvent,
    ExecutionResult,
    LogLevel,
    RunConfig,
    StepRetryOutcome,
    resolve_run_config,
)
from chainspine.orchestration.records import (
    ChainRecordStatus,
    TaskRecordStore,
    TaskStatus,
    get_chain_tasks,
)
from chainspine.orchestration.registry import ExecutionRegistry
from chainspine.orchestration.step_contract import StepResolver
from chainspine.orchestration.validation import check_declared_keys, validate_chain_definition

logger = get_logger(__name__)

EventListener = Callable[[str, ExecutionEvent], None]


@dataclass
class _RunState:
    """Loop bookkeeping that must survive a bookkeeping failure."""

    errors: list[ExecutionError] = field(default_factory=list)
    completed: int = 0
    aborted: bool = False
    cancelled: bool = False


class ChainExecutor:
    """Runs chain definitions step by step.

    Steps run strictly sequentially on the calling thread; each contract
    invocation happens on a worker thread only so that it can be bounded
    by the step timeout.
    """

    def __init__(
        self,
        store: TaskRecordStore,
        resolver: StepResolver,
        registry: ExecutionRegistry | None = None,
        defaults: RunConfig | None = None,
        listeners: Iterable[EventListener] = (),
    ) -> None:
        """Initialise the executor.

        Args:
            store: Task record store for the backing records.
            resolver: Maps a step to its contract (e.g. ``ContractRegistry``).
            registry: Active-run registry; the manager passes its own.
            defaults: Engine defaults; taken from ``ChainSettings`` if omitted.
            listeners: Callables invoked with ``(chain_id, event)``.
        """
        self._store = store
        self._resolver = resolver
        self._registry = registry if registry is not None else ExecutionRegistry()
        self._defaults = defaults if defaults is not None else RunConfig.from_settings(get_settings())
        self._listeners: list[EventListener] = list(listeners)

    @property
    def registry(self) -> ExecutionRegistry:
        return self._registry

    @property
    def store(self) -> TaskRecordStore:
        return self._store

    @property
    def defaults(self) -> RunConfig:
        return self._defaults

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # =========================================================================
    # Execute
    # =========================================================================

    def execute_chain(
        self,
        definition: ChainDefinition,
        initial_data: Mapping[str, Any] | None = None,
        config: RunConfig | Mapping[str, Any] | None = None,
        *,
        chain_id: str | None = None,
    ) -> ExecutionResult:
        """
        Execute a chain definition.

        Args:
            definition: The chain to run
            initial_data: Initial shared data bag (copied)
            config: Full RunConfig or partial overrides of the defaults
            chain_id: Pre-generated run id (default: new uuid4)

        Returns:
            ExecutionResult; ``success`` is true iff no step failed

        Raises:
            ChainValidationError: If the definition fails structural checks
            RegistryError: If ``chain_id`` is already active
        """
        report = validate_chain_definition(definition)
        if not report.valid:
            raise ChainValidationError(definition.id, list(report.errors))

        run_config = resolve_run_config(self._defaults, config)
        chain_id = chain_id or str(uuid.uuid4())
        initial = dict(initial_data or {})

        context = ExecutionContext.create(chain_id, definition, run_config, initial)
        token = CancellationToken()
        self._registry.register(context, token)

        state = _RunState()
        with LogContext(chain_id=chain_id), use_token(token):
            try:
                logger.info(
                    "chain.start",
                    definition_id=definition.id,
                    chain_name=definition.name,
                    step_count=len(definition.steps),
                    strategy=run_config.error_handling_strategy.value,
                )
                self._run(context, token, definition, initial, run_config, state)
            except Exception as exc:
                # Bookkeeping failed; the engine's own state may be inconsistent
                state.aborted = True
                state.errors.append(
                    ExecutionError(
                        step_index=context.current_step_index,
                        error_type=ChainErrorType.SYSTEM_ERROR,
                        message=str(exc),
                        task_id=context.task_id_for(context.current_step_index),
                        recoverable=False,
                    )
                )
                logger.error(
                    "chain.system_error",
                    step_index=context.current_step_index,
                    error=str(exc),
                    error_type=type(exc).__name__,
                    category=categorize_error(exc).value,
                )
                self._emit_terminal(context, state)
            finally:
                self._registry.remove(chain_id)

            result = ExecutionResult(
                chain_id=chain_id,
                success=not state.errors,
                completed_steps=state.completed,
                total_steps=context.total_steps,
                execution_time_ms=context.elapsed_ms,
                results=context.step_results_copy(),
                errors=list(state.errors),
                final_data=context.shared_data_copy(),
                cancelled=state.cancelled,
            )

            log = logger.info if result.success else logger.warning
            log(
                "chain.complete",
                success=result.success,
                cancelled=result.cancelled,
                completed_steps=result.completed_steps,
                total_steps=result.total_steps,
                error_count=len(result.errors),
                duration_ms=round(result.execution_time_ms, 3),
            )
            return result

    def _run(
        self,
        context: ExecutionContext,
        token: CancellationToken,
        definition: ChainDefinition,
        initial: dict[str, Any],
        config: RunConfig,
        state: _RunState,
    ) -> None:
        if config.enable_parallel_execution:
            logger.warning("chain.parallel_unsupported", detail="steps run sequentially")

        data_warnings: list[str] = []
        if config.data_validation:
            data_warnings = check_declared_keys(definition, initial.keys())
            for warning in data_warnings:
                logger.warning("chain.undeclared_key", detail=warning)

        task_ids = self._create_chain_tasks(definition, context.chain_id, initial, config)
        context.set_task_ids(task_ids)

        start_data: dict[str, Any] = {
            "chain_name": definition.name,
            "definition_id": definition.id,
            "total_steps": len(definition.steps),
            "initial_data": dict(initial),
        }
        if data_warnings:
            start_data["data_warnings"] = data_warnings
        self._emit(context, ChainEventType.CHAIN_STARTED, 0, task_ids[0], start_data)

        self._run_steps(context, token, definition, task_ids, config, state)
        with context.lock:
            if token.is_cancelled:
                state.cancelled = True
            self._emit_terminal(context, state)
            self._registry.remove(context.chain_id)

    def _run_steps(
        self,
        context: ExecutionContext,
        token: CancellationToken,
        definition: ChainDefinition,
        task_ids: list[str],
        config: RunConfig,
        state: _RunState,
    ) -> None:
        deadline = DeadlineContext.start(config.total_timeout_ms / 1000, operation="chain run")

        for i, step in enumerate(definition.steps):
            task_id = task_ids[i]

            if not self._wait_until_runnable(token, deadline):
                state.cancelled = True
                logger.info("chain.stopped_by_cancel", next_step=i)
                return

            try:
                deadline.check(f"chain run before step {i + 1}")
            except TimeoutExpired as exc:
                state.aborted = True
                state.errors.append(
                    ExecutionError(
                        step_index=i,
                        error_type=ChainErrorType.TIMEOUT,
                        message=(
                            f"Chain run exceeded total timeout of {config.total_timeout_ms}ms "
                            f"before step {i + 1}"
                        ),
                        task_id=task_id,
                        recoverable=False,
                    )
                )
                logger.error("chain.total_timeout", step_index=i, error=str(exc))
                return

            shared = context.shared_data_copy()
            with context.lock:
                # A cancel that lands here must win over the next step start
                if token.is_cancelled:
                    state.cancelled = True
                    return
                context.set_current_step(i)
                self._emit(
                    context,
                    ChainEventType.STEP_STARTED,
                    i,
                    task_id,
                    {"step_name": step.step_name, "prompt_id": step.prompt_id, "input_data": shared},
                )

            logger.info(
                "chain.step.start",
                step_index=i,
                step=f"{i + 1}/{len(definition.steps)}",
                step_name=step.display_name,
                task_id=task_id,
            )

            self._store.update_task(task_id, chain_status=ChainRecordStatus.EXECUTING, chain_data=shared)
            self._store.update_task_status(task_id, TaskStatus.IN_PROGRESS)

            mapped_input = apply_input_mapping(shared, step.input_mapping)
            absent = missing_sources(shared, step.input_mapping, input_side=True)
            if absent:
                logger.debug("chain.step.unmapped_inputs", step_index=i, missing=absent)
            self._store.update_task(task_id, mapped_input=mapped_input)

            output, error = self._invoke(step, i, mapped_input, config, task_id)

            with context.lock:
                # A cancel that landed mid-step suppresses further lifecycle events
                if token.is_cancelled:
                    self._settle_cancelled_step(context, step, i, task_id, output, error, state)
                    return

                if error is None:
                    mapped_output = apply_output_mapping(output, step.output_mapping)
                    context.merge_shared_data(mapped_output)
                    context.record_step_result(i, mapped_output)
                    self._mark_completed(task_id, f"Chain step completed: {step.display_name}")
                    self._emit(
                        context,
                        ChainEventType.STEP_COMPLETED,
                        i,
                        task_id,
                        {"step_result": mapped_output, "output_data": context.shared_data_copy()},
                    )
                else:
                    state.errors.append(error)
                    self._mark_failed(task_id, error)
                    self._emit(context, ChainEventType.STEP_FAILED, i, task_id, {"error": error.message})

            if error is None:
                logger.info("chain.step.complete", step_index=i, output_keys=sorted(mapped_output))
                state.completed = i + 1
                continue

            logger.error(
                "chain.step.failed",
                step_index=i,
                error_type=error.error_type.value,
                error=error.message,
            )

            if config.error_handling_strategy == ErrorHandlingStrategy.FAIL_FAST:
                state.aborted = True
                return
            state.completed = i + 1

    def _settle_cancelled_step(
        self,
        context: ExecutionContext,
        step: ChainStepSpec,
        index: int,
        task_id: str,
        output: dict[str, Any],
        error: ExecutionError | None,
        state: _RunState,
    ) -> None:
        """Record the outcome of a step that finished after its run was cancelled.

        The outcome lands in the result; a record already marked cancelled
        keeps that status and no step event is emitted.
        """
        state.cancelled = True
        record = self._store.get_task_by_id(task_id)
        keep_record = record is not None and record.chain_status == ChainRecordStatus.CANCELLED

        if error is None:
            mapped_output = apply_output_mapping(output, step.output_mapping)
            context.merge_shared_data(mapped_output)
            context.record_step_result(index, mapped_output)
            state.completed = index + 1
            if not keep_record:
                self._mark_completed(task_id, f"Chain step completed: {step.display_name}")
        else:
            state.errors.append(error)
            if not keep_record:
                self._mark_failed(task_id, error)

        logger.info("chain.step.finished_after_cancel", step_index=index, failed=error is not None)

    def _wait_until_runnable(self, token: CancellationToken, deadline: DeadlineContext) -> bool:
        """Block while paused; ``False`` once the run is cancelled."""
        if token.is_paused:
            logger.info("chain.waiting_while_paused")
            token.wait_while_paused(timeout=max(deadline.remaining(), 0.0))
        return not token.is_cancelled

    def _invoke(
        self,
        step: ChainStepSpec,
        index: int,
        mapped_input: dict[str, Any],
        config: RunConfig,
        task_id: str | None,
    ) -> tuple[dict[str, Any], ExecutionError | None]:
        """Resolve and call the step contract; classify any failure."""
        try:
            contract = self._resolver(step, index)
            output = run_with_timeout(
                contract,
                step.effective_timeout_ms(config) / 1000,
                operation=f"step {index + 1}: {step.display_name}",
                args=(mapped_input,),
            )
            if not isinstance(output, Mapping):
                raise StepContractError(
                    f"Step contract for '{step.prompt_id}' returned "
                    f"{type(output).__name__}, expected a mapping"
                )
            return dict(output), None
        except TimeoutExpired as exc:
            return {}, ExecutionError(
                step_index=index,
                error_type=ChainErrorType.TIMEOUT,
                message=str(exc),
                task_id=task_id,
            )
        except Exception as exc:
            return {}, ExecutionError(
                step_index=index,
                error_type=ChainErrorType.STEP_EXECUTION_FAILED,
                message=str(exc) or type(exc).__name__,
                task_id=task_id,
            )

    # =========================================================================
    # Backing records
    # =========================================================================

    def _create_chain_tasks(
        self,
        definition: ChainDefinition,
        chain_id: str,
        initial: dict[str, Any],
        config: RunConfig,
    ) -> list[str]:
        task_ids: list[str] = []
        previous: str | None = None
        total = len(definition.steps)

        for i, step in enumerate(definition.steps):
            record = self._store.create_task(
                name=f"{definition.name} - step {i + 1}: {step.display_name}",
                description=f"Run step {i + 1} of {total} of chain '{definition.name}': {step.display_name}",
                notes=f"Chain step, uses prompt {step.prompt_id}",
                dependencies=[previous] if previous else [],
            )
            self._store.update_task(
                record.id,
                chain_id=chain_id,
                step_index=i,
                chain_data=dict(initial) if i == 0 else {},
                parent_step_id=previous,
                chain_status=ChainRecordStatus.WAITING_FOR_PARENT,
                max_retries=step.effective_max_retries(config),
            )
            if previous:
                parent = self._store.get_task_by_id(previous)
                if parent is None:
                    raise RecordStoreError(f"Task not found: {previous}").with_context(
                        chain_id=chain_id, task_id=previous
                    )
                self._store.update_task(previous, child_step_ids=[*parent.child_step_ids, record.id])

            task_ids.append(record.id)
            previous = record.id

        logger.debug("chain.records_created", task_count=len(task_ids))
        return task_ids

    def _mark_completed(self, task_id: str, summary: str) -> None:
        self._store.update_task_status(task_id, TaskStatus.COMPLETED)
        self._store.update_task(task_id, chain_status=ChainRecordStatus.STEP_COMPLETED, summary=summary)

    def _mark_failed(self, task_id: str, error: ExecutionError) -> None:
        record = self._store.get_task_by_id(task_id)
        if record is None:
            raise RecordStoreError(f"Task not found: {task_id}").with_context(task_id=task_id)
        self._store.update_task(
            task_id,
            chain_status=ChainRecordStatus.CHAIN_FAILED,
            status=TaskStatus.BLOCKED,
            errors=[*record.errors, error.to_dict()],
        )

    # =========================================================================
    # Events
    # =========================================================================

    def _emit(
        self,
        context: ExecutionContext,
        event_type: ChainEventType,
        step_index: int | None,
        task_id: str | None,
        data: dict[str, Any] | None = None,
    ) -> ExecutionEvent:
        event = ExecutionEvent(
            event_type=event_type,
            step_index=step_index,
            task_id=task_id,
            data=data or {},
        )
        context.record_event(event)

        if context.config.log_level == LogLevel.DEBUG:
            logger.debug("chain.event", event_type=event_type.value, step_index=step_index, task_id=task_id)

        for listener in list(self._listeners):
            try:
                listener(context.chain_id, event)
            except Exception as e:
                logger.warning(
                    "chain.listener_error",
                    event_type=event_type.value,
                    error=str(e),
                )
        return event

    def _emit_terminal(self, context: ExecutionContext, state: _RunState) -> None:
        if state.cancelled:
            return
        elapsed = round(context.elapsed_ms, 3)
        if state.aborted:
            self._emit(
                context,
                ChainEventType.CHAIN_FAILED,
                context.current_step_index,
                None,
                {"errors": [e.to_dict() for e in state.errors], "execution_time_ms": elapsed},
            )
        else:
            self._emit(
                context,
                ChainEventType.CHAIN_COMPLETED,
                context.total_steps - 1,
                None,
                {"execution_time_ms": elapsed, "final_data": context.shared_data_copy()},
            )

    # =========================================================================
    # Control
    # =========================================================================

    def get_chain_status(self, chain_id: str) -> ExecutionContext | None:
        """Snapshot of an active run, or ``None`` if it isn't active."""
        entry = self._registry.get(chain_id)
        return entry.context.snapshot() if entry else None

    def cancel_chain(self, chain_id: str) -> bool:
        """Stop an active run before its next step. ``False`` if not active."""
        entry = self._registry.get(chain_id)
        if entry is None:
            return False

        context = entry.context
        with context.lock:
            # The run may have finished while we waited for the lock
            if self._registry.get(chain_id) is not entry:
                return False
            entry.token.cancel()
            self._emit(
                context,
                ChainEventType.CHAIN_CANCELLED,
                context.current_step_index,
                None,
                {"cancelled_at": datetime.now(UTC).isoformat()},
            )
        self._registry.remove(chain_id)
        logger.info("chain.cancelled", chain_id=chain_id, step_index=context.current_step_index)
        return True

    def pause_chain(self, chain_id: str) -> bool:
        """Suspend an active run at its next step boundary."""
        entry = self._registry.get(chain_id)
        if entry is None or not entry.token.pause():
            return False
        self._emit(entry.context, ChainEventType.CHAIN_PAUSED, entry.context.current_step_index, None, {})
        logger.info("chain.paused", chain_id=chain_id)
        return True

    def resume_chain(self, chain_id: str) -> bool:
        entry = self._registry.get(chain_id)
        if entry is None or not entry.token.resume():
            return False
        self._emit(entry.context, ChainEventType.CHAIN_RESUMED, entry.context.current_step_index, None, {})
        logger.info("chain.resumed", chain_id=chain_id)
        return True

    # =========================================================================
    # Retry re-entry
    # =========================================================================

    def rerun_step(
        self,
        chain_id: str,
        definition: ChainDefinition,
        step_index: int,
        config: RunConfig | Mapping[str, Any] | None = None,
    ) -> StepRetryOutcome:
        """Re-invoke a step marked for retry with its captured mapped input.

        Intervening steps are not recomputed and the run's shared data is
        not touched; the outcome is recorded on the step's backing record.

        Raises:
            ChainNotFoundError: If no records exist for ``chain_id``
            ChainError: If the step has no record, isn't marked for retry,
                or isn't part of ``definition``
        """
        if not 0 <= step_index < len(definition.steps):
            raise ChainError(f"Step index {step_index} out of range for chain '{definition.id}'")
        step = definition.steps[step_index]

        records = get_chain_tasks(self._store, chain_id)
        if not records:
            raise ChainNotFoundError(chain_id)
        record = next((t for t in records if t.step_index == step_index), None)
        if record is None:
            raise ChainError(f"No record for step {step_index} of chain {chain_id}").with_context(
                chain_id=chain_id, step_index=step_index
            )
        if not record.retry_requested:
            raise ChainError(f"Step {step_index} of chain {chain_id} is not marked for retry")

        run_config = resolve_run_config(self._defaults, config)
        if record.mapped_input is not None:
            mapped_input = dict(record.mapped_input)
        else:
            mapped_input = apply_input_mapping(record.chain_data, step.input_mapping)

        with LogContext(chain_id=chain_id):
            logger.info("chain.step.retry", step_index=step_index, attempt=record.retry_attempts)
            self._store.update_task(
                record.id,
                chain_status=ChainRecordStatus.EXECUTING,
                status=TaskStatus.IN_PROGRESS,
                retry_requested=False,
            )

            output, error = self._invoke(step, step_index, mapped_input, run_config, record.id)
            if error is None:
                mapped_output = apply_output_mapping(output, step.output_mapping)
                self._mark_completed(record.id, f"Chain step retried: {step.display_name}")
                logger.info("chain.step.retry_complete", step_index=step_index)
                return StepRetryOutcome(
                    chain_id=chain_id,
                    step_index=step_index,
                    success=True,
                    message=f"Step {step_index} completed on retry",
                    output=mapped_output,
                )

            self._mark_failed(record.id, error)
            logger.warning("chain.step.retry_failed", step_index=step_index, error=error.message)
            return StepRetryOutcome(
                chain_id=chain_id,
                step_index=step_index,
                success=False,
                message=f"Step {step_index} failed again: {error.message}",
                error=error,
            )


__all__ = ["ChainExecutor", "EventListener"]
