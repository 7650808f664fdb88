"""
Chainspine Orchestration — multi-step chain execution engine.

WHY
───
A single step contract performs one unit of work.  A chain strings several
of them together: each step reads named values from a shared data bag,
produces new ones, and the engine routes them to the next step while
recording every transition in backing task records.

ARCHITECTURE
────────────
::

    ChainDefinition (ordered ChainStepSpecs)
      │
      ▼
    ChainManager ── registry, status, cancel, pause, retry, statistics
      │
      ▼
    ChainExecutor ── step loop: map input → invoke contract → map output
      │                │
      │                └── StepContract (resolved by prompt id)
      ▼
    TaskRecordStore ── one audit record per step

MODULE MAP (recommended reading order)
──────────────────────────────────────
1. exceptions.py      ─ error hierarchy
2. models.py          ─ definitions, RunConfig, events, results
3. context.py         ─ mutable per-run ExecutionContext
4. mapping.py         ─ input / output mapping
5. step_contract.py   ─ contract protocol, registry, simulated step
6. records.py         ─ task record store + chain queries
7. registry.py        ─ active-run registry
8. validation.py      ─ structural checks and declared-key warnings
9. executor.py        ─ the step loop
10. manager.py        ─ lifecycle / query surface
11. loader.py         ─ YAML / JSON chain documents

Example::

    from chainspine.orchestration import (
        ChainDefinition, ChainManager, ChainStepSpec, ContractRegistry,
    )

    contracts = ContractRegistry()
    contracts.register("extract", lambda data: {"result": data["doc"].upper()})
    contracts.register("summarize", lambda data: {"summary": data["text"][:20]})

    definition = ChainDefinition(
        id="doc-chain",
        name="Document chain",
        steps=[
            ChainStepSpec("extract", "Extract", output_mapping={"result": "extracted"}),
            ChainStepSpec("summarize", "Summarize", input_mapping={"text": "extracted"}),
        ],
    )

    manager = ChainManager(resolver=contracts)
    result = manager.start_chain_execution(definition, {"doc": "hello"})
"""

from chainspine.orchestration.context import ExecutionContext
from chainspine.orchestration.exceptions import (
    ChainError,
    ChainNotFoundError,
    ChainValidationError,
    RecordStoreError,
    RegistryError,
    StepContractError,
    StepNotResolvedError,
)
from chainspine.orchestration.executor import ChainExecutor, EventListener
from chainspine.orchestration.loader import ChainDocument, ChainStepDocument, load_chain_definition
from chainspine.orchestration.manager import (
    CancelOutcome,
    ChainManager,
    ExecutionStatistics,
    ExecutionStatus,
    RetryOutcome,
)
from chainspine.orchestration.mapping import apply_input_mapping, apply_output_mapping
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
    CanExecute,
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
from chainspine.orchestration.registry import ExecutionRegistry, RegistryEntry
from chainspine.orchestration.step_contract import (
    ContractRegistry,
    SimulatedStep,
    StepContract,
    StepResolver,
    simulated_contracts,
    simulated_step,
)
from chainspine.orchestration.validation import (
    ValidationReport,
    check_declared_keys,
    validate_chain_definition,
)

__all__ = [
    # Exceptions
    "ChainError",
    "ChainNotFoundError",
    "ChainValidationError",
    "RecordStoreError",
    "RegistryError",
    "StepContractError",
    "StepNotResolvedError",
    # Models
    "ChainDefinition",
    "ChainErrorType",
    "ChainEventType",
    "ChainStepSpec",
    "ErrorHandlingStrategy",
    "ExecutionError",
    "ExecutionEvent",
    "ExecutionResult",
    "LogLevel",
    "RunConfig",
    "StepRetryOutcome",
    "resolve_run_config",
    # Context / mapping
    "ExecutionContext",
    "apply_input_mapping",
    "apply_output_mapping",
    # Step contracts
    "ContractRegistry",
    "SimulatedStep",
    "StepContract",
    "StepResolver",
    "simulated_contracts",
    "simulated_step",
    # Records
    "CanExecute",
    "ChainProgress",
    "ChainRecordStatus",
    "InMemoryTaskRecordStore",
    "TaskRecord",
    "TaskRecordStore",
    "TaskStatus",
    "can_execute_chain_task",
    "cancel_chain_tasks",
    "get_chain_progress",
    "get_chain_tasks",
    # Registry
    "ExecutionRegistry",
    "RegistryEntry",
    # Validation
    "ValidationReport",
    "check_declared_keys",
    "validate_chain_definition",
    # Engine
    "ChainExecutor",
    "EventListener",
    "ChainManager",
    "CancelOutcome",
    "ExecutionStatistics",
    "ExecutionStatus",
    "RetryOutcome",
    # Documents
    "ChainDocument",
    "ChainStepDocument",
    "load_chain_definition",
]
