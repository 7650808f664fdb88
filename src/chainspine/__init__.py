"""
Chainspine - multi-step chain execution engine.

- chainspine.core: logging, errors, settings
- chainspine.execution: step timeouts, cancellation tokens
- chainspine.orchestration: chain definitions, executor, manager
- chainspine.cli: command line interface
"""

__version__ = "0.1.0"

from chainspine.orchestration import (  # noqa: E402
    ChainDefinition,
    ChainExecutor,
    ChainManager,
    ChainStepSpec,
    ContractRegistry,
    ErrorHandlingStrategy,
    ExecutionResult,
    InMemoryTaskRecordStore,
    RunConfig,
)

__all__ = [
    "__version__",
    "ChainDefinition",
    "ChainExecutor",
    "ChainManager",
    "ChainStepSpec",
    "ContractRegistry",
    "ErrorHandlingStrategy",
    "ExecutionResult",
    "InMemoryTaskRecordStore",
    "RunConfig",
]
