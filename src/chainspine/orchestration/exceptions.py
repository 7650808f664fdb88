"""Orchestration exceptions — structured error hierarchy.

Hierarchy::

    OrchestrationError  (from chainspine.core.errors)
      └── ChainError                  ── base for chain engine errors
            ├── ChainValidationError    ── definition failed structural checks
            ├── ChainNotFoundError      ── no run (active or recorded) with that chain id
            ├── RegistryError           ── duplicate id / inconsistent registry
            ├── StepContractError       ── raised by a step to fail with a message
            └── StepNotResolvedError    ── no contract for a step's prompt id

    StorageError  (from chainspine.core.errors)
      └── RecordStoreError            ── task record store rejected an operation

``RecordStoreError`` and ``RegistryError`` are bookkeeping failures: the
executor reports them as ``SYSTEM_ERROR`` and always stops the run.
"""

from chainspine.core.errors import ErrorCategory, OrchestrationError, StorageError


class ChainError(OrchestrationError):
    """Base exception for all chain engine errors."""

    pass


class ChainValidationError(ChainError):
    """Raised when a chain definition fails structural validation."""

    default_category = ErrorCategory.VALIDATION

    def __init__(self, definition_id: str, errors: list[str]):
        self.definition_id = definition_id
        self.errors = list(errors)
        joined = "; ".join(self.errors)
        super().__init__(f"Invalid chain definition '{definition_id}': {joined}")


class ChainNotFoundError(ChainError):
    """Raised when no chain run, active or recorded, has the requested id."""

    def __init__(self, chain_id: str):
        self.chain_id = chain_id
        super().__init__(f"Chain run not found: {chain_id}")


class RegistryError(ChainError):
    """Raised when the active-run registry is used inconsistently."""

    pass


class StepContractError(ChainError):
    """Raised by a step contract to fail the step with a specific message."""

    default_category = ErrorCategory.STEP
    default_retryable = True


class StepNotResolvedError(ChainError):
    """Raised when no step contract is registered for a prompt id."""

    default_category = ErrorCategory.CONFIG

    def __init__(self, prompt_id: str):
        self.prompt_id = prompt_id
        super().__init__(f"No step contract registered for prompt '{prompt_id}'")


class RecordStoreError(StorageError):
    """Raised when the task record store rejects an operation."""

    pass


__all__ = [
    "ChainError",
    "ChainValidationError",
    "ChainNotFoundError",
    "RegistryError",
    "StepContractError",
    "StepNotResolvedError",
    "RecordStoreError",
]
