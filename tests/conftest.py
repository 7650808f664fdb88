"""
Shared pytest fixtures for chainspine tests.

This module provides:
- Logging / settings reset for test isolation
- A recording contract registry (captures every invocation's input)
- Sample chain definitions, including the A -> B -> C chain
- Executor / manager factories wired to an in-memory record store
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

import pytest
import structlog

from chainspine.core.settings import ChainSettings, clear_settings_cache
from chainspine.orchestration import (
    ChainDefinition,
    ChainExecutor,
    ChainManager,
    ChainStepSpec,
    ContractRegistry,
    InMemoryTaskRecordStore,
    RunConfig,
)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def reset_logging_and_settings() -> Generator[None, None, None]:
    """Undo configure_logging() and cached settings between tests."""
    clear_settings_cache()
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    clear_settings_cache()


# =============================================================================
# Step contracts
# =============================================================================


class RecordingContracts(ContractRegistry):
    """ContractRegistry that remembers what each prompt was invoked with."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def add(self, prompt_id: str, func) -> None:
        def contract(data: dict[str, Any]) -> Any:
            self.calls.append((prompt_id, dict(data)))
            return func(data)

        self.register(prompt_id, contract, replace=True)

    def inputs_for(self, prompt_id: str) -> list[dict[str, Any]]:
        return [data for pid, data in self.calls if pid == prompt_id]

    def invoked(self, prompt_id: str) -> bool:
        return any(pid == prompt_id for pid, _ in self.calls)


def fail_with(message: str):
    def contract(data: dict[str, Any]) -> Any:
        raise RuntimeError(message)

    return contract


@pytest.fixture
def contracts() -> RecordingContracts:
    return RecordingContracts()


@pytest.fixture
def abc_contracts(contracts: RecordingContracts) -> RecordingContracts:
    """A, B and C all succeed; B and C echo what they were given."""
    contracts.add("A", lambda data: {"out": "from-a"})
    contracts.add("B", lambda data: {"out": f"from-b({data.get('b')})"})
    contracts.add("C", lambda data: {"seen": data.get("c")})
    return contracts


# =============================================================================
# Definitions
# =============================================================================


@pytest.fixture
def abc_chain() -> ChainDefinition:
    """[A -> {out: a}, B(in: {b: a}) -> {out: b}, C(in: {c: b})]."""
    return ChainDefinition(
        id="abc",
        name="ABC chain",
        steps=(
            ChainStepSpec("A", "Step A", output_mapping={"out": "a"}),
            ChainStepSpec("B", "Step B", input_mapping={"b": "a"}, output_mapping={"out": "b"}),
            ChainStepSpec("C", "Step C", input_mapping={"c": "b"}),
        ),
    )


def linear_chain(n: int, prefix: str = "p") -> ChainDefinition:
    return ChainDefinition(
        id=f"linear-{n}",
        name=f"Linear {n}",
        steps=tuple(ChainStepSpec(f"{prefix}{i}", f"Step {i}") for i in range(n)),
    )


# =============================================================================
# Engine factories
# =============================================================================


@pytest.fixture
def run_defaults() -> RunConfig:
    """Engine defaults independent of the environment."""
    return RunConfig(step_timeout_ms=5_000, total_timeout_ms=30_000)


@pytest.fixture
def store() -> InMemoryTaskRecordStore:
    return InMemoryTaskRecordStore()


@pytest.fixture
def executor(store, contracts, run_defaults) -> ChainExecutor:
    return ChainExecutor(store=store, resolver=contracts, defaults=run_defaults)


@pytest.fixture
def settings() -> ChainSettings:
    return ChainSettings(_env_file=None)


@pytest.fixture
def manager(store, contracts, run_defaults, settings) -> Generator[ChainManager, None, None]:
    mgr = ChainManager(store=store, resolver=contracts, settings=settings, defaults=run_defaults)
    yield mgr
    mgr.shutdown(wait=True)
