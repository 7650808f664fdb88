"""Tests for the step contract registry and simulated steps."""

from __future__ import annotations

import pytest

from chainspine.orchestration import (
    ChainStepSpec,
    ContractRegistry,
    SimulatedStep,
    StepNotResolvedError,
    simulated_contracts,
    simulated_step,
)


class TestContractRegistry:
    def test_register_and_resolve(self):
        registry = ContractRegistry()

        def summarize(data):
            return {"summary": data["text"][:3]}

        registry.register("summarize", summarize)

        assert registry.resolve(ChainStepSpec("summarize"), 0) is summarize
        assert registry(ChainStepSpec("summarize"), 0) is summarize
        assert "summarize" in registry

    def test_decorator_registration(self):
        registry = ContractRegistry()

        @registry.register("echo")
        def echo(data):
            return dict(data)

        assert registry.list_prompts() == ["echo"]
        assert echo({"a": 1}) == {"a": 1}

    def test_duplicate_rejected(self):
        registry = ContractRegistry()
        registry.register("p", lambda data: {})

        with pytest.raises(ValueError, match="already registered"):
            registry.register("p", lambda data: {})

    def test_replace(self):
        registry = ContractRegistry()
        registry.register("p", lambda data: {"v": 1})

        def second(data):
            return {"v": 2}

        registry.register("p", second, replace=True)

        assert registry.resolve(ChainStepSpec("p"), 0) is second

    def test_unregister(self):
        registry = ContractRegistry()
        registry.register("p", lambda data: {})

        assert registry.unregister("p") is True
        assert registry.unregister("p") is False
        assert "p" not in registry

    def test_unknown_prompt(self):
        with pytest.raises(StepNotResolvedError) as exc_info:
            ContractRegistry().resolve(ChainStepSpec("ghost"), 3)

        assert exc_info.value.prompt_id == "ghost"
        assert exc_info.value.context.step_index == 3

    def test_default_factory(self):
        registry = ContractRegistry(default_factory=simulated_step)

        contract = registry.resolve(ChainStepSpec("anything", "Any"), 2)

        assert contract == SimulatedStep("Any", 2)


class TestSimulatedStep:
    def test_echoes_input_and_tags(self):
        output = SimulatedStep("Analyze", 0)({"doc": "text"})

        assert output == {"doc": "text", "stepResult": "Executed: Analyze", "stepIndex": 0}

    def test_uses_prompt_id_without_name(self):
        output = simulated_contracts().resolve(ChainStepSpec("analyze"), 1)({})

        assert output["stepResult"] == "Executed: analyze"
        assert output["stepIndex"] == 1
