"""Tests for chain definitions, run configuration and result records."""

from __future__ import annotations

import dataclasses

import pytest

from chainspine.core.errors import InvalidConfigError
from chainspine.core.settings import ChainSettings
from chainspine.orchestration import (
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


# =============================================================================
# Definitions
# =============================================================================


class TestChainStepSpec:
    def test_display_name_falls_back_to_prompt(self):
        assert ChainStepSpec("analyze").display_name == "analyze"
        assert ChainStepSpec("analyze", "Analyze").display_name == "Analyze"

    def test_mappings_are_owned(self):
        mapping = {"x": "y"}
        step = ChainStepSpec("p", input_mapping=mapping)
        mapping["z"] = "w"

        assert step.input_mapping == {"x": "y"}

    def test_frozen(self):
        step = ChainStepSpec("p")
        with pytest.raises(dataclasses.FrozenInstanceError):
            step.prompt_id = "q"

    def test_effective_values(self):
        config = RunConfig(max_retries=2, step_timeout_ms=1000)

        assert ChainStepSpec("p").effective_timeout_ms(config) == 1000
        assert ChainStepSpec("p", timeout_ms=50).effective_timeout_ms(config) == 50
        assert ChainStepSpec("p").effective_max_retries(config) == 2
        assert ChainStepSpec("p", retry_count=0).effective_max_retries(config) == 0

    def test_to_dict(self):
        payload = ChainStepSpec("p", "P", output_mapping={"a": "b"}).to_dict()
        assert payload["prompt_id"] == "p"
        assert payload["output_mapping"] == {"a": "b"}


class TestChainDefinition:
    def test_steps_become_tuple(self):
        definition = ChainDefinition(id="d", name="D", steps=[ChainStepSpec("p")])

        assert isinstance(definition.steps, tuple)
        assert len(definition) == 1

    def test_to_dict(self):
        payload = ChainDefinition(id="d", name="D", steps=[ChainStepSpec("p")]).to_dict()
        assert payload["id"] == "d"
        assert payload["steps"][0]["prompt_id"] == "p"


# =============================================================================
# Run configuration
# =============================================================================


class TestRunConfig:
    def test_defaults(self):
        config = RunConfig()

        assert config.max_retries == 3
        assert config.step_timeout_ms == 300_000
        assert config.total_timeout_ms == 1_800_000
        assert config.enable_parallel_execution is False
        assert config.error_handling_strategy == ErrorHandlingStrategy.RETRY_ON_ERROR
        assert config.data_validation is True
        assert config.log_level == LogLevel.INFO

    def test_string_coercion(self):
        config = RunConfig(error_handling_strategy="FAIL_FAST", log_level="warning")

        assert config.error_handling_strategy == ErrorHandlingStrategy.FAIL_FAST
        assert config.log_level == LogLevel.WARN

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_retries": -1},
            {"step_timeout_ms": 0},
            {"total_timeout_ms": -5},
            {"error_handling_strategy": "explode"},
            {"log_level": "loud"},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(InvalidConfigError):
            RunConfig(**kwargs)

    def test_from_settings(self):
        settings = ChainSettings(
            _env_file=None, max_retries=1, error_handling_strategy="fail_fast", log_level="debug"
        )

        config = RunConfig.from_settings(settings)

        assert config.max_retries == 1
        assert config.error_handling_strategy == ErrorHandlingStrategy.FAIL_FAST
        assert config.log_level == LogLevel.DEBUG

    def test_to_dict(self):
        assert RunConfig().to_dict()["error_handling_strategy"] == "retry_on_error"


class TestResolveRunConfig:
    def test_none_keeps_defaults(self):
        defaults = RunConfig(max_retries=5)
        assert resolve_run_config(defaults, None) is defaults

    def test_full_config_replaces(self):
        override = RunConfig(max_retries=1)
        assert resolve_run_config(RunConfig(max_retries=5), override) is override

    def test_partial_override(self):
        resolved = resolve_run_config(
            RunConfig(max_retries=5), {"step_timeout_ms": 10, "max_retries": None}
        )

        assert resolved.step_timeout_ms == 10
        assert resolved.max_retries == 5

    def test_unknown_key(self):
        with pytest.raises(InvalidConfigError, match="Unknown run config field: bogus"):
            resolve_run_config(RunConfig(), {"bogus": 1})

    def test_override_is_validated(self):
        with pytest.raises(InvalidConfigError):
            resolve_run_config(RunConfig(), {"max_retries": -1})


# =============================================================================
# Errors, events, results
# =============================================================================


class TestRecords:
    def test_execution_error_to_dict(self):
        error = ExecutionError(1, ChainErrorType.TIMEOUT, "late", task_id="t1", recoverable=False)

        payload = error.to_dict()
        assert payload["error_type"] == "timeout"
        assert payload["recoverable"] is False
        assert payload["task_id"] == "t1"

    def test_event_to_dict(self):
        payload = ExecutionEvent(ChainEventType.CHAIN_PAUSED, data={"k": 1}).to_dict()
        assert payload["event_type"] == "chain_paused"
        assert payload["data"] == {"k": 1}

    def test_result_failed_indexes(self):
        result = ExecutionResult(
            chain_id="c",
            success=False,
            completed_steps=3,
            total_steps=3,
            execution_time_ms=1.23456,
            errors=[
                ExecutionError(0, ChainErrorType.STEP_EXECUTION_FAILED, "a"),
                ExecutionError(2, ChainErrorType.TIMEOUT, "b"),
            ],
        )

        assert result.failed_step_indexes == [0, 2]
        assert result.to_dict()["execution_time_ms"] == 1.235

    def test_retry_outcome_to_dict(self):
        outcome = StepRetryOutcome("c", 1, False, "nope", error=ExecutionError(1, ChainErrorType.TIMEOUT, "x"))

        payload = outcome.to_dict()
        assert payload["error"]["error_type"] == "timeout"
        assert payload["output"] is None
