"""Tests for the structured error hierarchy."""

from __future__ import annotations

import pytest

from chainspine.core.errors import (
    ChainSpineError,
    ConfigError,
    ErrorCategory,
    InvalidConfigError,
    OrchestrationError,
    StorageError,
    ValidationError,
    categorize_error,
)
from chainspine.orchestration.exceptions import (
    ChainNotFoundError,
    ChainValidationError,
    RecordStoreError,
    StepContractError,
    StepNotResolvedError,
)


class TestChainSpineError:
    def test_defaults(self):
        error = ChainSpineError("boom")

        assert error.message == "boom"
        assert error.category == ErrorCategory.INTERNAL
        assert error.retryable is False
        assert str(error) == "boom"

    def test_overrides(self):
        error = StorageError("x", retryable=True, category=ErrorCategory.TIMEOUT)

        assert error.retryable is True
        assert error.category == ErrorCategory.TIMEOUT

    def test_with_context_is_fluent(self):
        error = StorageError("x").with_context(chain_id="c1", step_index=2, region="eu")

        assert error.context.chain_id == "c1"
        assert error.context.step_index == 2
        assert error.context.metadata == {"region": "eu"}

    def test_cause_is_chained(self):
        cause = OSError("disk")
        error = StorageError("write failed", cause=cause)

        assert error.__cause__ is cause
        assert error.to_dict()["cause"] == "disk"

    def test_to_dict(self):
        payload = StorageError("x").with_context(task_id="t").to_dict()

        assert payload == {
            "error_type": "StorageError",
            "message": "x",
            "category": "STORAGE",
            "retryable": False,
            "context": {"task_id": "t"},
        }

    def test_repr(self):
        assert repr(ConfigError("bad")) == "ConfigError('bad', category=CONFIG)"

    def test_validation_error_fields(self):
        payload = ValidationError("bad id", field="id", value=3).to_dict()

        assert payload["field"] == "id"
        assert payload["value"] == "3"

    def test_invalid_config_message(self):
        error = InvalidConfigError("max_retries", -1)

        assert error.key == "max_retries"
        assert error.message == "Invalid value for max_retries: -1"
        assert isinstance(error, ConfigError)


class TestChainExceptions:
    def test_validation_error(self):
        error = ChainValidationError("d1", ["a", "b"])

        assert error.errors == ["a", "b"]
        assert error.definition_id == "d1"
        assert str(error) == "Invalid chain definition 'd1': a; b"
        assert error.category == ErrorCategory.VALIDATION
        assert isinstance(error, OrchestrationError)

    def test_step_errors(self):
        assert StepContractError("x").retryable is True
        assert StepContractError("x").category == ErrorCategory.STEP
        assert StepNotResolvedError("p").category == ErrorCategory.CONFIG

    def test_not_found(self):
        assert "run-9" in str(ChainNotFoundError("run-9"))

    def test_record_store_error_is_storage(self):
        assert RecordStoreError("x").category == ErrorCategory.STORAGE


class TestCategorize:
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (StorageError("x"), ErrorCategory.STORAGE),
            (TimeoutError(), ErrorCategory.TIMEOUT),
            (ValueError(), ErrorCategory.VALIDATION),
            (KeyError("k"), ErrorCategory.CONFIG),
            (RuntimeError(), ErrorCategory.UNKNOWN),
        ],
    )
    def test_categories(self, error, expected):
        assert categorize_error(error) == expected
