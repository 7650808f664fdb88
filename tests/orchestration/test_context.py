"""Tests for ExecutionContext."""

from __future__ import annotations

import threading

from chainspine.orchestration import (
    ChainEventType,
    ExecutionContext,
    ExecutionEvent,
    RunConfig,
)

from conftest import linear_chain


def _context(initial=None) -> ExecutionContext:
    return ExecutionContext.create("run-1", linear_chain(3), RunConfig(), initial)


class TestExecutionContext:
    def test_create(self):
        ctx = _context({"doc": "x"})

        assert ctx.chain_id == "run-1"
        assert ctx.definition_id == "linear-3"
        assert ctx.total_steps == 3
        assert ctx.current_step_index == 0
        assert ctx.shared_data == {"doc": "x"}

    def test_initial_data_copied(self):
        initial = {"nested": {"k": 1}}
        ctx = _context(initial)
        ctx.shared_data["nested"]["k"] = 2

        assert initial == {"nested": {"k": 1}}

    def test_mutations(self):
        ctx = _context()
        ctx.set_current_step(1)
        ctx.merge_shared_data({"a": 1})
        ctx.record_step_result(1, {"a": 1})
        ctx.record_event(ExecutionEvent(ChainEventType.STEP_STARTED, step_index=1))
        ctx.set_task_ids(["t0", "t1", "t2"])

        assert ctx.current_step_index == 1
        assert ctx.shared_data == {"a": 1}
        assert ctx.step_results == {1: {"a": 1}}
        assert len(ctx.execution_history) == 1
        assert ctx.task_id_for(2) == "t2"
        assert ctx.task_id_for(3) is None

    def test_copies_are_detached(self):
        ctx = _context({"list": [1]})

        ctx.shared_data_copy()["list"].append(2)

        assert ctx.shared_data == {"list": [1]}

    def test_snapshot_is_independent(self):
        ctx = _context({"a": 1})
        ctx.record_event(ExecutionEvent(ChainEventType.CHAIN_STARTED))

        snap = ctx.snapshot()
        ctx.merge_shared_data({"b": 2})
        ctx.record_event(ExecutionEvent(ChainEventType.STEP_STARTED))

        assert snap.shared_data == {"a": 1}
        assert len(snap.execution_history) == 1
        assert snap.chain_id == ctx.chain_id

    def test_uncopyable_values_survive_copies(self):
        lock = threading.Lock()
        ctx = _context({"lock": lock})
        ctx.record_step_result(0, {"lock": lock})
        ctx.record_event(ExecutionEvent(ChainEventType.STEP_STARTED, data={"input_data": {"lock": lock}}))

        snap = ctx.snapshot()

        assert ctx.shared_data_copy()["lock"] is lock
        assert snap.shared_data["lock"] is lock
        assert snap.step_results[0]["lock"] is lock
        assert snap.execution_history[0].data["input_data"]["lock"] is lock
        assert ctx.to_dict()["shared_data"]["lock"] is lock

    def test_elapsed_ms_grows(self):
        ctx = _context()
        assert ctx.elapsed_ms >= 0.0

    def test_to_dict(self):
        ctx = _context({"a": 1})
        ctx.record_step_result(0, {"a": 1})

        payload = ctx.to_dict()

        assert payload["chain_id"] == "run-1"
        assert payload["step_results"] == {"0": {"a": 1}}
        assert payload["config"]["error_handling_strategy"] == "retry_on_error"

    def test_repr(self):
        assert repr(_context()) == "ExecutionContext(chain_id='run-1', step=0/3)"
