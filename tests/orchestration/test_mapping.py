"""Tests for input / output mapping."""

from __future__ import annotations

import threading

from chainspine.orchestration import apply_input_mapping, apply_output_mapping
from chainspine.orchestration.mapping import copy_data, copy_value, missing_sources


class TestInputMapping:
    def test_overlays_mapped_keys(self):
        shared = {"analysis": "deep", "doc": "text"}

        result = apply_input_mapping(shared, {"text": "analysis"})

        assert result == {"analysis": "deep", "doc": "text", "text": "deep"}

    def test_absent_source_skipped(self):
        assert apply_input_mapping({"a": 1}, {"x": "missing"}) == {"a": 1}

    def test_mapped_key_wins_over_existing(self):
        assert apply_input_mapping({"x": 1, "y": 2}, {"x": "y"}) == {"x": 2, "y": 2}

    def test_does_not_mutate_shared(self):
        shared = {"a": 1}
        apply_input_mapping(shared, {"b": "a"})
        assert shared == {"a": 1}


class TestOutputMapping:
    def test_renames_and_keeps_source(self):
        assert apply_output_mapping({"result": 42}, {"result": "x"}) == {"result": 42, "x": 42}

    def test_absent_source_skipped(self):
        assert apply_output_mapping({"a": 1}, {"missing": "x"}) == {"a": 1}

    def test_empty_mapping_passes_output(self):
        assert apply_output_mapping({"a": 1}, {}) == {"a": 1}


class TestMissingSources:
    def test_input_side_checks_values(self):
        assert missing_sources({"a": 1}, {"x": "a", "y": "b"}, input_side=True) == ["b"]

    def test_output_side_checks_keys(self):
        assert missing_sources({"a": 1}, {"a": "x", "b": "y"}, input_side=False) == ["b"]


class TestCopyData:
    def test_copyable_values_are_detached(self):
        data = {"items": [1], "meta": {"k": "v"}}

        copied = copy_data(data)
        copied["items"].append(2)
        copied["meta"]["k"] = "changed"

        assert data == {"items": [1], "meta": {"k": "v"}}

    def test_uncopyable_value_is_shared(self):
        lock = threading.Lock()

        copied = copy_data({"lock": lock, "n": 1})

        assert copied["lock"] is lock
        assert copied["n"] == 1

    def test_mixed_containers_copied_item_by_item(self):
        lock = threading.Lock()
        inner = {"lock": lock, "items": [1]}
        rows = [lock, {"a": 1}]

        copied = copy_value({"inner": inner, "rows": rows})

        assert copied["inner"]["lock"] is lock
        assert copied["inner"] is not inner
        copied["inner"]["items"].append(2)
        assert inner["items"] == [1]
        assert copied["rows"][0] is lock
        assert copied["rows"][1] == {"a": 1}
        assert copied["rows"][1] is not rows[1]
