"""Tests for chain document loading (YAML / JSON)."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from chainspine.orchestration import ChainDocument, load_chain_definition

REVIEW_YAML = """\
id: review-chain
name: Review chain
description: Analyze then summarize
steps:
  - prompt_id: analyze
    step_name: Analyze
    output_mapping: {result: analysis}
  - promptId: summarize
    stepName: Summarize
    inputMapping: {text: analysis}
    retryCount: 1
    timeout: 60000
"""


class TestChainDocument:
    def test_from_yaml(self):
        definition = ChainDocument.from_yaml(REVIEW_YAML).to_definition()

        assert definition.id == "review-chain"
        assert len(definition.steps) == 2
        first, second = definition.steps
        assert first.prompt_id == "analyze"
        assert first.output_mapping == {"result": "analysis"}
        assert second.prompt_id == "summarize"
        assert second.step_name == "Summarize"
        assert second.input_mapping == {"text": "analysis"}
        assert second.retry_count == 1
        assert second.timeout_ms == 60000

    def test_from_json(self):
        payload = {"id": "j", "name": "J", "steps": [{"promptId": "p", "stepName": "P"}]}

        definition = ChainDocument.from_json(json.dumps(payload)).to_definition()

        assert definition.steps[0].prompt_id == "p"

    def test_localized_name(self):
        doc = ChainDocument.from_yaml(
            "id: x\nname: {zh: 审查, en: Review}\ndescription: {zh: 说明}\nsteps: []\n"
        )

        assert doc.name == "Review"
        assert doc.description == "说明"

    def test_invalid_yaml(self):
        with pytest.raises(ValueError, match="Invalid YAML"):
            ChainDocument.from_yaml("id: [unclosed")

    def test_invalid_json(self):
        with pytest.raises(ValueError, match="Invalid JSON"):
            ChainDocument.from_json("{nope")

    def test_non_mapping_document(self):
        with pytest.raises(ValueError, match="must be a mapping"):
            ChainDocument.from_yaml("- just\n- a list\n")

    def test_unknown_step_field(self):
        with pytest.raises(ValidationError):
            ChainDocument.from_yaml("id: x\nname: X\nsteps:\n  - prompt_id: p\n    colour: blue\n")

    def test_negative_retry_count(self):
        with pytest.raises(ValidationError):
            ChainDocument.from_yaml("id: x\nname: X\nsteps:\n  - prompt_id: p\n    retry_count: -1\n")

    def test_structure_left_to_validation(self):
        definition = ChainDocument.from_yaml("id: x\nname: X\n").to_definition()
        assert definition.steps == ()


class TestLoadChainDefinition:
    def test_yaml_file(self, tmp_path):
        path = tmp_path / "review.yaml"
        path.write_text(REVIEW_YAML, encoding="utf-8")

        assert load_chain_definition(path).name == "Review chain"

    def test_json_file(self, tmp_path):
        path = tmp_path / "chain.json"
        path.write_text(json.dumps({"id": "j", "name": "J", "steps": [{"prompt_id": "p"}]}))

        assert load_chain_definition(str(path)).id == "j"

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            load_chain_definition(tmp_path / "nope.yaml")
