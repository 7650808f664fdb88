"""Pydantic models for chain definition documents (YAML or JSON).

Provides typed parsing for chain documents so they can be authored as
files and turned into the same :class:`ChainDefinition` used by
code-first callers.  Only the document *shape* is enforced here; the
structural rules (id present, steps present, prompt ids, mapping
cycles) are reported by :func:`validate_chain_definition`.

Usage::

    from chainspine.orchestration.loader import ChainDocument

    doc = ChainDocument.from_file("chains/review.yaml")
    definition = doc.to_definition()

Example YAML::

    id: review-chain
    name: Review chain
    description: Analyze a document, then summarize the analysis
    steps:
      - prompt_id: analyze
        step_name: Analyze
        output_mapping: {result: analysis}
      - promptId: summarize          # camelCase keys are accepted too
        stepName: Summarize
        inputMapping: {text: analysis}
        timeout: 60000

Tags:
    chainspine, orchestration, yaml, json, declarative
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from chainspine.orchestration.models import ChainDefinition, ChainStepSpec


class ChainStepDocument(BaseModel):
    """One step entry of a chain document."""

    model_config = ConfigDict(extra="forbid")

    prompt_id: str = Field(
        default="",
        validation_alias=AliasChoices("prompt_id", "promptId"),
        description="Handle of the work the step performs",
    )
    step_name: str = Field(default="", validation_alias=AliasChoices("step_name", "stepName"))
    category: str | None = Field(default=None)
    input_mapping: dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("input_mapping", "inputMapping"),
        description="target key -> shared data source key",
    )
    output_mapping: dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("output_mapping", "outputMapping"),
        description="output source key -> shared data target key",
    )
    retry_count: int | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("retry_count", "retryCount")
    )
    timeout_ms: int | None = Field(
        default=None, gt=0, validation_alias=AliasChoices("timeout_ms", "timeout")
    )

    def to_step(self) -> ChainStepSpec:
        return ChainStepSpec(
            prompt_id=self.prompt_id,
            step_name=self.step_name,
            category=self.category,
            input_mapping=self.input_mapping,
            output_mapping=self.output_mapping,
            retry_count=self.retry_count,
            timeout_ms=self.timeout_ms,
        )


class ChainDocument(BaseModel):
    """A whole chain document."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default="", description="Definition id")
    name: str = Field(default="", description="Display name")
    description: str = Field(default="")
    enabled: bool = Field(default=True)
    steps: list[ChainStepDocument] = Field(default_factory=list)

    @field_validator("name", "description", mode="before")
    @classmethod
    def _pick_localized(cls, value: Any) -> Any:
        # {en: ..., zh: ...} localized names collapse to one string
        if isinstance(value, dict):
            for key in ("en", "zh"):
                if value.get(key):
                    return value[key]
            return next((v for v in value.values() if v), "")
        return value

    def to_definition(self) -> ChainDefinition:
        return ChainDefinition(
            id=self.id,
            name=self.name,
            description=self.description,
            enabled=self.enabled,
            steps=tuple(step.to_step() for step in self.steps),
        )

    @classmethod
    def from_yaml(cls, content: str) -> ChainDocument:
        """Parse and validate YAML (or JSON, a YAML subset) content.

        Raises:
            ValueError: If the content isn't valid YAML or isn't a mapping
            pydantic.ValidationError: If the document doesn't match the schema
        """
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML: {e}") from e
        return cls._from_data(data)

    @classmethod
    def from_json(cls, content: str) -> ChainDocument:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON: {e}") from e
        return cls._from_data(data)

    @classmethod
    def from_file(cls, path: str | Path) -> ChainDocument:
        """Load a ``.json`` file as JSON and anything else as YAML."""
        path = Path(path)
        content = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            return cls.from_json(content)
        return cls.from_yaml(content)

    @classmethod
    def _from_data(cls, data: Any) -> ChainDocument:
        if not isinstance(data, dict):
            raise ValueError(f"Chain document must be a mapping, got {type(data).__name__}")
        return cls.model_validate(data)


def load_chain_definition(path: str | Path) -> ChainDefinition:
    """Read a chain document file and return its :class:`ChainDefinition`."""
    return ChainDocument.from_file(path).to_definition()


__all__ = ["ChainStepDocument", "ChainDocument", "load_chain_definition"]
