"""Chain definition validation — structural checks before execution.

Runs a fixed list of rules over a :class:`ChainDefinition` and collects
human-readable errors and warnings.  Errors make a definition unusable;
warnings flag likely authoring mistakes but never block a run.

Architecture::

    validate_chain_definition(definition)
    │
    ├── _check_definition       id / name / steps present        (errors)
    ├── _check_steps            prompt_id (error), step_name (warning)
    ├── _check_self_cycles      step maps a key out and straight back in
    └── _check_pair_cycles      two steps feed each other          (warnings)
    │
    ▼
    ValidationReport(valid, errors, warnings)

    check_declared_keys(definition, initial_keys)
        walks the steps in order and warns for every input-mapping source
        key nothing upstream declares (typo detection; runtime mapping
        silently skips absent keys)

Example::

    report = validate_chain_definition(definition)
    if not report.valid:
        for message in report.errors:
            print(message)

Validation is pure: the same definition always yields an equal report.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from chainspine.orchestration.models import ChainDefinition, ChainStepSpec

# ---------------------------------------------------------------------------
# Report model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidationReport:
    """Outcome of validating one chain definition."""

    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        state = "valid" if self.valid else "invalid"
        return f"{state}: {len(self.errors)} error(s), {len(self.warnings)} warning(s)"

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors), "warnings": list(self.warnings)}


@dataclass
class _Findings:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


Rule = Callable[[ChainDefinition, _Findings], None]


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _check_definition(definition: ChainDefinition, found: _Findings) -> None:
    if not definition.id:
        found.errors.append("Chain definition is missing an id")
    if not (definition.name or "").strip():
        found.errors.append("Chain definition is missing a name")
    if not definition.steps:
        found.errors.append("Chain definition has no steps")


def _check_steps(definition: ChainDefinition, found: _Findings) -> None:
    for number, step in enumerate(definition.steps, start=1):
        if not step.prompt_id:
            found.errors.append(f"Step {number} is missing a prompt_id")
        if not step.step_name:
            found.warnings.append(f"Step {number} is missing a step_name")


def _check_self_cycles(definition: ChainDefinition, found: _Findings) -> None:
    # input {a: b} with output {b: a}: the step reads b as a and writes a back as b
    for number, step in enumerate(definition.steps, start=1):
        for input_key, input_source in step.input_mapping.items():
            for output_key, output_target in step.output_mapping.items():
                if input_key == output_target and output_key == input_source:
                    found.warnings.append(
                        f"Step {number} has a circular mapping: {input_key} <-> {output_key}"
                    )


def _produced(step: ChainStepSpec) -> set[str]:
    return set(step.output_mapping.values())


def _consumed(step: ChainStepSpec) -> set[str]:
    return set(step.input_mapping.values())


def _check_pair_cycles(definition: ChainDefinition, found: _Findings) -> None:
    steps = definition.steps
    for i in range(len(steps)):
        for j in range(i + 1, len(steps)):
            forward = _produced(steps[i]) & _consumed(steps[j])
            backward = _produced(steps[j]) & _consumed(steps[i])
            if forward and backward:
                found.warnings.append(
                    f"Steps {i + 1} and {j + 1} form a mapping cycle: "
                    f"step {i + 1} produces {sorted(forward)} for step {j + 1}, "
                    f"which produces {sorted(backward)} back for step {i + 1}"
                )


_RULES: tuple[Rule, ...] = (
    _check_definition,
    _check_steps,
    _check_self_cycles,
    _check_pair_cycles,
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_chain_definition(definition: ChainDefinition) -> ValidationReport:
    """Run every structural rule against ``definition``."""
    found = _Findings()
    for rule in _RULES:
        rule(definition, found)
    return ValidationReport(errors=tuple(found.errors), warnings=tuple(found.warnings))


def check_declared_keys(definition: ChainDefinition, initial_keys: Iterable[str]) -> list[str]:
    """Warn for input-mapping sources no earlier step or initial key declares.

    Known keys start as ``initial_keys``; after each step both sides of its
    output mapping are added (the raw key stays alongside the renamed one).
    """
    known = set(initial_keys)
    warnings: list[str] = []
    for number, step in enumerate(definition.steps, start=1):
        for target, source in step.input_mapping.items():
            if source not in known:
                warnings.append(
                    f"Step {number} maps input '{target}' from undeclared key '{source}'"
                )
        known.update(step.output_mapping.keys())
        known.update(step.output_mapping.values())
    return warnings


__all__ = ["ValidationReport", "validate_chain_definition", "check_declared_keys"]
