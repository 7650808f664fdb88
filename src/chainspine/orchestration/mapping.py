"""Input / output mapping between a step and the shared data bag.

Mappings are additive: keys nobody mapped pass through untouched, and a
source key that is absent is simply not mapped (never an error).

    input_mapping   {target: source}   shared_data[source] -> input[target]
    output_mapping  {source: target}   output[source]      -> shared[target]
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any


def apply_input_mapping(
    shared_data: Mapping[str, Any],
    input_mapping: Mapping[str, str],
) -> dict[str, Any]:
    """Build the invocation input: ``shared_data`` overlaid with mapped keys."""
    mapped = {
        target: shared_data[source]
        for target, source in input_mapping.items()
        if source in shared_data
    }
    return {**shared_data, **mapped}


def apply_output_mapping(
    output: Mapping[str, Any],
    output_mapping: Mapping[str, str],
) -> dict[str, Any]:
    """Build the mapped output: raw ``output`` overlaid with renamed keys.

    Source keys are kept alongside their targets.
    """
    mapped = {
        target: output[source]
        for source, target in output_mapping.items()
        if source in output
    }
    return {**output, **mapped}


def missing_sources(data: Mapping[str, Any], mapping: Mapping[str, str], *, input_side: bool) -> list[str]:
    """Source keys of ``mapping`` that ``data`` doesn't have (for debug logs)."""
    sources = mapping.values() if input_side else mapping.keys()
    return [s for s in sources if s not in data]


def copy_value(value: Any) -> Any:
    """Deep copy of ``value``, degrading to a partial copy when that fails.

    Mappings and lists are rebuilt item by item; anything that refuses to
    be copied (locks, connections, generators) is carried by reference.
    """
    try:
        return copy.deepcopy(value)
    except Exception:
        if isinstance(value, Mapping):
            return copy_data(value)
        if isinstance(value, list):
            return [copy_value(item) for item in value]
        return value


def copy_data(data: Mapping[str, Any]) -> dict[str, Any]:
    """Detached copy of a data bag; see :func:`copy_value`."""
    return {key: copy_value(value) for key, value in data.items()}


__all__ = ["apply_input_mapping", "apply_output_mapping", "copy_data", "copy_value", "missing_sources"]
