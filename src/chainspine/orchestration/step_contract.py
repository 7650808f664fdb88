"""Step Contract — the unit of work a chain step performs.

Manifesto:
    The engine knows nothing about what a step does.  A step contract is
    any callable that takes the mapped input dict and returns a mapping of
    output values, or raises to fail.  Callers decide what runs behind a
    ``prompt_id`` by registering contracts in a :class:`ContractRegistry`.

ARCHITECTURE
────────────
::

    StepContract        (mapped_input) -> Mapping          raise to fail
    StepResolver        (step, index)  -> StepContract

    ContractRegistry    prompt_id -> contract, optional default factory
      ├── .register(prompt_id, contract)   also usable as decorator
      ├── .resolve(step, index)            raises StepNotResolvedError
      └── __call__ = resolve               so it *is* a StepResolver

    SimulatedStep       echoes its input plus stepResult / stepIndex

Example::

    contracts = ContractRegistry()

    @contracts.register("summarize")
    def summarize(data):
        return {"summary": data["text"][:100]}

    executor = ChainExecutor(resolver=contracts, ...)

Tags:
    chainspine, orchestration, step-contract, registry
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from chainspine.core.logging import get_logger
from chainspine.orchestration.exceptions import StepNotResolvedError
from chainspine.orchestration.models import ChainStepSpec

logger = get_logger(__name__)


class StepContract(Protocol):
    """Callable performing one step's work."""

    def __call__(self, mapped_input: dict[str, Any]) -> Mapping[str, Any]: ...


StepResolver = Callable[[ChainStepSpec, int], StepContract]


class ContractRegistry:
    """Maps prompt ids to step contracts."""

    def __init__(self, default_factory: StepResolver | None = None) -> None:
        """
        Args:
            default_factory: Builds a contract for prompt ids with no
                registration.  Without it, unknown ids fail the step.
        """
        self._contracts: dict[str, StepContract] = {}
        self._default_factory = default_factory

    def register(
        self,
        prompt_id: str,
        contract: StepContract | None = None,
        *,
        replace: bool = False,
    ) -> Any:
        """Register ``contract`` for ``prompt_id``.

        Called without a contract it returns a decorator.

        Raises:
            ValueError: If ``prompt_id`` is already registered and
                ``replace`` is false
        """
        if contract is None:

            def decorator(func: StepContract) -> StepContract:
                self.register(prompt_id, func, replace=replace)
                return func

            return decorator

        if prompt_id in self._contracts and not replace:
            raise ValueError(f"Step contract for '{prompt_id}' is already registered")
        self._contracts[prompt_id] = contract
        logger.debug("contract.registered", prompt_id=prompt_id)
        return contract

    def unregister(self, prompt_id: str) -> bool:
        return self._contracts.pop(prompt_id, None) is not None

    def __contains__(self, prompt_id: object) -> bool:
        return prompt_id in self._contracts

    def list_prompts(self) -> list[str]:
        return sorted(self._contracts)

    def resolve(self, step: ChainStepSpec, index: int) -> StepContract:
        contract = self._contracts.get(step.prompt_id)
        if contract is not None:
            return contract
        if self._default_factory is not None:
            return self._default_factory(step, index)
        raise StepNotResolvedError(step.prompt_id).with_context(
            prompt_id=step.prompt_id, step_index=index
        )

    __call__ = resolve


@dataclass(frozen=True)
class SimulatedStep:
    """Placeholder contract: echoes the input and tags it with the step."""

    step_name: str
    step_index: int

    def __call__(self, mapped_input: dict[str, Any]) -> Mapping[str, Any]:
        return {
            **mapped_input,
            "stepResult": f"Executed: {self.step_name}",
            "stepIndex": self.step_index,
        }


def simulated_step(step: ChainStepSpec, index: int) -> StepContract:
    """:data:`StepResolver` returning a :class:`SimulatedStep`."""
    return SimulatedStep(step_name=step.display_name, step_index=index)


def simulated_contracts() -> ContractRegistry:
    """Registry where every prompt id resolves to a simulated step."""
    return ContractRegistry(default_factory=simulated_step)


__all__ = [
    "StepContract",
    "StepResolver",
    "ContractRegistry",
    "SimulatedStep",
    "simulated_step",
    "simulated_contracts",
]
