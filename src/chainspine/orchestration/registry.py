"""Active-run registry — arena of in-flight chain runs keyed by chain id.

One :class:`ExecutionRegistry` is owned by a :class:`ChainManager` and
handed to its :class:`ChainExecutor`; there is no module-level registry.
Every insert, removal and lookup is serialized by one lock.  Entries
pair the run's :class:`ExecutionContext` with its
:class:`CancellationToken`.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from chainspine.core.logging import get_logger
from chainspine.execution.cancellation import CancellationToken
from chainspine.orchestration.context import ExecutionContext
from chainspine.orchestration.exceptions import RegistryError

logger = get_logger(__name__)


@dataclass(frozen=True)
class RegistryEntry:
    context: ExecutionContext
    token: CancellationToken

    @property
    def chain_id(self) -> str:
        return self.context.chain_id


class ExecutionRegistry:
    """Thread-safe map of chain id to :class:`RegistryEntry`."""

    def __init__(self) -> None:
        self._entries: dict[str, RegistryEntry] = {}
        self._lock = threading.Lock()

    def register(self, context: ExecutionContext, token: CancellationToken) -> RegistryEntry:
        """Add a run.

        Raises:
            RegistryError: If ``context.chain_id`` is already registered
        """
        entry = RegistryEntry(context=context, token=token)
        with self._lock:
            if context.chain_id in self._entries:
                raise RegistryError(
                    f"Chain run already registered: {context.chain_id}"
                ).with_context(chain_id=context.chain_id)
            self._entries[context.chain_id] = entry
        logger.debug("registry.registered", chain_id=context.chain_id)
        return entry

    def remove(self, chain_id: str) -> RegistryEntry | None:
        """Remove and return the entry, or ``None`` if it wasn't registered."""
        with self._lock:
            entry = self._entries.pop(chain_id, None)
        if entry is not None:
            logger.debug("registry.removed", chain_id=chain_id)
        return entry

    def get(self, chain_id: str) -> RegistryEntry | None:
        with self._lock:
            return self._entries.get(chain_id)

    def __contains__(self, chain_id: object) -> bool:
        with self._lock:
            return chain_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def chain_ids(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def entries(self) -> list[RegistryEntry]:
        with self._lock:
            return list(self._entries.values())

    def remove_older_than(self, max_age_ms: float) -> list[str]:
        """Drop runs whose age exceeds ``max_age_ms``; return their ids."""
        with self._lock:
            stale = [
                chain_id
                for chain_id, entry in self._entries.items()
                if entry.context.elapsed_ms > max_age_ms
            ]
            for chain_id in stale:
                del self._entries[chain_id]
        return stale


__all__ = ["ExecutionRegistry", "RegistryEntry"]
