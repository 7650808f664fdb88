"""Cooperative cancellation and pause for chain runs.

A :class:`CancellationToken` is created per run and handed to the step
loop.  The loop checks it at the top of every iteration; a step contract
may also poll :func:`current_token` while it works.  Nothing here
interrupts a step that is already running.

Example::

    token = CancellationToken()
    with use_token(token):
        ...                      # current_token() is token here

    token.pause()                # loop blocks at the next step boundary
    token.resume()
    token.cancel()               # loop stops at the next step boundary
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar


class CancellationToken:
    """Thread-safe cancel/pause flags for one chain run."""

    def __init__(self) -> None:
        self._cancelled = threading.Event()
        self._running = threading.Event()
        self._running.set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def is_paused(self) -> bool:
        return not self._running.is_set()

    def cancel(self) -> None:
        """Request cancellation. Also releases a paused loop."""
        self._cancelled.set()
        self._running.set()

    def pause(self) -> bool:
        """Request a pause at the next step boundary.

        Returns ``False`` if the run is already paused or cancelled.
        """
        if self.is_cancelled or self.is_paused:
            return False
        self._running.clear()
        return True

    def resume(self) -> bool:
        """Release a paused run. Returns ``False`` if it was not paused."""
        if not self.is_paused:
            return False
        self._running.set()
        return True

    def wait_while_paused(self, timeout: float | None = None) -> bool:
        """Block while paused.

        Returns ``True`` when the run may continue, ``False`` if it was
        cancelled or the wait timed out while still paused.
        """
        released = self._running.wait(timeout)
        return released and not self.is_cancelled


_current_token: ContextVar[CancellationToken | None] = ContextVar(  # noqa: B039
    "chainspine_cancellation_token", default=None
)


def current_token() -> CancellationToken | None:
    """Token of the chain run executing on this context, if any."""
    return _current_token.get()


@contextmanager
def use_token(token: CancellationToken) -> Iterator[CancellationToken]:
    """Make ``token`` the current token for the enclosed block."""
    reset = _current_token.set(token)
    try:
        yield token
    finally:
        _current_token.reset(reset)


__all__ = ["CancellationToken", "current_token", "use_token"]
