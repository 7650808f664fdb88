"""Timeout enforcement for step invocations.

Manifesto:
    A step contract is an opaque, possibly slow black box.  The engine
    never waits on it without a bound:

    - **Per-step deadline:** ``run_with_timeout`` runs the callable on a
      worker thread and gives up waiting once the deadline passes
    - **Run budget:** ``DeadlineContext`` tracks the whole-run budget so the
      step loop can check it at step boundaries

Architecture:
    ::

        run_with_timeout(func, 30.0, args=(mapped_input,))
              │
              ▼
        ┌────────────────────────────────────────────────────────┐
        │ ThreadPoolExecutor(max_workers=1)                        │
        │  - func runs inside a copy of the caller's contextvars   │
        │  - caller waits with future.result(timeout)              │
        │  - on timeout: TimeoutExpired, worker left to finish     │
        └────────────────────────────────────────────────────────┘

Guardrails:
    - A timed-out worker thread keeps running; Python threads can't be
      killed.  Steps that honour a cancellation token stop early.
    - The executor is shut down without waiting so a hung step never
      blocks the step loop past its deadline.

Tags:
    timeout, deadline, execution, chainspine
"""

from __future__ import annotations

import concurrent.futures
import contextvars
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

T = TypeVar("T")


class TimeoutExpired(TimeoutError):
    """Raised when an operation exceeds its deadline.

    Inherits from built-in TimeoutError for broad exception handling.

    Attributes:
        timeout: The timeout value that was exceeded (seconds)
        elapsed: How long the operation ran before the caller gave up
        operation: Name/description of the operation
    """

    def __init__(
        self,
        timeout: float,
        elapsed: float | None = None,
        operation: str = "operation",
    ):
        self.timeout = timeout
        self.elapsed = elapsed
        self.operation = operation

        msg = f"Operation '{operation}' timed out after {timeout}s"

        if elapsed is not None:
            msg += f" (ran for {elapsed:.2f}s)"

        super().__init__(msg)


@dataclass
class DeadlineContext:
    """Tracks a deadline on the monotonic clock.

    Attributes:
        deadline: Absolute deadline timestamp (monotonic clock)
        timeout_seconds: Original timeout value in seconds
        operation: Name/description of the operation
        start_time: When the deadline started
    """

    deadline: float
    timeout_seconds: float
    operation: str = "operation"
    start_time: float = field(default_factory=time.monotonic)

    @classmethod
    def start(cls, seconds: float, operation: str = "operation") -> DeadlineContext:
        """Start a new deadline ``seconds`` from now."""
        if seconds <= 0:
            raise ValueError(f"Timeout must be positive, got {seconds}")
        now = time.monotonic()
        return cls(deadline=now + seconds, timeout_seconds=seconds, operation=operation, start_time=now)

    def remaining(self) -> float:
        """Remaining time until deadline in seconds (negative once expired)."""
        return self.deadline - time.monotonic()

    @property
    def elapsed(self) -> float:
        """Elapsed time since start in seconds."""
        return time.monotonic() - self.start_time

    def is_expired(self) -> bool:
        """True if deadline has passed."""
        return time.monotonic() >= self.deadline

    def check(self, op_name: str | None = None) -> None:
        """Raise :class:`TimeoutExpired` if the deadline has passed."""
        if self.is_expired():
            raise TimeoutExpired(
                timeout=self.timeout_seconds,
                elapsed=self.elapsed,
                operation=op_name or self.operation,
            )


def run_with_timeout(
    func: Callable[..., T],
    timeout_seconds: float,
    operation: str | None = None,
    args: tuple[Any, ...] | None = None,
    kwargs: dict[str, Any] | None = None,
) -> T:
    """Run a callable with a timeout using a worker thread.

    The callable runs inside a copy of the caller's :mod:`contextvars`
    context, so structlog bindings (``chain_id``) and the current
    cancellation token are visible to it.

    Args:
        func: Callable to execute
        timeout_seconds: Maximum time to wait for the result
        operation: Name for error messages
        args: Positional arguments for func
        kwargs: Keyword arguments for func

    Returns:
        Result of ``func(*args, **kwargs)``

    Raises:
        TimeoutExpired: If execution exceeds timeout
        Exception: Any exception raised by func
    """
    if timeout_seconds <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout_seconds}")

    start = time.monotonic()
    pos_args = args or ()
    kw_args = kwargs or {}
    ctx = contextvars.copy_context()

    executor = concurrent.futures.ThreadPoolExecutor(
        max_workers=1, thread_name_prefix="chainspine-step"
    )
    try:
        future = executor.submit(ctx.run, func, *pos_args, **kw_args)
        try:
            return future.result(timeout=timeout_seconds)
        except concurrent.futures.TimeoutError:
            raise TimeoutExpired(
                timeout=timeout_seconds,
                elapsed=time.monotonic() - start,
                operation=operation or getattr(func, "__name__", "unknown"),
            ) from None
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


__all__ = ["TimeoutExpired", "DeadlineContext", "run_with_timeout"]
