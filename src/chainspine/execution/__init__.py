"""Execution control: step timeouts and cooperative cancellation."""

from chainspine.execution.cancellation import CancellationToken, current_token, use_token
from chainspine.execution.timeout import DeadlineContext, TimeoutExpired, run_with_timeout

__all__ = [
    "CancellationToken",
    "current_token",
    "use_token",
    "DeadlineContext",
    "TimeoutExpired",
    "run_with_timeout",
]
