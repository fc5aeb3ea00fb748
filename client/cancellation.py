"""Deadline and cancellation token for long-running uploads."""

import threading
import time
from typing import Optional

from common.exceptions import OperationCancelledError


class CancelScope:
    """
    Cancellation token with an optional deadline.

    Shared between the thread driving an upload and its workers. Every network
    call made under a scope gets a timeout no longer than what remains of the
    deadline.
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Args:
            timeout: Seconds from now until the scope expires; None for no deadline
        """
        self._cancelled = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when unbounded."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise OperationCancelledError("Operation cancelled")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise OperationCancelledError("Operation deadline exceeded")

    def timeout_for(self, default: float) -> float:
        """
        Clip a per-call timeout to the time remaining in this scope.

        Args:
            default: Timeout the call would use without a scope

        Returns:
            Timeout in seconds
        """
        remaining = self.remaining()
        if remaining is None:
            return default
        return min(default, remaining)
