"""Cancellation and deadline propagation across worker threads."""

import threading
import time
from typing import Optional

from .errors import OperationCancelledError, OperationTimeoutError

_POLL_SLICE = 0.05


class Context:
    """
    Cancellation signal plus optional deadline, shared by a run and its tasks.

    Child contexts observe their parent's cancellation and never outlive the
    parent's deadline. Cancelling a child does not cancel the parent.
    """

    def __init__(self, parent: Optional["Context"] = None, timeout: Optional[float] = None):
        self._parent = parent
        self._event = threading.Event()
        self._reason: Optional[str] = None

        deadline = None
        if timeout is not None:
            deadline = time.monotonic() + timeout
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline

    @classmethod
    def background(cls) -> "Context":
        return cls()

    def child(self, timeout: Optional[float] = None) -> "Context":
        """Derive a context that inherits cancellation and deadline."""
        return Context(parent=self, timeout=timeout)

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def reason(self) -> Optional[str]:
        if self._event.is_set():
            return self._reason
        if self._parent is not None:
            return self._parent.reason
        return None

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def done(self) -> bool:
        return self.cancelled or self.expired

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None when unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def bound(self, seconds: float) -> float:
        """Clamp a per-call timeout to what is left of the deadline."""
        remaining = self.remaining()
        if remaining is None:
            return seconds
        return max(0.001, min(seconds, remaining))

    def check(self) -> None:
        """Raise if the context is cancelled or past its deadline."""
        if self.cancelled:
            raise OperationCancelledError(f"Operation cancelled: {self.reason}")
        if self.expired:
            raise OperationTimeoutError("Operation deadline exceeded")

    def sleep(self, seconds: float) -> bool:
        """
        Sleep up to `seconds`, waking early on cancellation or deadline.

        Returns:
            True if the full interval elapsed, False if interrupted
        """
        end = time.monotonic() + max(0.0, seconds)
        while True:
            if self.done:
                return False
            now = time.monotonic()
            if now >= end:
                return True
            self._event.wait(min(_POLL_SLICE, end - now))
