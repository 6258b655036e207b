"""Cooperative cancellation signal shared by limiters, streams and workers.

A ``CancellationSignal`` is a one-way, write-once flag. Any number of threads
may wait on it or poll it; firing it more than once has no further effect.
Blocking operations that accept a signal race it against their own
completion condition through ``CancellationSignal.wait``.

Signals may carry a deadline (the signal reports itself fired once the
deadline passes) and may derive child signals. A child fires whenever its
parent fires; firing a child never affects the parent.
"""

from __future__ import annotations

import logging
import threading
import time
import weakref
from typing import Callable

from admission.core.errors import CancellationError, ErrorDetails

logger = logging.getLogger(__name__)

REASON_CANCELLED = "cancelled"
REASON_DEADLINE_EXCEEDED = "deadline_exceeded"


class CancellationSignal:
    """Broadcastable, idempotent stop notification.

    The signal is owned by the caller that created it. Limiters and streams
    only observe it.
    """

    def __init__(
        self,
        *,
        deadline: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the signal.

        Args:
            deadline: Optional absolute time (in ``clock`` units) after which
                the signal counts as fired.
            clock: Monotonic time source used for deadline checks.
        """
        self._deadline = deadline
        self._clock = clock
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: str | None = None
        self._children: weakref.WeakSet[CancellationSignal] = weakref.WeakSet()

    @classmethod
    def with_timeout(
        cls,
        seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> CancellationSignal:
        """Create a signal that fires itself ``seconds`` from now.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError("seconds must be >= 0")
        return cls(deadline=clock() + seconds, clock=clock)

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"CancellationSignal(fired={self.is_fired()}, reason={self._reason!r}, deadline={self._deadline})"

    @property
    def deadline(self) -> float | None:
        return self._deadline

    @property
    def reason(self) -> str | None:
        """Why the signal fired, or None while it has not."""
        self.is_fired()
        return self._reason

    def remaining(self) -> float | None:
        """Seconds left until the deadline (never negative), None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def fire(self, reason: str = REASON_CANCELLED) -> None:
        """Fire the signal and every child derived from it.

        Calling this again after the first fire is a no-op; the first reason
        is kept.
        """
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            children = list(self._children)

        logger.debug("cancellation.fired", extra={"reason": reason, "children": len(children)})
        for child in children:
            child.fire(reason)

    def is_fired(self) -> bool:
        """Return True once the signal has fired or its deadline has passed."""
        if self._event.is_set():
            return True
        if self._deadline is not None and self._clock() >= self._deadline:
            self.fire(REASON_DEADLINE_EXCEEDED)
            return True
        return False

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the signal fires or ``timeout`` seconds elapse.

        The wait is also cut short by the signal's own deadline.

        Returns:
            True if the signal fired, False if the timeout elapsed first.
        """
        remaining = self.remaining()
        if remaining is None:
            bound = timeout
        elif timeout is None:
            bound = remaining
        else:
            bound = min(timeout, remaining)

        if self._event.wait(bound):
            return True
        return self.is_fired()

    def child(self) -> CancellationSignal:
        """Derive a signal that fires when this one fires.

        The child inherits this signal's deadline.
        """
        child = CancellationSignal(deadline=self._deadline, clock=self._clock)
        with self._lock:
            if not self._event.is_set():
                self._children.add(child)
                return child
            reason = self._reason
        child.fire(reason or REASON_CANCELLED)
        return child

    def raise_if_fired(self, message: str | None = None, details: ErrorDetails | None = None) -> None:
        """Checkpoint helper: raise CancellationError if the signal fired.

        Raises:
            CancellationError: When the signal has fired.
        """
        if self.is_fired():
            raise CancellationError.from_reason(self._reason, message=message, details=details)


def new_cancellation_signal() -> CancellationSignal:
    """Create a fresh, unfired signal with no deadline."""
    return CancellationSignal()


def fire(signal: CancellationSignal) -> None:
    signal.fire()


def is_fired(signal: CancellationSignal) -> bool:
    return signal.is_fired()
