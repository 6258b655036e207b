"""Rate limiter interfaces.

Callers depend on this abstraction (not a concrete implementation) so leaf
buckets and composites can be mixed freely: a composite is itself a
``RateLimiter`` and may be nested inside another composite.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod

from admission.core.cancellation import CancellationSignal

# Limit reported by a limiter that never throttles.
INF = math.inf


def per(event_count: int, seconds: float) -> float:
    """Convert "N events per duration" into events per second.

    Args:
        event_count: Number of events allowed in the duration.
        seconds: Duration length in seconds.

    Returns:
        float: Rate in events per second.

    Raises:
        ValueError: If event_count < 1 or seconds <= 0.
    """
    if event_count < 1:
        raise ValueError("event_count must be >= 1")
    if seconds <= 0:
        raise ValueError("seconds must be > 0")
    return event_count / seconds


class RateLimiter(ABC):
    """Interface for blocking rate limiters."""

    @abstractmethod
    def wait(self, signal: CancellationSignal) -> None:
        """Block until the caller is admitted.

        Args:
            signal: Cancellation signal owned by the caller.

        Raises:
            CancellationError: If the signal fires before admission.
        """
        raise NotImplementedError

    @abstractmethod
    def limit(self) -> float:
        """Return the sustained rate in events per second (INF if unbounded)."""
        raise NotImplementedError
