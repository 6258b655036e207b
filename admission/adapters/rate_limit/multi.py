"""Composite limiter enforcing several rate constraints at once."""

from __future__ import annotations

import logging

from admission.adapters.rate_limit.base import RateLimiter
from admission.core.cancellation import CancellationSignal
from admission.core.errors import CancellationError

logger = logging.getLogger(__name__)


class MultiLimiter(RateLimiter):
    """Rate limiter admitting a call only once every constituent admits it.

    Constituents are sorted by ``limit()`` at construction, most restrictive
    first, and waited on one after another in that order. Equal limits keep
    their insertion order (``sorted`` is stable); callers should not rely on
    it.

    Important:
        Admission is not atomic. If a later constituent is cancelled, tokens
        already taken from earlier constituents stay consumed.
    """

    def __init__(self, *limiters: RateLimiter) -> None:
        """Initialize the composite.

        Args:
            *limiters: One or more rate limiters (leaves or composites).

        Raises:
            ValueError: If no limiter is given.
        """
        if not limiters:
            raise ValueError("MultiLimiter requires at least one limiter")

        self._limiters: tuple[RateLimiter, ...] = tuple(sorted(limiters, key=lambda limiter: limiter.limit()))

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"MultiLimiter({', '.join(repr(limiter) for limiter in self._limiters)})"

    @property
    def constituents(self) -> tuple[RateLimiter, ...]:
        return self._limiters

    def wait(self, signal: CancellationSignal) -> None:
        """Wait on each constituent in order.

        Raises:
            CancellationError: Propagated from the first constituent whose
                wait is cancelled; later constituents are not consulted.
        """
        for position, limiter in enumerate(self._limiters):
            try:
                limiter.wait(signal)
            except CancellationError:
                logger.info(
                    "multi_limiter.cancelled",
                    extra={
                        "position": position,
                        "constituents": len(self._limiters),
                    },
                )
                raise

    def limit(self) -> float:
        # Most restrictive limit, thanks to the sort at construction.
        return self._limiters[0].limit()


def new_multi_limiter(*limiters: RateLimiter) -> MultiLimiter:
    return MultiLimiter(*limiters)
