"""Token bucket limiter enforcing a single rate constraint.

Notes:
- Per-process only: every bucket keeps its own in-memory state.
- Thread-safe: token state is only read and written under a lock.
- Tokens refill lazily on each call; no background thread is involved.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from admission.adapters.rate_limit.base import INF, RateLimiter
from admission.core.cancellation import REASON_DEADLINE_EXCEEDED, CancellationSignal
from admission.core.errors import CancellationError

logger = logging.getLogger(__name__)


class TokenBucketLimiter(RateLimiter):
    """Rate limiter admitting ``rate`` events per second with a burst of ``capacity``.

    The bucket starts full. Each admission consumes exactly one token; tokens
    come back continuously at ``rate`` per second up to ``capacity``. A bucket
    built with ``rate=INF`` admits every call immediately.
    """

    def __init__(
        self,
        rate: float,
        capacity: int,
        *,
        name: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the token bucket.

        Args:
            rate: Refill rate in tokens per second (INF for no cap).
            capacity: Burst size, the maximum number of stored tokens.
            name: Optional label used in log records.
            clock: Monotonic time source in seconds.

        Raises:
            ValueError: If rate or capacity are invalid.
        """
        if not rate > 0:
            raise ValueError("rate must be > 0")
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self._rate = float(rate)
        self._capacity = int(capacity)
        self._name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens = float(self._capacity)
        self._last_refill = clock()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"TokenBucketLimiter(rate={self._rate}, capacity={self._capacity}, name={self._name!r})"

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def name(self) -> str | None:
        return self._name

    def limit(self) -> float:
        return self._rate

    def tokens(self) -> float:
        """Return the current token count after applying pending refill."""
        if self._rate == INF:
            return float(self._capacity)
        with self._lock:
            self._refill_locked()
            return self._tokens

    def _refill_locked(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(float(self._capacity), self._tokens + elapsed * self._rate)
        self._last_refill = now

    def _cancelled(self, signal: CancellationSignal, reason: str | None = None, **fields: float) -> CancellationError:
        code = reason or signal.reason
        logger.info(
            "limiter.cancelled",
            extra={"limiter": self._name, "limit": self._rate, "reason": code, **fields},
        )
        return CancellationError.from_reason(
            code,
            message=f"Admission by {self._name or 'token bucket'} not granted: {code}",
            details={"limit": self._rate, **fields},
        )

    def wait(self, signal: CancellationSignal) -> None:
        """Block until a token is available, then consume it.

        A signal that fires while waiting aborts the call without consuming a
        token. When the signal carries a deadline that would pass before the
        next token is due, the call fails immediately instead of sleeping.

        Args:
            signal: Cancellation signal owned by the caller.

        Raises:
            CancellationError: If the signal fires (or its deadline would
                pass) before a token is granted.
        """
        if signal.is_fired():
            raise self._cancelled(signal)

        if self._rate == INF:
            return

        while True:
            with self._lock:
                self._refill_locked()
                if self._tokens >= 1:
                    self._tokens -= 1
                    logger.debug(
                        "limiter.admitted",
                        extra={"limiter": self._name, "limit": self._rate, "tokens_left": self._tokens},
                    )
                    return
                delay = (1.0 - self._tokens) / self._rate

            remaining = signal.remaining()
            if remaining is not None and remaining < delay:
                raise self._cancelled(
                    signal,
                    REASON_DEADLINE_EXCEEDED,
                    wait_seconds=delay,
                    remaining_seconds=remaining,
                )

            logger.debug(
                "limiter.waiting",
                extra={"limiter": self._name, "limit": self._rate, "wait_s": delay},
            )
            # Another caller may take the refilled token first; loop re-checks under the lock.
            if signal.wait(delay):
                raise self._cancelled(signal)


def new_token_bucket_limiter(rate: float, burst_capacity: int) -> TokenBucketLimiter:
    return TokenBucketLimiter(rate, burst_capacity)
