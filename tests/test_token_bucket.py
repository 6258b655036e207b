"""Unit tests for the token bucket limiter."""

import threading
import time

import pytest

from admission.adapters.rate_limit import INF, TokenBucketLimiter, new_token_bucket_limiter
from admission.core.cancellation import CancellationSignal
from admission.core.errors import CancellationError


def test_burst_admitted_without_waiting_then_next_waits() -> None:
    rate = 10.0
    limiter = TokenBucketLimiter(rate, 3)
    signal = CancellationSignal()

    start = time.monotonic()
    for _ in range(3):
        limiter.wait(signal)
    assert time.monotonic() - start < 0.05

    start = time.monotonic()
    limiter.wait(signal)
    assert time.monotonic() - start >= 1 / rate - 0.01


def test_refill_is_lazy_and_capped(clock) -> None:
    limiter = TokenBucketLimiter(1.0, 2, clock=clock)
    signal = CancellationSignal()

    limiter.wait(signal)
    limiter.wait(signal)
    assert limiter.tokens() == 0

    clock.advance(0.5)
    assert limiter.tokens() == pytest.approx(0.5)

    clock.advance(10)
    assert limiter.tokens() == 2


def test_fired_signal_rejects_without_consuming(clock) -> None:
    limiter = TokenBucketLimiter(1.0, 2, clock=clock)
    signal = CancellationSignal()
    signal.fire()

    with pytest.raises(CancellationError) as exc_info:
        limiter.wait(signal)

    assert exc_info.value.code == "cancelled"
    assert "not granted" in exc_info.value.message
    assert limiter.tokens() == 2


def test_cancel_while_waiting_keeps_token(clock) -> None:
    limiter = TokenBucketLimiter(1.0, 1, clock=clock)
    signal = CancellationSignal()
    limiter.wait(signal)

    errors: list[Exception] = []

    def _waiter() -> None:
        try:
            limiter.wait(signal)
        except CancellationError as exc:
            errors.append(exc)

    waiter = threading.Thread(target=_waiter)
    waiter.start()
    time.sleep(0.05)

    start = time.monotonic()
    signal.fire()
    waiter.join(timeout=1)

    assert not waiter.is_alive()
    assert time.monotonic() - start < 0.5
    assert len(errors) == 1

    # Nothing was consumed by the cancelled wait: a full refill period restores exactly one token.
    assert limiter.tokens() == 0
    clock.advance(1)
    assert limiter.tokens() == 1


def test_deadline_shorter_than_refill_fails_fast() -> None:
    limiter = TokenBucketLimiter(1.0, 1)
    limiter.wait(CancellationSignal())

    signal = CancellationSignal.with_timeout(0.2)
    start = time.monotonic()
    with pytest.raises(CancellationError) as exc_info:
        limiter.wait(signal)

    assert exc_info.value.code == "deadline_exceeded"
    assert time.monotonic() - start < 0.1
    assert exc_info.value.details["wait_seconds"] > 0.2


def test_deadline_longer_than_refill_admits() -> None:
    limiter = TokenBucketLimiter(20.0, 1)
    limiter.wait(CancellationSignal())

    limiter.wait(CancellationSignal.with_timeout(1))


def test_concurrent_callers_never_overdraw() -> None:
    rate = 50.0
    capacity = 5
    callers = 20
    limiter = TokenBucketLimiter(rate, capacity)
    signal = CancellationSignal()
    admitted: list[int] = []
    lock = threading.Lock()

    def _caller(idx: int) -> None:
        limiter.wait(signal)
        with lock:
            admitted.append(idx)

    threads = [threading.Thread(target=_caller, args=(i,)) for i in range(callers)]
    start = time.monotonic()
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    elapsed = time.monotonic() - start
    assert sorted(admitted) == list(range(callers))
    assert elapsed >= (callers - capacity) / rate - 0.05
    assert 0 <= limiter.tokens() <= capacity


def test_unbounded_limiter_never_blocks() -> None:
    limiter = new_token_bucket_limiter(INF, 1)
    signal = CancellationSignal()

    start = time.monotonic()
    for _ in range(1000):
        limiter.wait(signal)

    assert time.monotonic() - start < 0.5
    assert limiter.limit() == INF
    assert limiter.tokens() == 1


def test_limit_returns_rate() -> None:
    limiter = TokenBucketLimiter(2.5, 4)

    assert limiter.limit() == 2.5
    assert limiter.capacity == 4


@pytest.mark.parametrize(
    "kwargs",
    [
        {"rate": 0, "capacity": 1},
        {"rate": -1, "capacity": 1},
        {"rate": 1, "capacity": 0},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        TokenBucketLimiter(**kwargs)
