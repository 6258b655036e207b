"""Unit tests for the cooperative cancellation signal."""

import threading
import time

import pytest

from admission.core.cancellation import (
    REASON_CANCELLED,
    REASON_DEADLINE_EXCEEDED,
    CancellationSignal,
    fire,
    is_fired,
    new_cancellation_signal,
)
from admission.core.errors import CancellationError


def test_new_signal_is_not_fired() -> None:
    signal = new_cancellation_signal()

    assert is_fired(signal) is False
    assert signal.reason is None
    assert signal.remaining() is None


def test_fire_is_permanent() -> None:
    signal = CancellationSignal()
    fire(signal)

    assert signal.is_fired() is True
    assert signal.reason == REASON_CANCELLED
    assert signal.wait(0) is True
    assert signal.is_fired() is True


def test_firing_twice_is_same_as_once() -> None:
    once = CancellationSignal()
    twice = CancellationSignal()

    once.fire()
    twice.fire()
    twice.fire("deadline_exceeded")

    assert once.is_fired() == twice.is_fired()
    assert once.reason == twice.reason == REASON_CANCELLED
    assert once.wait(0) == twice.wait(0)


def test_wait_times_out_when_not_fired() -> None:
    signal = CancellationSignal()

    start = time.monotonic()
    assert signal.wait(0.05) is False
    assert time.monotonic() - start >= 0.04


def test_fire_wakes_every_waiter() -> None:
    signal = CancellationSignal()
    woken: list[bool] = []
    lock = threading.Lock()

    def _waiter() -> None:
        result = signal.wait(5)
        with lock:
            woken.append(result)

    threads = [threading.Thread(target=_waiter) for _ in range(5)]
    for t in threads:
        t.start()

    time.sleep(0.02)
    start = time.monotonic()
    signal.fire()
    for t in threads:
        t.join(timeout=1)

    assert woken == [True] * 5
    assert time.monotonic() - start < 0.5


def test_deadline_fires_signal(clock) -> None:
    signal = CancellationSignal.with_timeout(2, clock=clock)

    assert signal.is_fired() is False
    assert signal.remaining() == pytest.approx(2)

    clock.advance(2)

    assert signal.is_fired() is True
    assert signal.reason == REASON_DEADLINE_EXCEEDED
    assert signal.remaining() == 0


def test_wait_is_bounded_by_deadline() -> None:
    signal = CancellationSignal.with_timeout(0.05)

    start = time.monotonic()
    assert signal.wait(5) is True
    assert time.monotonic() - start < 1
    assert signal.reason == REASON_DEADLINE_EXCEEDED


def test_negative_timeout_rejected() -> None:
    with pytest.raises(ValueError):
        CancellationSignal.with_timeout(-1)


def test_child_fires_with_parent() -> None:
    parent = CancellationSignal()
    child = parent.child()
    grandchild = child.child()

    parent.fire()

    assert child.is_fired() is True
    assert grandchild.is_fired() is True
    assert grandchild.reason == REASON_CANCELLED


def test_firing_child_leaves_parent_alone() -> None:
    parent = CancellationSignal()
    child = parent.child()

    child.fire()

    assert child.is_fired() is True
    assert parent.is_fired() is False


def test_child_of_fired_parent_starts_fired() -> None:
    parent = CancellationSignal()
    parent.fire()

    assert parent.child().is_fired() is True


def test_child_inherits_deadline(clock) -> None:
    parent = CancellationSignal.with_timeout(1, clock=clock)
    child = parent.child()

    assert child.deadline == parent.deadline
    clock.advance(1)
    assert child.is_fired() is True


def test_raise_if_fired() -> None:
    signal = CancellationSignal()
    signal.raise_if_fired()

    signal.fire()
    with pytest.raises(CancellationError) as exc_info:
        signal.raise_if_fired()

    assert exc_info.value.code == "cancelled"


def test_raise_if_fired_custom_message() -> None:
    signal = CancellationSignal()
    signal.fire()

    with pytest.raises(CancellationError) as exc_info:
        signal.raise_if_fired("Stopped reading results")
    assert exc_info.value.message == "Stopped reading results"

    with pytest.raises(CancellationError) as exc_info:
        signal.raise_if_fired()
    assert exc_info.value.message == "Operation cancelled"


def test_deadline_error_message(clock) -> None:
    signal = CancellationSignal.with_timeout(1, clock=clock)
    clock.advance(1)

    with pytest.raises(CancellationError) as exc_info:
        signal.raise_if_fired()

    assert exc_info.value.code == "deadline_exceeded"
    assert exc_info.value.message == "Deadline exceeded"
