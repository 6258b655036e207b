"""Cancellable stream filter ("or-done" pattern).

Wraps a possibly infinite source so the consumer can stop reading at any time
by firing a cancellation signal, without leaving the producing thread blocked.

A daemon producer thread pulls one value at a time from the source and hands
it to the consumer through a single-slot queue, then waits until the consumer
has taken it before pulling the next one. At most one value taken from the
source is ever in flight, so cancelling drops at most that one. Checkpoints:

- producer: before pulling each value, and while blocked handing it over or
  waiting for it to be taken;
- consumer: before yielding each value.

Receiving from a ``queue.Queue`` source polls the signal every
``poll_interval`` seconds. ``next()`` on a plain iterable is not checkpointed:
if the iterable itself blocks, the producer only notices the signal once that
call returns.
"""

from __future__ import annotations

import logging
import queue
import threading
import weakref
from dataclasses import dataclass
from typing import Any, Generic, Iterable, Iterator, TypeVar

from admission.core.cancellation import CancellationSignal
from admission.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Put this on a queue source to close it, like closing a channel.
END_OF_STREAM: Any = object()

_EXHAUSTED: Any = object()


@dataclass
class _SourceFailure:
    error: Exception


def _receive(source: queue.Queue, signal: CancellationSignal, poll_interval: float) -> Iterator[Any]:
    while not signal.is_fired():
        try:
            value = source.get(timeout=poll_interval)
        except queue.Empty:
            continue
        if value is END_OF_STREAM:
            return
        yield value


def _pull(source: Iterable[Any], signal: CancellationSignal) -> Iterator[Any]:
    iterator = iter(source)
    while not signal.is_fired():
        try:
            value = next(iterator)
        except StopIteration:
            return
        yield value


def _hand_off(
    handoff: queue.Queue,
    item: Any,
    signal: CancellationSignal,
    poll_interval: float,
    taken: threading.Event | None = None,
) -> bool:
    """Put item on the hand-off queue unless the signal fires first.

    With ``taken``, also wait until the consumer has received the item.
    """
    if taken is not None:
        taken.clear()

    while True:
        if signal.is_fired():
            return False
        try:
            handoff.put(item, timeout=poll_interval)
            break
        except queue.Full:
            continue

    if taken is None:
        return True
    while not taken.wait(poll_interval):
        if signal.is_fired():
            return False
    return True


def _produce(
    source: Iterable[Any] | queue.Queue,
    handoff: queue.Queue,
    taken: threading.Event,
    signal: CancellationSignal,
    poll_interval: float,
) -> None:
    if isinstance(source, queue.Queue):
        values = _receive(source, signal, poll_interval)
    else:
        values = _pull(source, signal)

    forwarded = 0
    try:
        for value in values:
            if not _hand_off(handoff, value, signal, poll_interval, taken):
                break
            forwarded += 1
    except Exception as exc:
        logger.warning(
            "or_done.source_failed",
            extra={"error_type": type(exc).__name__, "forwarded": forwarded},
        )
        _hand_off(handoff, _SourceFailure(exc), signal, poll_interval)
        return

    if signal.is_fired():
        logger.info("or_done.cancelled", extra={"forwarded": forwarded, "reason": signal.reason})
        return

    logger.debug("or_done.exhausted", extra={"forwarded": forwarded})
    _hand_off(handoff, _EXHAUSTED, signal, poll_interval)


class OrDoneStream(Generic[T]):
    """Single-pass iterator over a source that stops when a signal fires.

    Not restartable. Closing the stream (``close()``, leaving a ``with``
    block, or garbage collection) stops the producer even if the caller's
    signal never fires.
    """

    def __init__(
        self,
        signal: CancellationSignal,
        source: Iterable[T] | queue.Queue,
        *,
        poll_interval: float | None = None,
    ) -> None:
        if poll_interval is None:
            poll_interval = settings.limiter.stream_poll_interval_seconds
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")

        self._poll_interval = poll_interval
        # Child of the caller's signal so close() never cancels the caller.
        self._signal = signal.child()
        self._handoff: queue.Queue = queue.Queue(maxsize=1)
        self._taken = threading.Event()
        self._finished = False
        self._thread = threading.Thread(
            target=_produce,
            args=(source, self._handoff, self._taken, self._signal, poll_interval),
            name="or-done-producer",
            daemon=True,
        )
        self._finalizer = weakref.finalize(self, self._signal.fire)
        self._thread.start()

    def __iter__(self) -> OrDoneStream[T]:
        return self

    def __next__(self) -> T:
        while not self._finished:
            if self._signal.is_fired():
                self._finished = True
                break
            try:
                item = self._handoff.get(timeout=self._poll_interval)
            except queue.Empty:
                continue
            self._taken.set()

            if item is _EXHAUSTED:
                self._finished = True
                break
            if isinstance(item, _SourceFailure):
                self._finished = True
                raise item.error
            if self._signal.is_fired():
                # Fired while the value was in flight: drop it.
                self._finished = True
                break
            return item

        raise StopIteration

    def __enter__(self) -> OrDoneStream[T]:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def producer_alive(self) -> bool:
        return self._thread.is_alive()

    def close(self) -> None:
        """Stop the producer and end iteration."""
        self._finished = True
        self._signal.fire()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the producer thread to finish.

        Returns:
            True if the producer has terminated.
        """
        self._thread.join(timeout)
        return not self._thread.is_alive()


def filter_with_cancellation(
    signal: CancellationSignal,
    source: Iterable[T] | queue.Queue,
    *,
    poll_interval: float | None = None,
) -> OrDoneStream[T]:
    """Return a lazy stream over ``source`` that ends once ``signal`` fires."""
    return OrDoneStream(signal, source, poll_interval=poll_interval)
