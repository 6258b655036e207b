"""Worker pipeline illustrating where cancellation can and cannot interrupt.

``do_work`` runs one unit of work on a background thread in three phases:

1. receive a value from the input queue - checkpointed, polls the signal;
2. run ``calculation(signal, value)`` - preemptable only if the calculation
   itself checks the signal. An exception it raises is delivered in place
   of the result and re-raised by ``WorkHandle.result``;
3. deliver the result on a single-slot queue - checkpointed, a result is
   never delivered once the signal has fired.

``long_calculation`` checks the signal while it waits, so a pipeline using it
stops at sub-step boundaries. ``blocking_calculation`` never looks at the
signal: it is fully non-preemptable, and cancelling only lets the caller stop
waiting for its result while the work runs to completion on its own.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from admission.core.cancellation import CancellationSignal
from admission.core.config import settings

logger = logging.getLogger(__name__)

Calculation = Callable[[CancellationSignal, Any], Any]


@dataclass
class _WorkFailure:
    error: Exception


def long_calculation(signal: CancellationSignal, value: Any, duration: float = 3600.0) -> Any:
    """Wait ``duration`` seconds, returning early with None if the signal fires."""
    if signal.wait(duration):
        return None
    return value


def really_long_calculation(signal: CancellationSignal, value: Any, duration: float = 3600.0) -> Any:
    """Two chained long calculations; the signal is checked in each one."""
    intermediate = long_calculation(signal, value, duration)
    return long_calculation(signal, intermediate, duration)


def blocking_calculation(signal: CancellationSignal, value: Any, duration: float = 1.0) -> Any:
    """Sleep ``duration`` seconds without ever checking the signal."""
    time.sleep(duration)
    return value


@dataclass
class WorkHandle:
    """Caller-side view of a running ``do_work`` pipeline."""

    results: queue.Queue
    thread: threading.Thread
    poll_interval: float

    def result(self, signal: CancellationSignal, timeout: float | None = None) -> Any:
        """Wait for the result, giving up when ``signal`` fires.

        Giving up does not stop the worker; it only ends this wait.

        Raises:
            CancellationError: If the signal fires before a result arrives.
            TimeoutError: If ``timeout`` elapses first.
            Exception: Whatever the calculation raised.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            signal.raise_if_fired("Stopped waiting for the work result")
            if deadline is not None and time.monotonic() >= deadline:
                raise TimeoutError("no result within timeout")
            try:
                outcome = self.results.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            if isinstance(outcome, _WorkFailure):
                raise outcome.error
            return outcome

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the worker thread; True once it has terminated."""
        self.thread.join(timeout)
        return not self.thread.is_alive()


def _work(
    signal: CancellationSignal,
    value_stream: queue.Queue,
    results: queue.Queue,
    calculation: Calculation,
    poll_interval: float,
) -> None:
    while True:
        if signal.is_fired():
            logger.info("work.cancelled", extra={"phase": "receive", "reason": signal.reason})
            return
        try:
            value = value_stream.get(timeout=poll_interval)
            break
        except queue.Empty:
            continue

    logger.debug("work.received")
    try:
        result = calculation(signal, value)
    except Exception as exc:
        logger.warning("work.failed", extra={"error_type": type(exc).__name__})
        result = _WorkFailure(exc)

    while not signal.is_fired():
        try:
            results.put(result, timeout=poll_interval)
            logger.debug("work.delivered")
            return
        except queue.Full:
            continue
    logger.info("work.cancelled", extra={"phase": "deliver", "reason": signal.reason})


def do_work(
    signal: CancellationSignal,
    value_stream: queue.Queue,
    calculation: Calculation = really_long_calculation,
    *,
    poll_interval: float | None = None,
) -> WorkHandle:
    """Start a worker that turns one value from ``value_stream`` into a result.

    Args:
        signal: Cancellation signal owned by the caller.
        value_stream: Queue the input value is received from.
        calculation: Work to run on the value; receives the signal so it may
            add its own checkpoints.
        poll_interval: Seconds between signal checks while blocked on a queue.

    Returns:
        WorkHandle: Result queue and worker thread.
    """
    if poll_interval is None:
        poll_interval = settings.limiter.stream_poll_interval_seconds

    results: queue.Queue = queue.Queue(maxsize=1)
    thread = threading.Thread(
        target=_work,
        args=(signal, value_stream, results, calculation, poll_interval),
        name="work",
        daemon=True,
    )
    thread.start()
    return WorkHandle(results=results, thread=thread, poll_interval=poll_interval)
