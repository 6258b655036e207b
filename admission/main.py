"""Demo: concurrent callers sharing one rate-limited connection.

Run with ``python -m admission.main``. Each call is logged as it is admitted,
so the timestamps show the per-second and per-minute budgets taking effect.
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor

from admission.core.cancellation import CancellationSignal
from admission.core.config import settings
from admission.core.errors import CancellationError
from admission.core.logging import clear_operation_id, configure_logging, set_operation_id
from admission.services.api_connection import APIConnection, open_connection

logger = logging.getLogger(__name__)


def _call(connection: APIConnection, operation: str, signal: CancellationSignal) -> bool:
    set_operation_id(uuid.uuid4().hex[:12])
    try:
        getattr(connection, operation)(signal)
        return True
    except CancellationError as exc:
        logger.warning("demo.call_cancelled", extra={"operation": operation, "error_code": exc.code})
        return False
    finally:
        clear_operation_id()


def run_demo(
    connection: APIConnection,
    *,
    workers: int,
    signal: CancellationSignal | None = None,
) -> dict[str, int]:
    """Issue ``workers`` read_file and ``workers`` resolve_address calls concurrently.

    Returns:
        Counts of admitted and cancelled calls.

    Raises:
        ValueError: If workers < 1.
    """
    if workers < 1:
        raise ValueError("workers must be >= 1")

    signal = signal or CancellationSignal()
    operations = ["read_file"] * workers + ["resolve_address"] * workers

    with ThreadPoolExecutor(max_workers=len(operations), thread_name_prefix="caller") as pool:
        outcomes = list(pool.map(lambda operation: _call(connection, operation, signal), operations))

    admitted = sum(outcomes)
    summary = {"admitted": admitted, "cancelled": len(outcomes) - admitted}
    logger.info("demo.done", extra=summary)
    return summary


def main() -> None:
    configure_logging(settings.log)
    if settings.app.debug:
        logging.getLogger("admission").setLevel(logging.DEBUG)

    timeout = settings.app.demo_timeout_seconds
    signal = CancellationSignal.with_timeout(timeout) if timeout else CancellationSignal()
    run_demo(open_connection(settings.limiter), workers=settings.app.demo_workers, signal=signal)


if __name__ == "__main__":
    main()
