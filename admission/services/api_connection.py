"""Rate-limited API connection.

Each resource (API, disk, network) gets its own composite limit, and every
call waits on the conjunction of the limits it touches:

- ``read_file`` waits on the API limit and the disk limit;
- ``resolve_address`` waits on the API limit and the network limit.

The protected operations are stubs: the connection only decides when a call
may proceed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from admission.adapters.rate_limit.base import INF, RateLimiter
from admission.adapters.rate_limit.factory import create_token_bucket
from admission.adapters.rate_limit.multi import MultiLimiter
from admission.adapters.rate_limit.token_bucket import TokenBucketLimiter
from admission.core.cancellation import CancellationSignal
from admission.core.config import LimiterSettings, settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class APIConnection:
    """Connection whose calls are admitted by per-resource limits."""

    api_limit: RateLimiter
    disk_limit: RateLimiter
    network_limit: RateLimiter

    def read_file(self, signal: CancellationSignal) -> None:
        """Read a file once the API and disk budgets allow it.

        Raises:
            CancellationError: If the signal fires before admission.
        """
        MultiLimiter(self.api_limit, self.disk_limit).wait(signal)
        logger.info("api.read_file")

    def resolve_address(self, signal: CancellationSignal) -> None:
        """Resolve an address once the API and network budgets allow it.

        Raises:
            CancellationError: If the signal fires before admission.
        """
        MultiLimiter(self.api_limit, self.network_limit).wait(signal)
        logger.info("api.resolve_address")


def open_connection(
    limiter_settings: LimiterSettings | None = None,
    *,
    rate_limited: bool = True,
) -> APIConnection:
    """Open a connection with limits taken from settings.

    Args:
        limiter_settings: Rates and bursts to use; defaults to global settings.
        rate_limited: When False every limit is unbounded, which gives the
            unthrottled baseline.

    Raises:
        ValidationAppError: If a configured rate expression is malformed.
    """
    cfg = limiter_settings or settings.limiter

    if not rate_limited:
        logger.info("api.open", extra={"rate_limited": False})
        return APIConnection(
            api_limit=TokenBucketLimiter(INF, 1, name="api"),
            disk_limit=TokenBucketLimiter(INF, 1, name="disk"),
            network_limit=TokenBucketLimiter(INF, 1, name="network"),
        )

    connection = APIConnection(
        api_limit=MultiLimiter(
            create_token_bucket(cfg.api_second_rate, cfg.api_second_burst, name="api_per_second"),
            create_token_bucket(cfg.api_minute_rate, cfg.api_minute_burst, name="api_per_minute"),
        ),
        disk_limit=MultiLimiter(
            create_token_bucket(cfg.disk_rate, cfg.disk_burst, name="disk"),
        ),
        network_limit=MultiLimiter(
            create_token_bucket(cfg.network_rate, cfg.network_burst, name="network"),
        ),
    )
    logger.info(
        "api.open",
        extra={
            "rate_limited": True,
            "api_limit": connection.api_limit.limit(),
            "disk_limit": connection.disk_limit.limit(),
            "network_limit": connection.network_limit.limit(),
        },
    )
    return connection
