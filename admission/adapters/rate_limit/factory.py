"""Build limiters from configuration text.

Rates in settings are written as ``<events>/<duration>``:

- ``2/s``, ``10/m``, ``100/h``, ``5/2s``, ``3/500ms``
- ``inf`` for an unbounded limiter
"""

from __future__ import annotations

import re

from admission.adapters.rate_limit.base import INF, per
from admission.adapters.rate_limit.token_bucket import TokenBucketLimiter
from admission.core.errors import ValidationAppError

_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_RATE_RE = re.compile(
    r"^\s*(?P<count>\d+)\s*/\s*(?P<amount>\d+(?:\.\d+)?)?\s*(?P<unit>ms|s|m|h)\s*$",
    re.IGNORECASE,
)


def parse_rate(text: str) -> float:
    """Parse a rate expression into events per second.

    Args:
        text: Rate expression such as ``10/m`` or ``inf``.

    Returns:
        float: Events per second (INF for ``inf``).

    Raises:
        ValidationAppError: If the expression is malformed or non-positive.
    """
    if text.strip().lower() in {"inf", "unlimited"}:
        return INF

    match = _RATE_RE.match(text)
    if match is None:
        raise ValidationAppError(
            code="invalid_rate",
            message=f"Invalid rate expression: {text!r}",
            details={"hint": "Use <events>/<duration>, e.g. 2/s, 10/m, 5/2s or inf"},
        )

    count = int(match.group("count"))
    amount = float(match.group("amount") or 1)
    seconds = amount * _UNIT_SECONDS[match.group("unit").lower()]
    if count < 1 or seconds <= 0:
        raise ValidationAppError(
            code="invalid_rate",
            message=f"Rate must be positive: {text!r}",
        )
    return per(count, seconds)


def create_token_bucket(rate_text: str, burst: int, *, name: str | None = None) -> TokenBucketLimiter:
    """Create a token bucket from a rate expression and burst size."""
    return TokenBucketLimiter(parse_rate(rate_text), burst, name=name)
