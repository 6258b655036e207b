"""Rate limiting adapters.

Leaf token buckets and composites share the ``RateLimiter`` interface so
callers can stack constraints without knowing how each one is enforced.
"""

from admission.adapters.rate_limit.base import INF, RateLimiter, per
from admission.adapters.rate_limit.factory import create_token_bucket, parse_rate
from admission.adapters.rate_limit.multi import MultiLimiter, new_multi_limiter
from admission.adapters.rate_limit.token_bucket import TokenBucketLimiter, new_token_bucket_limiter

__all__ = [
    "INF",
    "MultiLimiter",
    "RateLimiter",
    "TokenBucketLimiter",
    "create_token_bucket",
    "new_multi_limiter",
    "new_token_bucket_limiter",
    "parse_rate",
    "per",
]
