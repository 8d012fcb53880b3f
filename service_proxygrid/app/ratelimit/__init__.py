"""
Rate limiting package for the gateway.

Holds the fixed-window limiter, its record stores and the request-facing
middleware that enforces a per-client request budget.
"""

from .models import RateLimitPolicy, RateLimitRecord, RateLimitVerdict
from .stores import InMemoryRateLimitStore, RedisRateLimitStore, RateLimitStoreError
from .fixed_window import FixedWindowRateLimiter, RateLimitMiddleware

__all__ = [
    "RateLimitPolicy",
    "RateLimitRecord",
    "RateLimitVerdict",
    "InMemoryRateLimitStore",
    "RedisRateLimitStore",
    "RateLimitStoreError",
    "FixedWindowRateLimiter",
    "RateLimitMiddleware",
]
