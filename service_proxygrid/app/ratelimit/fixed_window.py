"""
Fixed-window rate limiter for the gateway.
"""

import time
from typing import Callable, Optional, Union

from fastapi import Request

from shared.logging import get_logger
from .models import RateLimitPolicy, RateLimitVerdict
from .stores import InMemoryRateLimitStore, RedisRateLimitStore, RateLimitStoreError

RateLimitStore = Union[InMemoryRateLimitStore, RedisRateLimitStore]


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class FixedWindowRateLimiter:
    """Counts requests per key in fixed windows.

    Every check is both a read and a write: the hit is recorded by the store
    before the verdict is derived, so there is no separate peek operation.
    """

    def __init__(self, store: Optional[RateLimitStore] = None, clock: Callable[[], int] = _epoch_ms):
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.clock = clock
        self.logger = get_logger("proxygrid.rate_limiter")

    async def check_rate_limit(self, key: str, policy: RateLimitPolicy) -> RateLimitVerdict:
        """Record one request for ``key`` and decide whether it is admitted."""
        now = self.clock()

        try:
            record = await self.store.hit(key, policy, now)
        except RateLimitStoreError as e:
            # Fail open while the store is unavailable.
            self.logger.error("Rate limit check error", key=key, error=str(e))
            return RateLimitVerdict(
                allowed=True,
                remaining=policy.requests,
                reset_at=now + policy.window_ms,
                limit=policy.requests,
            )

        reset_at = record.window_start + policy.window_ms
        if record.count <= policy.requests:
            return RateLimitVerdict(
                allowed=True,
                remaining=policy.requests - record.count,
                reset_at=reset_at,
                limit=policy.requests,
            )

        self.logger.warning(
            "Rate limit exceeded",
            key=key,
            count=record.count,
            limit=policy.requests,
        )
        return RateLimitVerdict(allowed=False, remaining=0, reset_at=reset_at, limit=policy.requests)

    async def close(self) -> None:
        await self.store.close()


class RateLimitMiddleware:
    """Derives the limiter key from the inbound request and applies the policy."""

    def __init__(self, rate_limiter: FixedWindowRateLimiter, policy: RateLimitPolicy, namespace: str = "proxygrid"):
        self.rate_limiter = rate_limiter
        self.policy = policy
        self.namespace = namespace
        self.logger = get_logger("proxygrid.rate_limit_middleware")

    async def check_request(self, request: Request) -> RateLimitVerdict:
        """Check rate limit for request."""
        return await self.rate_limiter.check_rate_limit(self.client_key(request), self.policy)

    def client_key(self, request: Request) -> str:
        return self._make_key(self._get_client_ip(request))

    def _make_key(self, client_ip: str) -> str:
        """Generate rate limit key."""
        return f"{self.namespace}:{client_ip}"

    def _get_client_ip(self, request: Request) -> str:
        """Extract the caller IP, preferring the CDN-supplied header."""
        cf_connecting_ip = (request.headers.get("CF-Connecting-IP") or "").strip()
        if cf_connecting_ip:
            return cf_connecting_ip

        forwarded_for = request.headers.get("X-Forwarded-For") or ""
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

        real_ip = (request.headers.get("X-Real-IP") or "").strip()
        if real_ip:
            return real_ip

        return "unknown"
