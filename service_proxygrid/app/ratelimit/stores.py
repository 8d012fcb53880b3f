"""
Record stores for the fixed-window rate limiter.

A store owns every :class:`RateLimitRecord` and performs the
check-and-increment atomically, so concurrent requests for the same key can
never overrun the budget.
"""

import threading
from typing import Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.logging import get_logger
from .models import RateLimitPolicy, RateLimitRecord


class RateLimitStoreError(Exception):
    """The backing store could not complete a hit."""


class InMemoryRateLimitStore:
    """Process-wide record map guarded by a mutex."""

    def __init__(self, max_keys: int = 10_000):
        self.max_keys = max_keys
        self._records: Dict[str, RateLimitRecord] = {}
        self._lock = threading.Lock()
        self.logger = get_logger("proxygrid.rate_limit_store")

    async def hit(self, key: str, policy: RateLimitPolicy, now_ms: int) -> RateLimitRecord:
        """Count one request for ``key`` and return the resulting record state."""
        with self._lock:
            record = self._records.get(key)
            if record is None or record.expired(now_ms, policy.window_ms):
                if record is None and len(self._records) >= self.max_keys:
                    self._prune(now_ms, policy.window_ms)
                record = RateLimitRecord(count=1, window_start=now_ms)
                self._records[key] = record
            else:
                record.count += 1

            return RateLimitRecord(count=record.count, window_start=record.window_start)

    def _prune(self, now_ms: int, window_ms: int) -> None:
        expired = [key for key, record in self._records.items() if record.expired(now_ms, window_ms)]
        for key in expired:
            del self._records[key]
        if expired:
            self.logger.debug("Pruned expired rate limit records", pruned=len(expired))

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    async def close(self) -> None:
        return None


# INCR and PEXPIRE execute atomically as one script.
_HIT_SCRIPT = """
local current = redis.call('INCR', KEYS[1])
if current == 1 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
end
local ttl = redis.call('PTTL', KEYS[1])
if ttl < 0 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
    ttl = tonumber(ARGV[1])
end
return {current, ttl}
"""


class RedisRateLimitStore:
    """Shared record store for gateways running several worker processes."""

    def __init__(self, redis_url: str, key_prefix: str = "rate_limit"):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.logger = get_logger("proxygrid.rate_limit_store")
        self._redis: Optional[redis.Redis] = None
        self._script = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    async def hit(self, key: str, policy: RateLimitPolicy, now_ms: int) -> RateLimitRecord:
        try:
            redis_client = await self._get_redis()
            if self._script is None:
                self._script = redis_client.register_script(_HIT_SCRIPT)
            count, ttl = await self._script(keys=[self._make_key(key)], args=[policy.window_ms])
        except (RedisError, OSError) as exc:
            self.logger.error("Rate limit store error", error=str(exc))
            raise RateLimitStoreError(str(exc)) from exc

        count = int(count)
        ttl = int(ttl)
        return RateLimitRecord(count=count, window_start=now_ms + ttl - policy.window_ms)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self._script = None
