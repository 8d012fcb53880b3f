"""
Unit tests for the fixed-window rate limiter.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from redis.exceptions import ConnectionError as RedisConnectionError

from service_proxygrid.app.ratelimit import (
    FixedWindowRateLimiter,
    InMemoryRateLimitStore,
    RateLimitMiddleware,
    RateLimitPolicy,
    RateLimitStoreError,
    RedisRateLimitStore,
)
from service_proxygrid.app.ratelimit.models import RateLimitRecord, RateLimitVerdict


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class TestRateLimitModels:
    """Test cases for rate limit data structures."""

    @pytest.mark.parametrize("requests,window_ms", [(0, 1000), (10, 0), (-1, -1)])
    def test_policy_rejects_non_positive(self, requests, window_ms):
        """Test policy requires a positive budget and window."""
        with pytest.raises(ValueError):
            RateLimitPolicy(requests=requests, window_ms=window_ms)

    def test_record_expiry_is_strict(self):
        """Test record expires only after the window end."""
        record = RateLimitRecord(count=1, window_start=1000)
        assert record.expired(2000, 1000) is False
        assert record.expired(2001, 1000) is True

    def test_verdict_headers(self):
        """Test verdict renders standard rate limit headers."""
        verdict = RateLimitVerdict(allowed=True, remaining=7, reset_at=123456, limit=10)
        assert verdict.headers() == {
            "X-RateLimit-Limit": "10",
            "X-RateLimit-Remaining": "7",
            "X-RateLimit-Reset": "123456",
        }


class TestFixedWindowRateLimiter:
    """Test cases for FixedWindowRateLimiter."""

    @pytest.fixture
    def clock(self):
        """Fake clock fixed at a known instant."""
        return FakeClock()

    @pytest.fixture
    def rate_limiter(self, clock):
        """Create FixedWindowRateLimiter with an in-memory store and fake clock."""
        return FixedWindowRateLimiter(InMemoryRateLimitStore(), clock=clock)

    @pytest.fixture
    def policy(self):
        """Three requests per second."""
        return RateLimitPolicy(requests=3, window_ms=1000)

    @pytest.mark.asyncio
    async def test_budget_sequence(self, rate_limiter, policy):
        """Test three requests are admitted and the fourth is rejected."""
        verdicts = [await rate_limiter.check_rate_limit("k", policy) for _ in range(4)]

        assert [v.allowed for v in verdicts] == [True, True, True, False]
        assert [v.remaining for v in verdicts] == [2, 1, 0, 0]
        assert all(v.limit == 3 for v in verdicts)

    @pytest.mark.asyncio
    async def test_reset_at_is_window_end(self, rate_limiter, policy, clock):
        """Test reset time stays at the end of the active window."""
        start = clock.now
        first = await rate_limiter.check_rate_limit("k", policy)
        clock.advance(400)
        second = await rate_limiter.check_rate_limit("k", policy)

        assert first.reset_at == start + 1000
        assert second.reset_at == start + 1000

    @pytest.mark.asyncio
    async def test_window_resets_after_elapsing(self, rate_limiter, policy, clock):
        """Test counter resets once the window has elapsed."""
        for _ in range(4):
            await rate_limiter.check_rate_limit("k", policy)

        clock.advance(1000)
        still_blocked = await rate_limiter.check_rate_limit("k", policy)
        assert still_blocked.allowed is False

        clock.advance(1)
        verdict = await rate_limiter.check_rate_limit("k", policy)
        assert verdict.allowed is True
        assert verdict.remaining == 2
        assert verdict.reset_at == clock.now + 1000

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, rate_limiter, policy):
        """Test exhausting one key leaves another untouched."""
        for _ in range(3):
            await rate_limiter.check_rate_limit("a", policy)

        assert (await rate_limiter.check_rate_limit("a", policy)).allowed is False
        assert (await rate_limiter.check_rate_limit("b", policy)).allowed is True

    @pytest.mark.asyncio
    async def test_rejected_requests_still_count(self, rate_limiter, policy):
        """Test rejected requests are recorded by the store."""
        store = rate_limiter.store
        for _ in range(5):
            await rate_limiter.check_rate_limit("k", policy)

        assert store._records["k"].count == 5

    @pytest.mark.asyncio
    async def test_fails_open_on_store_error(self, clock, policy):
        """Test limiter admits requests while the store is down."""
        store = MagicMock()
        store.hit = AsyncMock(side_effect=RateLimitStoreError("connection refused"))
        rate_limiter = FixedWindowRateLimiter(store, clock=clock)

        verdict = await rate_limiter.check_rate_limit("k", policy)

        assert verdict.allowed is True
        assert verdict.remaining == 3
        assert verdict.reset_at == clock.now + 1000

    @pytest.mark.asyncio
    async def test_close_closes_store(self, clock):
        """Test closing the limiter closes its store."""
        store = MagicMock()
        store.close = AsyncMock()
        rate_limiter = FixedWindowRateLimiter(store, clock=clock)

        await rate_limiter.close()

        store.close.assert_awaited_once()


class TestInMemoryRateLimitStore:
    """Test cases for InMemoryRateLimitStore."""

    @pytest.fixture
    def policy(self):
        """Five requests per second."""
        return RateLimitPolicy(requests=5, window_ms=1000)

    @pytest.mark.asyncio
    async def test_hit_returns_snapshot(self, policy):
        """Test mutating a returned record does not touch the store."""
        store = InMemoryRateLimitStore()

        snapshot = await store.hit("k", policy, 0)
        snapshot.count = 99

        assert store._records["k"].count == 1

    @pytest.mark.asyncio
    async def test_len_counts_keys(self, policy):
        """Test store length is the number of tracked keys."""
        store = InMemoryRateLimitStore()

        await store.hit("a", policy, 0)
        await store.hit("a", policy, 1)
        await store.hit("b", policy, 1)

        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_prunes_expired_records_at_capacity(self, policy):
        """Test expired records are dropped when a new key arrives at capacity."""
        store = InMemoryRateLimitStore(max_keys=2)

        await store.hit("old-1", policy, 0)
        await store.hit("old-2", policy, 0)
        await store.hit("new", policy, 5000)

        assert len(store) == 1
        assert "old-1" not in store._records
        assert store._records["new"].count == 1

    @pytest.mark.asyncio
    async def test_keeps_live_records_at_capacity(self, policy):
        """Test live records survive pruning."""
        store = InMemoryRateLimitStore(max_keys=1)

        await store.hit("live", policy, 0)
        await store.hit("other", policy, 500)

        assert store._records["live"].count == 1
        assert len(store) == 2


class TestRedisRateLimitStore:
    """Test cases for RedisRateLimitStore."""

    @pytest.fixture
    def store(self):
        """Create RedisRateLimitStore instance."""
        return RedisRateLimitStore("redis://localhost:6379/0")

    @pytest.fixture
    def policy(self):
        """Default gateway policy."""
        return RateLimitPolicy(requests=100, window_ms=60_000)

    @pytest.mark.asyncio
    async def test_hit_first_request(self, store, policy):
        """Test a fresh key starts its window at the current time."""
        script = AsyncMock(return_value=[1, 60_000])
        mock_redis = MagicMock()
        mock_redis.register_script.return_value = script

        with patch.object(store, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_get_redis.return_value = mock_redis

            record = await store.hit("proxygrid:127.0.0.1", policy, 1_000_000)

        assert record.count == 1
        assert record.window_start == 1_000_000
        script.assert_awaited_once_with(keys=["rate_limit:proxygrid:127.0.0.1"], args=[60_000])

    @pytest.mark.asyncio
    async def test_hit_derives_window_start_from_ttl(self, store, policy):
        """Test window start is reconstructed from the remaining TTL."""
        script = AsyncMock(return_value=[42, 15_000])
        mock_redis = MagicMock()
        mock_redis.register_script.return_value = script

        with patch.object(store, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_get_redis.return_value = mock_redis

            record = await store.hit("k", policy, 1_000_000)

        assert record.count == 42
        assert record.window_start == 1_000_000 + 15_000 - 60_000

    @pytest.mark.asyncio
    async def test_script_registered_once(self, store, policy):
        """Test the Lua script is registered on first use only."""
        script = AsyncMock(return_value=[1, 60_000])
        mock_redis = MagicMock()
        mock_redis.register_script.return_value = script

        with patch.object(store, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_get_redis.return_value = mock_redis

            await store.hit("k", policy, 0)
            await store.hit("k", policy, 1)

        mock_redis.register_script.assert_called_once()
        assert script.await_count == 2

    @pytest.mark.asyncio
    async def test_redis_error_raises_store_error(self, store, policy):
        """Test Redis failures surface as RateLimitStoreError."""
        script = AsyncMock(side_effect=RedisConnectionError("connection refused"))
        mock_redis = MagicMock()
        mock_redis.register_script.return_value = script

        with patch.object(store, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_get_redis.return_value = mock_redis

            with pytest.raises(RateLimitStoreError):
                await store.hit("k", policy, 0)

    @pytest.mark.asyncio
    async def test_limiter_fails_open_when_redis_down(self, store, policy):
        """Test limiter admits requests when Redis is unreachable."""
        script = AsyncMock(side_effect=RedisConnectionError("connection refused"))
        mock_redis = MagicMock()
        mock_redis.register_script.return_value = script
        rate_limiter = FixedWindowRateLimiter(store, clock=FakeClock(0))

        with patch.object(store, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_get_redis.return_value = mock_redis

            verdict = await rate_limiter.check_rate_limit("k", policy)

        assert verdict.allowed is True

    @pytest.mark.asyncio
    async def test_close(self, store):
        """Test closing releases the Redis connection."""
        mock_redis = MagicMock()
        mock_redis.aclose = AsyncMock()
        store._redis = mock_redis

        await store.close()

        mock_redis.aclose.assert_awaited_once()
        assert store._redis is None


class TestRateLimitMiddleware:
    """Test cases for RateLimitMiddleware."""

    @pytest.fixture
    def middleware(self):
        """Middleware allowing two requests per minute."""
        rate_limiter = FixedWindowRateLimiter(InMemoryRateLimitStore(), clock=FakeClock())
        return RateLimitMiddleware(rate_limiter, RateLimitPolicy(requests=2, window_ms=60_000))

    def _request(self, headers):
        request = MagicMock()
        request.headers = headers
        return request

    def test_prefers_cdn_header(self, middleware):
        """Test CDN client header wins over proxy headers."""
        request = self._request({
            "CF-Connecting-IP": "203.0.113.7",
            "X-Forwarded-For": "198.51.100.1",
            "X-Real-IP": "192.0.2.1",
        })
        assert middleware.client_key(request) == "proxygrid:203.0.113.7"

    def test_first_forwarded_for_entry(self, middleware):
        """Test first X-Forwarded-For hop identifies the client."""
        request = self._request({"X-Forwarded-For": " 198.51.100.1 , 10.0.0.1"})
        assert middleware.client_key(request) == "proxygrid:198.51.100.1"

    def test_real_ip(self, middleware):
        """Test X-Real-IP is used when no other header is present."""
        request = self._request({"X-Real-IP": "192.0.2.1"})
        assert middleware.client_key(request) == "proxygrid:192.0.2.1"

    def test_blank_cdn_header_falls_through(self, middleware):
        """Test whitespace CDN header is skipped in favour of the next header."""
        request = self._request({"CF-Connecting-IP": "   ", "X-Forwarded-For": "198.51.100.1"})
        assert middleware.client_key(request) == "proxygrid:198.51.100.1"

    def test_blank_headers_are_unknown(self, middleware):
        """Test all-blank headers map to the unknown client."""
        request = self._request({"CF-Connecting-IP": " ", "X-Forwarded-For": " , ", "X-Real-IP": "\t"})
        assert middleware.client_key(request) == "proxygrid:unknown"

    def test_unknown_client(self, middleware):
        """Test missing headers map to the unknown client."""
        assert middleware.client_key(self._request({})) == "proxygrid:unknown"

    @pytest.mark.asyncio
    async def test_check_request_applies_policy(self, middleware):
        """Test middleware enforces its policy per client."""
        request = self._request({"X-Real-IP": "192.0.2.1"})

        verdicts = [await middleware.check_request(request) for _ in range(3)]

        assert [v.allowed for v in verdicts] == [True, True, False]
