"""Fixed-window limiter backends."""
from unittest import mock

import pytest

from app.core.config import settings
from app.dependencies import rate_limit
from app.dependencies.rate_limit import RateLimiter, _memory_hit


def test_memory_window_blocks_then_recovers():
    key = "ratelimit:auth:198.51.100.1"
    assert _memory_hit(key, 2, 60, now=1000.0) == (True, 1, 60)
    assert _memory_hit(key, 2, 60, now=1001.0) == (True, 0, 59)

    assert _memory_hit(key, 2, 60, now=1010.0) == (False, 0, 50)

    assert _memory_hit(key, 2, 60, now=1061.0) == (True, 1, 60)


def test_expired_keys_are_swept():
    _memory_hit("ratelimit:auth:203.0.113.1", 5, 60, now=1000.0)
    _memory_hit("ratelimit:auth:203.0.113.2", 5, 60, now=1030.0)
    assert len(rate_limit._buckets) == 2

    _memory_hit("ratelimit:auth:203.0.113.3", 5, 60, now=1075.0)

    assert set(rate_limit._buckets) == {"ratelimit:auth:203.0.113.2", "ratelimit:auth:203.0.113.3"}


def test_limits_follow_scope_settings():
    assert RateLimiter("auth").limit == settings.AUTH_RATE_LIMIT_REQUESTS
    assert RateLimiter("auth").window == settings.AUTH_RATE_LIMIT_PERIOD_SECONDS
    assert RateLimiter("api").limit == settings.API_RATE_LIMIT_REQUESTS
    assert RateLimiter("api", limit=3, window=10).window == 10


@pytest.mark.parametrize("count, expected", [(4, (True, 1, 42)), (5, (True, 0, 42)), (6, (False, 0, 42))])
async def test_redis_backend_counts_window(monkeypatch, count, expected):
    monkeypatch.setattr(settings, "RATE_LIMIT_BACKEND", "redis")
    hit = mock.AsyncMock(return_value=(count, 42))
    monkeypatch.setattr(rate_limit.redis_cache, "hit", hit)

    assert await RateLimiter("auth", limit=5, window=900)._hit("ratelimit:auth:x") == expected
    hit.assert_awaited_once_with("ratelimit:auth:x", 900)


async def test_redis_outage_falls_back_to_memory(monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_BACKEND", "redis")
    monkeypatch.setattr(rate_limit.redis_cache, "hit", mock.AsyncMock(return_value=None))
    limiter = RateLimiter("auth", limit=1, window=900)

    assert (await limiter._hit("ratelimit:auth:y"))[:2] == (True, 0)
    assert (await limiter._hit("ratelimit:auth:y"))[:2] == (False, 0)
