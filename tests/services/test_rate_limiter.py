from __future__ import annotations

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from lms.core.config import RateLimitRule
from lms.core.errors import StoreUnavailable
from lms.services.rate_limiter import InMemoryRateLimiter, RedisRateLimiter
from tests.conftest import FakeClock

_RULE = RateLimitRule(max_attempts=5, decay_seconds=900)


def _hits(limiter: InMemoryRateLimiter, n: int, key: str = "auth.login:ip:1.2.3.4"):
    async def run():
        return [await limiter.hit(key, _RULE) for _ in range(n)]

    return asyncio.run(run())


def test_allows_up_to_max_attempts() -> None:
    results = _hits(InMemoryRateLimiter(FakeClock()), 5)
    assert all(r.allowed for r in results)
    assert [r.remaining for r in results] == [4, 3, 2, 1, 0]
    assert all(r.retry_after == 0 for r in results)


def test_sixth_attempt_rejected_with_retry_after() -> None:
    clock = FakeClock()
    limiter = InMemoryRateLimiter(clock)
    _hits(limiter, 5)
    clock.advance(100)

    sixth = _hits(limiter, 1)[0]
    assert sixth.allowed is False
    assert sixth.remaining == 0
    assert sixth.limit == 5
    assert sixth.retry_after == 800
    assert sixth.reset_at == int(clock.now) + 800


def test_rejected_attempts_are_not_counted() -> None:
    clock = FakeClock()
    limiter = InMemoryRateLimiter(clock)
    _hits(limiter, 20)
    assert asyncio.run(limiter.attempts("auth.login:ip:1.2.3.4")) == 5


def test_window_does_not_slide_on_rejection() -> None:
    clock = FakeClock()
    limiter = InMemoryRateLimiter(clock)
    _hits(limiter, 5)
    clock.advance(899)
    assert _hits(limiter, 1)[0].allowed is False
    clock.advance(1)
    fresh = _hits(limiter, 1)[0]
    assert fresh.allowed is True
    assert fresh.remaining == 4


def test_retry_after_is_at_least_one_second() -> None:
    clock = FakeClock()
    limiter = InMemoryRateLimiter(clock)
    _hits(limiter, 5)
    clock.advance(899.5)
    assert _hits(limiter, 1)[0].retry_after == 1


def test_keys_are_independent() -> None:
    limiter = InMemoryRateLimiter(FakeClock())
    _hits(limiter, 5, key="a")
    assert _hits(limiter, 1, key="a")[0].allowed is False
    assert _hits(limiter, 1, key="b")[0].allowed is True


def test_reset_clears_the_window() -> None:
    limiter = InMemoryRateLimiter(FakeClock())
    _hits(limiter, 5)
    asyncio.run(limiter.reset("auth.login:ip:1.2.3.4"))
    assert asyncio.run(limiter.attempts("auth.login:ip:1.2.3.4")) == 0
    assert _hits(limiter, 1)[0].allowed is True


# ---- Redis error translation ----


class _DownScript:
    async def __call__(self, keys, args):
        raise RedisConnectionError("Connection refused")


class _DownRedis:
    def register_script(self, script):
        return _DownScript()

    async def get(self, key):
        raise RedisConnectionError("Connection refused")

    async def delete(self, key):
        raise RedisConnectionError("Connection refused")


def test_redis_failure_becomes_store_unavailable() -> None:
    limiter = RedisRateLimiter(_DownRedis())
    with pytest.raises(StoreUnavailable, match="rate_limiter unavailable"):
        asyncio.run(limiter.hit("k", _RULE))
    with pytest.raises(StoreUnavailable):
        asyncio.run(limiter.attempts("k"))
    with pytest.raises(StoreUnavailable):
        asyncio.run(limiter.reset("k"))


class _ScriptResult:
    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    async def __call__(self, keys, args):
        self.calls.append((keys, args))
        return self.reply


class _ScriptRedis:
    def __init__(self, reply):
        self.script = _ScriptResult(reply)

    def register_script(self, script):
        return self.script


def test_redis_reply_is_mapped_to_result() -> None:
    clock = FakeClock()
    redis = _ScriptRedis([0, 5, 1500])
    result = asyncio.run(RedisRateLimiter(redis, clock).hit("auth.login:ip:1.2.3.4", _RULE))
    assert result.allowed is False
    assert result.retry_after == 2
    assert result.reset_at == int(clock.now) + 2
    assert redis.script.calls == [(["rate_limit:auth.login:ip:1.2.3.4"], [5, 900])]


def test_redis_allowed_reply_reports_remaining() -> None:
    redis = _ScriptRedis([1, 2, 900_000])
    result = asyncio.run(RedisRateLimiter(redis, FakeClock()).hit("k", _RULE))
    assert result.allowed is True
    assert result.remaining == 3
    assert result.retry_after == 0
