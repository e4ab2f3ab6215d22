"""Fixed-window rate limiting.

HOW THE WINDOW WORKS
---------------------
Each key holds one counter.  The first hit opens a window of
decay_seconds; every allowed request increments the counter; once the
counter reaches max_attempts further requests are rejected without
being counted, until the window expires and the counter disappears.
The next hit after that opens a fresh window.

    max_attempts=5, decay=900
    t=0    hit 1 -> allowed, remaining 4, window ends t=900
    t=10   hit 5 -> allowed, remaining 0
    t=11   hit 6 -> rejected, retry_after 889
    t=900  hit 1 -> allowed, remaining 4 (new window)

A fixed window lets a client spend up to 2x max_attempts across a
window boundary.  The limits here are abuse ceilings measured in
hours, not a smoothing mechanism, so that burst is acceptable.

Rejected requests do not extend or refill the window: a client that
keeps hammering a closed window gets in again as soon as it expires.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from redis.exceptions import RedisError

from lms.core.config import RateLimitRule
from lms.core.errors import StoreUnavailable


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """The outcome of a rate limit check.

    allowed:      True if the request may proceed.
    remaining:    Attempts left in the current window.
    limit:        The rule's max_attempts.
    retry_after:  Whole seconds until the window resets (0 if allowed).
    reset_at:     Unix timestamp at which the window resets.
    """

    allowed: bool
    remaining: int
    limit: int
    retry_after: int
    reset_at: int


@runtime_checkable
class RateLimiter(Protocol):
    async def hit(self, key: str, rule: RateLimitRule) -> RateLimitResult:
        """Check the window for key and count the attempt if it is allowed."""
        ...

    async def attempts(self, key: str) -> int:
        """Current count in the open window (0 when none is open)."""
        ...

    async def reset(self, key: str) -> None: ...


class InMemoryRateLimiter:
    """Dict-backed windows for single-process dev/test.

    Each API process would get its own counters, so production uses
    RedisRateLimiter.  The clock is injectable so tests can step past
    a window without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        # key -> (count, window_started_at, decay_seconds)
        self._windows: dict[str, tuple[int, float, int]] = {}

    def clear(self) -> None:
        self._windows.clear()

    def _live(self, key: str, now: float) -> tuple[int, float, int] | None:
        window = self._windows.get(key)
        if window is None:
            return None
        _, started, decay = window
        if now >= started + decay:
            del self._windows[key]
            return None
        return window

    async def hit(self, key: str, rule: RateLimitRule) -> RateLimitResult:
        now = self._clock()
        window = self._live(key, now)
        if window is None:
            count, started = 0, now
        else:
            count, started, _ = window
        reset_at = started + rule.decay_seconds

        if count >= rule.max_attempts:
            return RateLimitResult(
                allowed=False,
                remaining=0,
                limit=rule.max_attempts,
                retry_after=max(1, math.ceil(reset_at - now)),
                reset_at=math.ceil(reset_at),
            )

        count += 1
        self._windows[key] = (count, started, rule.decay_seconds)
        return RateLimitResult(
            allowed=True,
            remaining=rule.max_attempts - count,
            limit=rule.max_attempts,
            retry_after=0,
            reset_at=math.ceil(reset_at),
        )

    async def attempts(self, key: str) -> int:
        window = self._live(key, self._clock())
        return window[0] if window else 0

    async def reset(self, key: str) -> None:
        self._windows.pop(key, None)


class RedisRateLimiter:
    """Redis-backed windows shared by every API instance.

    The check and the increment must happen as one step.  Two
    processes that both read "4 of 5" and then both INCR would let a
    sixth request through.  Redis runs a Lua script atomically, so the
    GET/INCR/EXPIRE sequence below cannot interleave with another
    client's.

    The window is the key's TTL: EXPIRE is set on the first INCR only,
    so later hits never push the reset time out.
    """

    # KEYS[1] = window key
    # ARGV[1] = max_attempts, ARGV[2] = decay_seconds
    # Returns: {allowed (0/1), count, ttl_ms}
    _LUA_SCRIPT = """
    local key = KEYS[1]
    local max_attempts = tonumber(ARGV[1])
    local decay = tonumber(ARGV[2])

    local count = tonumber(redis.call('GET', key) or '0')
    if count >= max_attempts then
        local ttl = redis.call('PTTL', key)
        if ttl < 0 then
            -- Counter without a TTL would block forever; restart the window
            redis.call('EXPIRE', key, decay)
            ttl = decay * 1000
        end
        return {0, count, ttl}
    end

    count = redis.call('INCR', key)
    if count == 1 then
        redis.call('EXPIRE', key, decay)
    end
    local ttl = redis.call('PTTL', key)
    if ttl < 0 then
        redis.call('EXPIRE', key, decay)
        ttl = decay * 1000
    end
    return {1, count, ttl}
    """

    _PREFIX = "rate_limit:"

    def __init__(self, redis_client, clock: Callable[[], float] = time.time) -> None:
        self._redis = redis_client
        self._clock = clock
        self._script = None

    def _get_script(self):
        if self._script is None:
            self._script = self._redis.register_script(self._LUA_SCRIPT)
        return self._script

    async def hit(self, key: str, rule: RateLimitRule) -> RateLimitResult:
        try:
            allowed, count, ttl_ms = await self._get_script()(
                keys=[self._PREFIX + key],
                args=[rule.max_attempts, rule.decay_seconds],
            )
        except RedisError as exc:
            raise StoreUnavailable("rate_limiter", str(exc)) from exc

        retry_after = max(1, math.ceil(int(ttl_ms) / 1000))
        reset_at = math.ceil(self._clock()) + retry_after
        if not allowed:
            return RateLimitResult(
                allowed=False,
                remaining=0,
                limit=rule.max_attempts,
                retry_after=retry_after,
                reset_at=reset_at,
            )
        return RateLimitResult(
            allowed=True,
            remaining=max(0, rule.max_attempts - int(count)),
            limit=rule.max_attempts,
            retry_after=0,
            reset_at=reset_at,
        )

    async def attempts(self, key: str) -> int:
        try:
            raw = await self._redis.get(self._PREFIX + key)
        except RedisError as exc:
            raise StoreUnavailable("rate_limiter", str(exc)) from exc
        return int(raw) if raw else 0

    async def reset(self, key: str) -> None:
        try:
            await self._redis.delete(self._PREFIX + key)
        except RedisError as exc:
            raise StoreUnavailable("rate_limiter", str(exc)) from exc
