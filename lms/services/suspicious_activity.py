"""Per-identity rate-limit violation counters.

An identity is "ip:{addr}" or "user:{sub}".  The counter's TTL is
set when the first violation is recorded and not extended afterwards,
so violations are counted over a fixed period from the first one.

Violations recorded under user:{sub} are also linked to the client IP
they came from, so unblocking an IP can reset every identity that
escalated it.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol

from redis.exceptions import RedisError

from lms.core.errors import StoreUnavailable


class SuspiciousActivityCounter(Protocol):
    async def increment(self, identity: str) -> int: ...
    async def get(self, identity: str) -> int: ...
    async def clear(self, identity: str) -> None: ...
    async def link_identity(self, ip: str, identity: str) -> None: ...
    async def linked_identities(self, ip: str) -> set[str]: ...
    async def forget_links(self, ip: str) -> None: ...


class InMemorySuspiciousActivityCounter:
    def __init__(
        self, ttl_seconds: int = 86400, clock: Callable[[], float] = time.time
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        # identity -> (count, expires_at)
        self._counts: dict[str, tuple[int, float]] = {}
        # ip -> {identity: expires_at}
        self._links: dict[str, dict[str, float]] = {}

    def clear_all(self) -> None:
        self._counts.clear()
        self._links.clear()

    def _live(self, identity: str) -> int:
        entry = self._counts.get(identity)
        if entry is None:
            return 0
        count, expires_at = entry
        if expires_at <= self._clock():
            del self._counts[identity]
            return 0
        return count

    async def increment(self, identity: str) -> int:
        count = self._live(identity)
        if count == 0:
            self._counts[identity] = (1, self._clock() + self._ttl)
            return 1
        _, expires_at = self._counts[identity]
        self._counts[identity] = (count + 1, expires_at)
        return count + 1

    async def get(self, identity: str) -> int:
        return self._live(identity)

    async def clear(self, identity: str) -> None:
        self._counts.pop(identity, None)

    async def link_identity(self, ip: str, identity: str) -> None:
        self._links.setdefault(ip, {})[identity] = self._clock() + self._ttl

    async def linked_identities(self, ip: str) -> set[str]:
        now = self._clock()
        return {i for i, exp in self._links.get(ip, {}).items() if exp > now}

    async def forget_links(self, ip: str) -> None:
        self._links.pop(ip, None)


class RedisSuspiciousActivityCounter:
    _PREFIX = "suspicious_activity:"
    _LINKS = "suspicious_activity_links:"

    def __init__(self, redis_client, ttl_seconds: int = 86400) -> None:
        self._redis = redis_client
        self._ttl = ttl_seconds

    async def increment(self, identity: str) -> int:
        key = self._PREFIX + identity
        try:
            count = await self._redis.incr(key)
            if count == 1:
                await self._redis.expire(key, self._ttl)
        except RedisError as exc:
            raise StoreUnavailable("suspicious_counter", str(exc)) from exc
        return int(count)

    async def get(self, identity: str) -> int:
        try:
            raw = await self._redis.get(self._PREFIX + identity)
        except RedisError as exc:
            raise StoreUnavailable("suspicious_counter", str(exc)) from exc
        return int(raw) if raw else 0

    async def clear(self, identity: str) -> None:
        try:
            await self._redis.delete(self._PREFIX + identity)
        except RedisError as exc:
            raise StoreUnavailable("suspicious_counter", str(exc)) from exc

    async def link_identity(self, ip: str, identity: str) -> None:
        key = self._LINKS + ip
        try:
            await self._redis.sadd(key, identity)
            await self._redis.expire(key, self._ttl)
        except RedisError as exc:
            raise StoreUnavailable("suspicious_counter", str(exc)) from exc

    async def linked_identities(self, ip: str) -> set[str]:
        try:
            members = await self._redis.smembers(self._LINKS + ip)
        except RedisError as exc:
            raise StoreUnavailable("suspicious_counter", str(exc)) from exc
        return set(members)

    async def forget_links(self, ip: str) -> None:
        try:
            await self._redis.delete(self._LINKS + ip)
        except RedisError as exc:
            raise StoreUnavailable("suspicious_counter", str(exc)) from exc
