"""Ephemeral IP blocks.

Every block carries an expiry and disappears on its own.  The
permanent deny list is configuration (AccessPolicy.blocklist), not
data, and never lives here.

Redis layout:
  blocked_ip:{ip}   JSON BlockEntry, TTL = remaining block time
  blocked_ips       SET of IPs that may have a live entry

The set is an index for list_all(), so listing never needs SCAN.
Members whose entry has expired are pruned lazily on read.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol

from redis.exceptions import RedisError

from lms.core.errors import StoreUnavailable
from lms.models.security import BlockEntry


class BlockStore(Protocol):
    async def get(self, ip: str) -> BlockEntry | None: ...
    async def put(self, entry: BlockEntry) -> None: ...
    async def delete(self, ip: str) -> bool: ...
    async def list_all(self) -> list[BlockEntry]: ...


class InMemoryBlockStore:
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, BlockEntry] = {}

    def clear(self) -> None:
        self._entries.clear()

    async def get(self, ip: str) -> BlockEntry | None:
        entry = self._entries.get(ip)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[ip]
            return None
        return entry

    async def put(self, entry: BlockEntry) -> None:
        self._entries[entry.ip] = entry

    async def delete(self, ip: str) -> bool:
        return self._entries.pop(ip, None) is not None

    async def list_all(self) -> list[BlockEntry]:
        live = [e for ip in list(self._entries) if (e := await self.get(ip))]
        return sorted(live, key=lambda e: e.blocked_at)


class RedisBlockStore:
    _KEY = "blocked_ip:"
    _INDEX = "blocked_ips"

    def __init__(self, redis_client, clock: Callable[[], float] = time.time) -> None:
        self._redis = redis_client
        self._clock = clock

    async def get(self, ip: str) -> BlockEntry | None:
        try:
            raw = await self._redis.get(self._KEY + ip)
        except RedisError as exc:
            raise StoreUnavailable("block_store", str(exc)) from exc
        return BlockEntry.from_json(raw) if raw else None

    async def put(self, entry: BlockEntry) -> None:
        ttl = max(1, entry.ttl_seconds(self._clock()))
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.setex(self._KEY + entry.ip, ttl, entry.to_json())
                pipe.sadd(self._INDEX, entry.ip)
                await pipe.execute()
        except RedisError as exc:
            raise StoreUnavailable("block_store", str(exc)) from exc

    async def delete(self, ip: str) -> bool:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(self._KEY + ip)
                pipe.srem(self._INDEX, ip)
                deleted, _ = await pipe.execute()
        except RedisError as exc:
            raise StoreUnavailable("block_store", str(exc)) from exc
        return bool(deleted)

    async def list_all(self) -> list[BlockEntry]:
        try:
            ips = sorted(await self._redis.smembers(self._INDEX))
            if not ips:
                return []
            raws = await self._redis.mget([self._KEY + ip for ip in ips])
            stale = [ip for ip, raw in zip(ips, raws) if raw is None]
            if stale:
                await self._redis.srem(self._INDEX, *stale)
        except RedisError as exc:
            raise StoreUnavailable("block_store", str(exc)) from exc

        entries = [BlockEntry.from_json(raw) for raw in raws if raw is not None]
        return sorted(entries, key=lambda e: e.blocked_at)
