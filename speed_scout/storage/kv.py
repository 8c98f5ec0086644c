# speed_scout/storage/kv.py
"""
Key-value stores with per-key TTL for share records.
"""
from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Protocol, Tuple

from redis.asyncio import Redis


class KVStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def put(self, key: str, value: str, *, ttl: Optional[int] = None) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemoryKVStore:
    """Process-local store; expired keys are evicted lazily on read."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._data

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, evict_at = entry
        if evict_at is not None and self._clock() >= evict_at:
            del self._data[key]
            return None
        return value

    async def put(self, key: str, value: str, *, ttl: Optional[int] = None) -> None:
        evict_at = self._clock() + ttl if ttl else None
        self._data[key] = (value, evict_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class RedisKVStore:
    """KV store on Redis; TTL is delegated to ``SET ... EX``."""

    def __init__(self, client: Redis) -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> RedisKVStore:
        return cls(Redis.from_url(url, encoding="utf-8", decode_responses=True))

    async def get(self, key: str) -> Optional[str]:
        value = await self.client.get(key)
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def put(self, key: str, value: str, *, ttl: Optional[int] = None) -> None:
        await self.client.set(key, value, ex=ttl or None)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def close(self) -> None:
        await self.client.aclose()


__all__ = ["KVStore", "MemoryKVStore", "RedisKVStore"]
