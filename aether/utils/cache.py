"""KPI query caches for Aether.

get_kpis() takes an optional cache collaborator with an explicit TTL instead
of a module-level dict. Two implementations:

- RedisKPICache: shared across workers, values pickled, errors treated as misses
- InMemoryKPICache: per-process TTL dictionary (CLI and tests)
"""

from __future__ import annotations

import logging
import pickle
import time
from typing import Any, Protocol

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class KPICache(Protocol):
    async def get(self, key: str) -> Any | None:
        ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        ...

    async def clear_prefix(self, prefix: str) -> int:
        ...


def kpi_cache_key(org_id: str, period: str, start: Any, end: Any) -> str:
    return f"kpis:{org_id}:{period}:{start}:{end}"


def org_cache_prefix(org_id: str) -> str:
    return f"kpis:{org_id}:"


class RedisKPICache:
    """Redis-backed cache (pickle serialization, SETEX for TTL)."""

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, redis_url: str) -> RedisKPICache:
        return cls(
            redis.from_url(
                redis_url,
                encoding="utf-8",
                decode_responses=False,  # We'll handle pickle serialization
            )
        )

    async def get(self, key: str) -> Any | None:
        try:
            cached_bytes = await self.client.get(key)
            if cached_bytes:
                return pickle.loads(cached_bytes)
        except Exception as e:
            # Cache misses are acceptable
            logger.warning(f"Redis get error for key {key}: {e}")
        return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            await self.client.setex(key, ttl_seconds, pickle.dumps(value))
            return True
        except Exception as e:
            logger.warning(f"Redis set error for key {key}: {e}")
            return False

    async def clear_prefix(self, prefix: str) -> int:
        try:
            keys = await self.client.keys(f"{prefix}*")
            if keys:
                return await self.client.delete(*keys)
        except Exception as e:
            logger.warning(f"Redis clear error for prefix {prefix}: {e}")
        return 0

    async def close(self) -> None:
        await self.client.aclose()


class InMemoryKPICache:
    """Process-local TTL cache."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        self._entries[key] = (self._clock() + ttl_seconds, value)
        return True

    async def clear_prefix(self, prefix: str) -> int:
        stale = [key for key in self._entries if key.startswith(prefix)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)
