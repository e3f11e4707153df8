"""
Disambiguation Cache

In-memory TTL cache for disambiguation candidates.
Key = SHA-256 of the lowercased, trimmed query. TTL = 48 hours.

Prevents repeat provider calls when the same short, ambiguous query is
submitted again. Safe for concurrent coroutines via an asyncio lock.

Usage:
    from claimrisk.cache import disambiguation_cache
    cached = await disambiguation_cache.get(query)
    if cached is None:
        candidates = await ask_provider(...)
        await disambiguation_cache.put(query, candidates)
"""

from __future__ import annotations

import asyncio
import hashlib
import time
from typing import Any, Optional

from claimrisk.config import settings


class TTLCache:
    """In-memory cache with TTL eviction and a bounded entry count."""

    def __init__(self, ttl_seconds: float = 3600, max_entries: int = 500):
        self._cache: dict[str, tuple[float, Any]] = {}
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def make_key(query: str) -> str:
        return hashlib.sha256(query.strip().lower().encode()).hexdigest()

    async def get(self, query: str) -> Optional[Any]:
        """Return the cached value if present and not expired."""
        key = self.make_key(query)
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            ts, value = entry
            if time.monotonic() - ts > self._ttl:
                del self._cache[key]
                self._misses += 1
                return None

            self._hits += 1
            return value

    async def put(self, query: str, value: Any) -> None:
        """Store a value. Evicts the oldest entry when full."""
        key = self.make_key(query)
        async with self._lock:
            if key not in self._cache and len(self._cache) >= self._max_entries:
                oldest_key = min(self._cache, key=lambda k: self._cache[k][0])
                del self._cache[oldest_key]
            self._cache[key] = (time.monotonic(), value)

    async def invalidate(self, query: str) -> None:
        async with self._lock:
            self._cache.pop(self.make_key(query), None)

    @property
    def stats(self) -> dict:
        """Cache hit/miss statistics."""
        total = self._hits + self._misses
        return {
            "entries": len(self._cache),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total, 3) if total > 0 else 0.0,
        }


# Shared by every worker coroutine in the process
disambiguation_cache = TTLCache(ttl_seconds=settings.DISAMBIGUATION_CACHE_TTL)
