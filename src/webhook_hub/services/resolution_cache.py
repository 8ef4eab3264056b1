"""Short-lived cache of phone number id -> resolved destination list.

The cache is a lossy view of the catalog: entries live for a fixed TTL from
their last write and are deleted whenever a mapping for their identifier
changes. Two backends are provided, an in-process dictionary and Redis for
deployments running several relay processes.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any

import redis

from webhook_hub.core.settings import Settings, settings
from webhook_hub.services.catalog import ResolvedDestination

logger = logging.getLogger(__name__)

CachedDestinations = list[ResolvedDestination]


@dataclass
class CacheStats:
    """Hit/miss counters and current key count."""

    hits: int = 0
    misses: int = 0
    keys: int = 0

    def as_dict(self) -> dict[str, int]:
        return {"hits": self.hits, "misses": self.misses, "keys": self.keys}


class ResolutionCache(ABC):
    """Interface shared by resolution cache backends.

    Implementations must make ``set`` and ``delete`` atomic with respect to
    concurrent ``get`` calls: a reader sees either the old list or the new one.
    """

    @abstractmethod
    def get(self, key: str) -> CachedDestinations | None:
        """Return the cached list, or None on a miss or expired entry."""

    @abstractmethod
    def set(self, key: str, value: CachedDestinations) -> None:
        """Store a list for the configured TTL."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove an entry; returns True if one existed."""

    @abstractmethod
    def flush(self) -> None:
        """Drop every entry."""

    @abstractmethod
    def keys(self) -> list[str]:
        """Return the keys of live entries."""

    @abstractmethod
    def stats(self) -> CacheStats:
        """Return hit/miss counters and the live key count."""


class MemoryResolutionCache(ResolutionCache):
    """Process-local cache guarded by a lock, with an injectable clock."""

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[str, tuple[float, tuple[ResolvedDestination, ...]]] = {}
        self._lock = Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> CachedDestinations | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[0] <= now:
                del self._entries[key]
                entry = None
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return list(entry[1])

    def set(self, key: str, value: CachedDestinations) -> None:
        expires_at = self._clock() + self.ttl_seconds
        # Stored as a tuple so callers mutating the returned list cannot alter the entry.
        with self._lock:
            self._entries[key] = (expires_at, tuple(value))

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def flush(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[str]:
        now = self._clock()
        with self._lock:
            expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
            return sorted(self._entries)

    def stats(self) -> CacheStats:
        live = len(self.keys())
        with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses, keys=live)


class RedisResolutionCache(ResolutionCache):
    """Redis-backed cache shared by every relay process.

    Redis failures never propagate: reads degrade to a miss and writes to a
    no-op, leaving the catalog as the source of truth.
    """

    def __init__(
        self,
        client: redis.Redis,
        ttl_seconds: int,
        namespace: str = "webhook-hub:resolution:",
    ) -> None:
        self._redis = client
        self.ttl_seconds = int(ttl_seconds)
        self._namespace = namespace
        self._hits = 0
        self._misses = 0
        self._stats_lock = Lock()

    def _redis_key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    def _count(self, hit: bool) -> None:
        with self._stats_lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1

    def get(self, key: str) -> CachedDestinations | None:
        try:
            raw = self._redis.get(self._redis_key(key))
        except redis.RedisError as exc:
            logger.warning("Resolution cache read failed for %s: %s", key, exc)
            self._count(hit=False)
            return None
        if raw is None:
            self._count(hit=False)
            return None
        try:
            items = json.loads(raw)
            value = [ResolvedDestination(**item) for item in items]
        except (ValueError, TypeError) as exc:
            logger.warning("Discarding unreadable cache entry %s: %s", key, exc)
            self.delete(key)
            self._count(hit=False)
            return None
        self._count(hit=True)
        return value

    def set(self, key: str, value: CachedDestinations) -> None:
        encoded = json.dumps([asdict(item) for item in value])
        try:
            self._redis.set(self._redis_key(key), encoded, ex=self.ttl_seconds)
        except redis.RedisError as exc:
            logger.warning("Resolution cache write failed for %s: %s", key, exc)

    def delete(self, key: str) -> bool:
        try:
            return bool(self._redis.delete(self._redis_key(key)))
        except redis.RedisError as exc:
            logger.error("Resolution cache invalidation failed for %s: %s", key, exc)
            return False

    def flush(self) -> None:
        try:
            keys = list(self._redis.scan_iter(match=f"{self._namespace}*"))
            if keys:
                self._redis.delete(*keys)
        except redis.RedisError as exc:
            logger.error("Resolution cache flush failed: %s", exc)

    def keys(self) -> list[str]:
        try:
            raw_keys = list(self._redis.scan_iter(match=f"{self._namespace}*"))
        except redis.RedisError as exc:
            logger.warning("Resolution cache key scan failed: %s", exc)
            return []
        prefix_len = len(self._namespace)
        decoded = [k.decode() if isinstance(k, bytes) else str(k) for k in raw_keys]
        return sorted(k[prefix_len:] for k in decoded)

    def stats(self) -> CacheStats:
        live = len(self.keys())
        with self._stats_lock:
            return CacheStats(hits=self._hits, misses=self._misses, keys=live)


def build_resolution_cache(config: Settings | None = None) -> ResolutionCache:
    """Build the cache backend selected by ``CACHE_BACKEND``."""
    config = config or settings
    backend = config.cache_backend.lower()
    if backend == "redis":
        client: Any = redis.from_url(config.redis_url)  # type: ignore[no-untyped-call]
        return RedisResolutionCache(client, ttl_seconds=config.cache_ttl_seconds)
    if backend != "memory":
        raise ValueError(f"Unknown cache backend: {config.cache_backend}")
    return MemoryResolutionCache(ttl_seconds=config.cache_ttl_seconds)
