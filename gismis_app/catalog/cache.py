"""
TTL cache for aggregated catalog results.

Design:
  - Pluggable storage: in-process dict (default) or Redis
  - Absolute expiry per entry; a read past expiry evicts and misses
  - Last write wins, no merging of concurrent writes
  - Owned by each DataAggregator (no process-wide singleton)

Usage:
    cache = TTLCache()
    cache.set("anime_list:1:20", merged, ttl=3600)
    cached = cache.get("anime_list:1:20")
    cache.remaining_ttl("anime_list:1:20")   # seconds, or -1
"""

import json
import math
import time
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

import redis


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A cached value and the absolute time (epoch seconds) it stops being valid."""
    value: Any
    expires_at: float


class MemoryBackend:
    """In-process storage. Thread-safe with a lock."""

    def __init__(self):
        self._data: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def load(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._data.get(key)

    def store(self, key: str, entry: CacheEntry, ttl: float) -> None:
        with self._lock:
            self._data[key] = entry

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def items(self) -> Iterator[Tuple[str, CacheEntry]]:
        with self._lock:
            snapshot = list(self._data.items())
        return iter(snapshot)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class RedisBackend:
    """
    Redis storage for deployments that share one cache between workers.

    Values are serialized with `dumps`/`loads` (JSON by default; pass
    encode_records/decode_records for lists of MergedRecord). Redis native
    expiry is set slightly past the logical expiry as a backstop; the logical
    expiry stored with the value is what TTLCache enforces.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional["redis.Redis"] = None,
        prefix: str = "gismis:cache:",
        dumps: Callable[[Any], str] = json.dumps,
        loads: Callable[[str], Any] = json.loads
    ):
        if client is None:
            if not url:
                raise ValueError("RedisBackend needs a url or a client")
            client = redis.from_url(url, decode_responses=True)
        self.client = client
        self.prefix = prefix
        self._dumps = dumps
        self._loads = loads

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _decode(self, full_key: str, raw: Optional[str]) -> Optional[CacheEntry]:
        """Parse a stored payload; corrupt or foreign values are evicted and read as a miss."""
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
            return CacheEntry(value=self._loads(payload['value']), expires_at=float(payload['expires_at']))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Dropping unreadable cache value at '{full_key}': {e!r}")
            self.client.delete(full_key)
            return None

    def load(self, key: str) -> Optional[CacheEntry]:
        try:
            full_key = self._key(key)
            return self._decode(full_key, self.client.get(full_key))
        except redis.RedisError as e:
            logger.error(f"Redis GET failed for '{key}': {e}")
            return None

    def store(self, key: str, entry: CacheEntry, ttl: float) -> None:
        payload = json.dumps({'value': self._dumps(entry.value), 'expires_at': entry.expires_at})
        try:
            self.client.set(self._key(key), payload, ex=max(1, math.ceil(ttl)) + 1)
        except redis.RedisError as e:
            logger.error(f"Redis SET failed for '{key}': {e}")

    def remove(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except redis.RedisError as e:
            logger.error(f"Redis DELETE failed for '{key}': {e}")

    def items(self) -> Iterator[Tuple[str, CacheEntry]]:
        try:
            for full_key in self.client.scan_iter(match=f"{self.prefix}*"):
                entry = self._decode(full_key, self.client.get(full_key))
                if entry is not None:
                    yield full_key[len(self.prefix):], entry
        except redis.RedisError as e:
            logger.error(f"Redis SCAN failed: {e}")

    def clear(self) -> None:
        try:
            keys = list(self.client.scan_iter(match=f"{self.prefix}*"))
            if keys:
                self.client.delete(*keys)
        except redis.RedisError as e:
            logger.error(f"Redis clear failed: {e}")

    def __len__(self) -> int:
        return sum(1 for _ in self.items())


class TTLCache:
    """Key/value cache where every entry carries its own time-to-live."""

    def __init__(
        self,
        backend=None,
        clock: Callable[[], float] = time.time,
        default_ttl: float = 3600
    ):
        """
        Initialize cache.

        Args:
            backend: MemoryBackend (default) or RedisBackend
            clock: Returns the current time in epoch seconds
            default_ttl: TTL used when set() is called without one
        """
        self.backend = backend if backend is not None else MemoryBackend()
        self.default_ttl = default_ttl
        self._clock = clock
        self._hits = 0
        self._misses = 0

    def _lookup(self, key: str) -> Optional[CacheEntry]:
        entry = self.backend.load(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            # Expired entries behave as if they never existed
            self.backend.remove(key)
            logger.debug(f"Cache EXPIRED: '{key}'")
            return None
        return entry

    def get(self, key: str) -> Optional[Any]:
        """
        Get a cached value.

        Returns:
            The value, or None if missing or expired (expired entries are evicted)
        """
        entry = self._lookup(key)
        if entry is None:
            self._misses += 1
            logger.debug(f"Cache MISS: '{key}'")
            return None
        self._hits += 1
        logger.debug(f"Cache HIT: '{key}'")
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store value for ttl seconds, replacing any previous entry."""
        if ttl is None:
            ttl = self.default_ttl
        entry = CacheEntry(value=value, expires_at=self._clock() + ttl)
        self.backend.store(key, entry, ttl)
        logger.debug(f"Cache SET: '{key}' (ttl={ttl}s)")

    def delete(self, key: str) -> None:
        """Remove key if present."""
        self.backend.remove(key)

    def has(self, key: str) -> bool:
        """True if key holds a live entry."""
        return self._lookup(key) is not None

    def remaining_ttl(self, key: str) -> int:
        """Whole seconds until key expires, or -1 if absent or expired."""
        entry = self._lookup(key)
        if entry is None:
            return -1
        remaining = math.floor(entry.expires_at - self._clock())
        return remaining if remaining > 0 else -1

    def clear_expired(self) -> int:
        """
        Remove every expired entry.

        Not needed for correctness (get() already evicts), only to reclaim space.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self.backend.items() if now > entry.expires_at]
        for key in expired:
            self.backend.remove(key)
        if expired:
            logger.info(f"Cache pruned: {len(expired)} expired entries removed")
        return len(expired)

    def clear(self) -> None:
        """Remove every entry and reset statistics."""
        self.backend.clear()
        self._hits = 0
        self._misses = 0

    def size(self) -> int:
        """Number of stored entries, including expired ones not yet evicted."""
        return len(self.backend)

    def stats(self) -> Dict[str, Any]:
        """Cache statistics: size, hits, misses and hit rate (percent)."""
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0.0
        return {
            'size': self.size(),
            'hits': self._hits,
            'misses': self._misses,
            'hit_rate': round(hit_rate, 2)
        }
