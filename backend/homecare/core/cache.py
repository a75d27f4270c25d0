"""In-process TTL cache with an injectable time source."""

import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

V = TypeVar("V")

TimeSource = Callable[[], float]


@dataclass
class CacheEntry(Generic[V]):
    value: V
    stored_at: float


class TTLCache(Generic[V]):
    """Key/value cache whose entries expire ``ttl_seconds`` after being stored.

    Expired entries are dropped lazily on lookup. ``time_source`` must be
    monotonic; it defaults to ``time.monotonic``.

    Example:
        cache = TTLCache(ttl_seconds=120)
        stats = cache.get("usage_stats")
        if stats is None:
            stats = cache.set("usage_stats", compute_stats())
    """

    def __init__(
        self,
        ttl_seconds: float,
        time_source: TimeSource = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._now = time_source
        self._entries: dict[str, CacheEntry[V]] = {}

    def get(self, key: str) -> Optional[V]:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._now() - entry.stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: V) -> V:
        """Store a value and return it."""
        self._entries[key] = CacheEntry(value=value, stored_at=self._now())
        return value

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one key, or every key when called without arguments."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __contains__(self, key: Any) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
