#!/usr/bin/env python3
"""LRU cache with TTL support for SchemeFS.

Used by locators to remember identifier -> path resolutions:
- LRU eviction bounded by entry count
- TTL-based expiration
- Thread-safe operations
- Hit/miss statistics
- Selective invalidation by key or key prefix

Example:
    >>> cache = LRUCache(CacheConfig(max_entries=100, ttl_seconds=60))
    >>> cache.set("res://config", ["/srv/cfg"])
    >>> cache.get("res://config")
    ['/srv/cfg']
    >>> cache.invalidate("res://config")
    True
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from schemefs.core.constants import Limits

# Distinguishes a cached ``None`` from a miss
MISSING = object()


@dataclass
class CacheEntry:
    """Single cache entry with metadata."""

    key: str
    value: Any
    timestamp: float = field(default_factory=time.time)
    access_count: int = 0
    last_access: float = field(default_factory=time.time)

    def is_expired(self, ttl: float) -> bool:
        return time.time() - self.timestamp > ttl

    def touch(self) -> None:
        self.last_access = time.time()
        self.access_count += 1


@dataclass
class CacheConfig:
    """Configuration for a cache."""

    max_entries: int = Limits.LOCATOR_CACHE_ENTRIES
    ttl_seconds: float = Limits.LOCATOR_CACHE_TTL
    enabled: bool = True

    def validate(self) -> None:
        if self.max_entries <= 0:
            raise ValueError(f"max_entries must be positive: {self.max_entries}")
        if self.ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive: {self.ttl_seconds}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        """Build from the ``cache`` configuration section."""
        defaults = cls()
        return cls(
            max_entries=data.get("max_entries", defaults.max_entries),
            ttl_seconds=data.get("ttl_seconds", defaults.ttl_seconds),
            enabled=data.get("enabled", defaults.enabled),
        )


class LRUCache:
    """Thread-safe LRU cache with TTL."""

    def __init__(self, config: Optional[CacheConfig] = None):
        """Initialize LRU cache.

        Args:
            config: Cache configuration (defaults when None)
        """
        self.config = config if config is not None else CacheConfig()
        self.config.validate()
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()

        # Statistics
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        self._invalidations = 0

    def get(self, key: str, default: Any = MISSING) -> Any:
        """Get value from cache.

        Args:
            key: Cache key
            default: Returned on miss or expiry

        Returns:
            Cached value, or ``default``
        """
        with self._lock:
            if not self.config.enabled or key not in self._cache:
                self._misses += 1
                return default

            entry = self._cache[key]

            if entry.is_expired(self.config.ttl_seconds):
                del self._cache[key]
                self._expirations += 1
                self._misses += 1
                return default

            self._cache.move_to_end(key)
            entry.touch()

            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any) -> None:
        """Store a value, evicting least recently used entries when full."""
        if not self.config.enabled:
            return

        with self._lock:
            self._cache.pop(key, None)

            while len(self._cache) >= self.config.max_entries:
                self._cache.popitem(last=False)
                self._evictions += 1

            self._cache[key] = CacheEntry(key=key, value=value)

    def invalidate(self, key: str) -> bool:
        """Remove one entry.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                self._invalidations += 1
                return True
            return False

    def invalidate_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with ``prefix``.

        Returns:
            Number of entries removed
        """
        with self._lock:
            keys = [key for key in self._cache if key.startswith(prefix)]
            for key in keys:
                del self._cache[key]
            self._invalidations += len(keys)
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._cache

    def get_stats(self) -> Dict[str, Any]:
        """Cache statistics (entries, hits, misses, hit rate, evictions...)."""
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = self._hits / total_requests if total_requests > 0 else 0

            return {
                "entries": len(self._cache),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": hit_rate,
                "evictions": self._evictions,
                "expirations": self._expirations,
                "invalidations": self._invalidations,
            }

    def get_entries(self) -> List[Tuple[str, float]]:
        """All keys with their age in seconds, least recently used first."""
        with self._lock:
            now = time.time()
            return [(key, now - entry.timestamp) for key, entry in self._cache.items()]
