#!/usr/bin/env python3
"""Tests for the LRU resolution cache."""

import threading
from unittest.mock import patch

import pytest

from schemefs.core.cache import MISSING, CacheConfig, CacheEntry, LRUCache


class TestCacheConfig:
    """Tests for CacheConfig."""

    def test_defaults(self):
        config = CacheConfig()
        config.validate()
        assert config.enabled is True

    @pytest.mark.parametrize("kwargs", [{"max_entries": 0}, {"ttl_seconds": 0}])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            CacheConfig(**kwargs).validate()

    def test_from_dict(self):
        config = CacheConfig.from_dict({"max_entries": 5, "enabled": False})
        assert config.max_entries == 5
        assert config.enabled is False
        assert config.ttl_seconds == CacheConfig().ttl_seconds


class TestCacheEntry:
    """Tests for CacheEntry."""

    def test_touch(self):
        entry = CacheEntry(key="k", value=1)
        entry.touch()
        assert entry.access_count == 1

    def test_expiry(self):
        entry = CacheEntry(key="k", value=1, timestamp=100.0)
        with patch("schemefs.core.cache.time.time", return_value=161.0):
            assert entry.is_expired(60)
            assert not entry.is_expired(120)


class TestLRUCache:
    """Tests for LRUCache."""

    def test_get_missing(self):
        cache = LRUCache()
        assert cache.get("res://a") is MISSING
        assert cache.get("res://a", None) is None

    def test_set_and_get(self):
        cache = LRUCache()
        cache.set("res://a", "/srv/a")
        assert cache.get("res://a") == "/srv/a"
        assert "res://a" in cache
        assert len(cache) == 1

    def test_caches_none_values(self):
        cache = LRUCache()
        cache.set("res://a", None)
        assert cache.get("res://a") is None

    def test_eviction_is_lru(self):
        cache = LRUCache(CacheConfig(max_entries=2))
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert "a" in cache
        assert "b" not in cache
        assert cache.get_stats()["evictions"] == 1

    def test_expired_entry_is_dropped(self):
        cache = LRUCache(CacheConfig(ttl_seconds=10))
        cache.set("a", 1)
        cache._cache["a"].timestamp -= 11
        assert cache.get("a") is MISSING
        assert cache.get_stats()["expirations"] == 1
        assert len(cache) == 0

    def test_disabled(self):
        cache = LRUCache(CacheConfig(enabled=False))
        cache.set("a", 1)
        assert cache.get("a") is MISSING
        assert len(cache) == 0

    def test_invalidate(self):
        cache = LRUCache()
        cache.set("a", 1)
        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False

    def test_invalidate_prefix(self):
        cache = LRUCache()
        cache.set("res://a", 1)
        cache.set("res://a/b", 2)
        cache.set("res://ab", 3)
        assert cache.invalidate_prefix("res://a/") == 1
        assert "res://a" in cache
        assert "res://ab" in cache

    def test_clear(self):
        cache = LRUCache()
        cache.set("a", 1)
        cache.clear()
        assert len(cache) == 0

    def test_stats(self):
        cache = LRUCache()
        cache.set("a", 1)
        cache.get("a")
        cache.get("b")
        stats = cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5
        assert stats["entries"] == 1

    def test_get_entries(self):
        cache = LRUCache()
        cache.set("a", 1)
        cache.set("b", 2)
        assert [key for key, _ in cache.get_entries()] == ["a", "b"]

    def test_thread_safety(self):
        cache = LRUCache(CacheConfig(max_entries=50))

        def worker(n):
            for i in range(200):
                cache.set(f"{n}-{i}", i)
                cache.get(f"{n}-{i}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(cache) <= 50
