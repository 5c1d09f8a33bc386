"""Tests for the expiring in-memory cache."""

from sfgraph.cache import ExpiringCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestExpiringCache:
    """Tests for TTL handling, statistics and invalidation."""

    def test_get_returns_value_before_expiry(self):
        """Stored values are returned until their TTL passes."""
        clock = FakeClock()
        cache = ExpiringCache("contents", default_ttl=60, clock=clock)
        cache.set("a", [1, 2])
        clock.now += 59

        assert cache.get("a") == [1, 2]
        assert cache.hits == 1
        assert cache.misses == 0

    def test_expired_entry_is_a_miss_and_is_removed(self):
        """An expired entry counts as a miss and is evicted."""
        clock = FakeClock()
        cache = ExpiringCache("contents", default_ttl=60, clock=clock)
        cache.set("a", "value")
        clock.now += 61

        assert cache.get("a") is None
        assert cache.misses == 1
        assert len(cache) == 0

    def test_per_entry_ttl_overrides_default(self):
        """A TTL given to set() beats the cache default."""
        clock = FakeClock()
        cache = ExpiringCache("search", default_ttl=600, clock=clock)
        cache.set("short", "x", ttl=5)
        cache.set("long", "y")
        clock.now += 10

        assert cache.get("short") is None
        assert cache.get("long") == "y"

    def test_cleanup_and_stats(self):
        """cleanup() drops expired entries; stats report hits and misses."""
        clock = FakeClock()
        cache = ExpiringCache("file-content", default_ttl=10, clock=clock)
        cache.set("old", "1")
        clock.now += 20
        cache.set("fresh", "2")

        stats = cache.stats()
        assert stats["total"] == 2
        assert stats["expired"] == 1

        assert cache.cleanup() == 1
        assert cache.keys() == ["fresh"]

    def test_invalidate_by_substring_and_predicate(self):
        """Keys can be dropped by substring or by predicate."""
        cache = ExpiringCache("contents", default_ttl=60)
        cache.set("contents:acme:core:a.cls", 1)
        cache.set("contents:acme:core:b.cls", 2)
        cache.set("contents:acme:shared:c.cls", 3)

        assert cache.invalidate("acme:core") == 2
        assert cache.invalidate(lambda key: key.endswith("c.cls")) == 1
        assert len(cache) == 0

    def test_clear_empties_cache(self):
        """clear() removes every entry."""
        cache = ExpiringCache("contents", default_ttl=60)
        cache.set("a", 1)
        cache.clear()
        assert "a" not in cache
