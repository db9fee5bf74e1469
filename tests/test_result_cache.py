import unittest
from unittest.mock import patch

from atmowise.cache_store.memory import InMemoryCachePersistence
from atmowise.domain import (
    AirQualityResult,
    CacheStrategy,
    PollutantReading,
    RiskAssessment,
    RiskStatus,
    utc_now,
)
from atmowise.result_cache import BoundedCache, CacheOptions


class FakeClock:
    """Controls atmowise.result_cache.time.time in milliseconds."""

    def __init__(self, start_ms=1_000_000.0):
        self.now_ms = start_ms

    def advance(self, ms):
        self.now_ms += ms

    def __call__(self):
        return self.now_ms / 1000.0


class _ClockedTestCase(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        patcher = patch("atmowise.result_cache.time.time", self.clock)
        patcher.start()
        self.addCleanup(patcher.stop)


class TestBasicOperations(_ClockedTestCase):
    def test_set_then_get_round_trip(self):
        cache = BoundedCache("t")
        cache.set("a", {"v": 1})
        self.assertEqual(cache.get("a"), {"v": 1})
        self.assertIsNone(cache.get("missing"))

    def test_overwrite_resets_access_count(self):
        cache = BoundedCache("t")
        cache.set("a", 1)
        cache.get("a")
        cache.get("a")
        cache.set("a", 2)
        stats = cache.stats()
        self.assertEqual(stats.size, 1)
        self.assertEqual(stats.total_access, 1)
        self.assertEqual(cache.get("a"), 2)

    def test_has_does_not_touch_bookkeeping(self):
        cache = BoundedCache("t")
        cache.set("a", 1)
        self.assertTrue(cache.has("a"))
        self.assertFalse(cache.has("b"))
        self.assertEqual(cache.stats().total_access, 1)

    def test_remove_and_clear(self):
        cache = BoundedCache("t")
        cache.set("a", 1)
        cache.set("b", 2)
        self.assertTrue(cache.remove("a"))
        self.assertFalse(cache.remove("a"))
        cache.clear()
        self.assertEqual(len(cache), 0)
        self.assertEqual(cache.stats().size, 0)

    def test_invalid_options_rejected(self):
        with self.assertRaises(ValueError):
            CacheOptions(ttl_ms=0)
        with self.assertRaises(ValueError):
            CacheOptions(max_size=0)

    def test_legacy_ttl_strategy_name(self):
        self.assertEqual(CacheOptions(strategy="ttl").strategy, CacheStrategy.TTL_PRIORITY)


class TestExpiry(_ClockedTestCase):
    def test_entry_lives_exactly_ttl(self):
        cache = BoundedCache("t", CacheOptions(ttl_ms=1000))
        cache.set("a", 1)
        self.clock.advance(1000)
        self.assertEqual(cache.get("a"), 1)
        self.clock.advance(1)
        self.assertIsNone(cache.get("a"))
        self.assertFalse(cache.has("a"))

    def test_reads_do_not_extend_lifetime(self):
        cache = BoundedCache("t", CacheOptions(ttl_ms=1000))
        cache.set("a", 1)
        self.clock.advance(900)
        self.assertEqual(cache.get("a"), 1)
        self.clock.advance(200)
        self.assertIsNone(cache.get("a"))

    def test_is_expired_reports_without_sweeping(self):
        cache = BoundedCache("t", CacheOptions(ttl_ms=1000))
        cache.set("a", 1)
        self.assertFalse(cache.is_expired("a"))
        self.clock.advance(1500)
        self.assertTrue(cache.is_expired("a"))
        self.assertEqual(len(cache), 1)
        self.assertFalse(cache.is_expired("unknown"))

    def test_stats_sweep_expired_entries(self):
        cache = BoundedCache("t", CacheOptions(ttl_ms=1000))
        cache.set("a", 1)
        self.clock.advance(500)
        cache.set("b", 2)
        self.clock.advance(600)
        stats = cache.stats()
        self.assertEqual(stats.size, 1)


class TestEviction(_ClockedTestCase):
    def _fill(self, cache, keys):
        for key in keys:
            cache.set(key, key)
            self.clock.advance(10)

    def test_size_never_exceeds_max(self):
        cache = BoundedCache("t", CacheOptions(max_size=3))
        for i in range(20):
            cache.set(f"k{i}", i)
            self.clock.advance(1)
            self.assertLessEqual(cache.stats().size, 3)

    def test_lru_keeps_recently_read_entry(self):
        cache = BoundedCache("t", CacheOptions(max_size=2, strategy=CacheStrategy.LRU))
        self._fill(cache, ["a", "b"])
        cache.get("a")
        self.clock.advance(10)
        cache.set("c", "c")
        self.assertTrue(cache.has("a"))
        self.assertFalse(cache.has("b"))
        self.assertTrue(cache.has("c"))

    def test_fifo_ignores_reads(self):
        cache = BoundedCache("t", CacheOptions(max_size=2, strategy=CacheStrategy.FIFO))
        self._fill(cache, ["a", "b"])
        cache.get("a")
        self.clock.advance(10)
        cache.set("c", "c")
        self.assertFalse(cache.has("a"))
        self.assertTrue(cache.has("b"))
        self.assertTrue(cache.has("c"))

    def test_ttl_priority_evicts_oldest_write(self):
        cache = BoundedCache("t", CacheOptions(max_size=2, strategy=CacheStrategy.TTL_PRIORITY))
        self._fill(cache, ["a", "b"])
        cache.get("a")
        cache.set("c", "c")
        self.assertEqual(sorted(cache.keys()), ["b", "c"])

    def test_overwrite_at_capacity_does_not_evict(self):
        cache = BoundedCache("t", CacheOptions(max_size=2))
        self._fill(cache, ["a", "b"])
        cache.set("a", "again")
        self.assertEqual(sorted(cache.keys()), ["a", "b"])


class TestStats(_ClockedTestCase):
    def test_empty_cache_stats(self):
        stats = BoundedCache("t").stats()
        self.assertEqual(stats.size, 0)
        self.assertEqual(stats.total_access, 0)
        self.assertEqual(stats.avg_access, 0.0)
        self.assertEqual(stats.hit_rate, 0.0)
        self.assertEqual(stats.lookup_hit_rate, 0.0)

    def test_hit_rate_formula(self):
        cache = BoundedCache("t")
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.get("a")
        cache.get("missing")
        stats = cache.stats()
        # access counts: a=3, b=1
        self.assertEqual(stats.total_access, 4)
        self.assertAlmostEqual(stats.avg_access, 2.0)
        self.assertAlmostEqual(stats.hit_rate, (4 - 2) / 4)
        self.assertEqual(stats.hits, 2)
        self.assertEqual(stats.misses, 1)
        self.assertAlmostEqual(stats.lookup_hit_rate, 2 / 3)


def _result(key="40.7128,-74.0060|anonymous"):
    return AirQualityResult(
        key=key,
        reading=PollutantReading(pm25=20.0, aqi=68),
        assessment=RiskAssessment(tier=2, status=RiskStatus.MODERATE, rationale="ok"),
        generated_at=utc_now(),
    )


class TestSnapshotRestore(_ClockedTestCase):
    def test_snapshot_restore_preserves_entries(self):
        source = BoundedCache("t")
        source.set("a", {"x": 1})
        self.clock.advance(5)
        source.set("b", [1, 2])
        source.get("a")

        target = BoundedCache("t")
        restored = target.restore(source.snapshot())
        self.assertEqual(restored, 2)
        self.assertEqual(target.keys(), ["a", "b"])
        self.assertEqual(target.get("b"), [1, 2])

    def test_restore_skips_malformed_pairs(self):
        cache = BoundedCache("t")
        restored = cache.restore([("good", {"payload": 1, "created_at": 1_000_000.0}), ("bad", {"nope": True}), "junk"])
        self.assertEqual(restored, 1)
        self.assertTrue(cache.has("good"))

    def test_restore_skips_non_finite_timestamps(self):
        cache = BoundedCache("t", CacheOptions(ttl_ms=1000))
        restored = cache.restore(
            [
                ("nan", {"payload": 1, "created_at": "nan"}),
                ("inf", {"payload": 1, "created_at": float("inf")}),
                ("bad-access", {"payload": 1, "created_at": 1_000_000.0, "last_accessed_at": float("nan")}),
            ]
        )
        self.assertEqual(restored, 0)
        self.assertFalse(cache.has("nan"))
        self.assertEqual(len(cache), 0)

    def test_restore_trims_oversized_snapshot_to_max_size(self):
        persistence = InMemoryCachePersistence()
        big = BoundedCache("t", CacheOptions(max_size=10))
        for idx in range(10):
            big.set(f"k{idx}", idx)
            self.clock.advance(1)
        persistence.save("t", big.snapshot())

        small = BoundedCache("t", CacheOptions(max_size=3), persistence=persistence)
        self.assertLessEqual(len(small), 3)
        self.assertEqual(small.keys(), ["k7", "k8", "k9"])

        small.set("k9", "again")
        self.assertLessEqual(len(small), 3)

    def test_restored_stale_entries_expire_lazily(self):
        cache = BoundedCache("t", CacheOptions(ttl_ms=1000))
        cache.restore([("old", {"payload": 1, "created_at": self.clock.now_ms - 5000})])
        self.assertEqual(len(cache), 1)
        self.assertIsNone(cache.get("old"))

    def test_typed_payload_round_trips_through_persistence(self):
        persistence = InMemoryCachePersistence()
        cache = BoundedCache("air-quality", payload_type=AirQualityResult)
        cache.set("k", _result("k"))
        persistence.save("air-quality", cache.snapshot())

        revived = BoundedCache("air-quality", persistence=persistence, payload_type=AirQualityResult)
        payload = revived.get("k")
        self.assertIsInstance(payload, AirQualityResult)
        self.assertEqual(payload.assessment.tier, 2)
        self.assertEqual(payload.reading.pm25, 20.0)

    def test_failed_restore_leaves_cache_usable(self):
        class BrokenPersistence:
            def load(self, namespace):
                raise ConnectionError("down")

        cache = BoundedCache("t", persistence=BrokenPersistence())
        self.assertEqual(len(cache), 0)
        cache.set("a", 1)
        self.assertEqual(cache.get("a"), 1)


if __name__ == "__main__":
    unittest.main()
