"""
Tests for ComputationCache.

Covers:
- Hits within the TTL, recomputation after it
- Throttling within the cooldown and while in flight
- Failed computations neither cached nor cooling down
- Invalidation keeping a stale value for fallback
- Key rendering
- Lapsed cooldown marks and expired entries pruned, stale values capped
"""

import threading
from decimal import Decimal

import pytest

from freshstock_kernel.exceptions import ThrottledError
from freshstock_services.computation_cache import CacheKey, ComputationCache


@pytest.fixture
def cache(deterministic_clock):
    return ComputationCache(deterministic_clock, ttl_seconds=300, cooldown_seconds=30)


class Counter:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.calls


class TestCacheKey:

    def test_params_sorted(self):
        key = CacheKey("transfer_recommendations", {"top_n": 50, "as_of": "2024-01-01"})

        assert str(key) == "transfer_recommendations:as_of=2024-01-01,top_n=50"

    def test_bare_operation(self):
        assert str(CacheKey("sweep")) == "sweep"


class TestGetOrCompute:

    def test_hit_within_ttl(self, cache, deterministic_clock):
        fn = Counter()

        assert cache.get_or_compute("k", fn) == 1
        deterministic_clock.advance(299)
        assert cache.get_or_compute("k", fn) == 1
        assert fn.calls == 1
        assert cache.stats().hits == 1

    def test_recompute_after_ttl(self, cache, deterministic_clock):
        fn = Counter()
        cache.get_or_compute("k", fn)

        deterministic_clock.advance(300)

        assert cache.get_or_compute("k", fn) == 2

    def test_custom_ttl(self, cache, deterministic_clock):
        fn = Counter()
        cache.get_or_compute("k", fn, ttl=5)

        deterministic_clock.advance(40)

        assert cache.get_or_compute("k", fn) == 2

    def test_keys_are_independent(self, cache):
        assert cache.get_or_compute("a", lambda: "A") == "A"
        assert cache.get_or_compute("b", lambda: "B") == "B"


class TestThrottle:

    def test_within_cooldown_after_invalidation(self, cache, deterministic_clock):
        fn = Counter()
        cache.get_or_compute("k", fn)
        cache.invalidate("k")
        deterministic_clock.advance(10)

        with pytest.raises(ThrottledError) as exc_info:
            cache.get_or_compute("k", fn)

        assert exc_info.value.retry_after_seconds == Decimal("20")
        assert not exc_info.value.in_flight
        assert exc_info.value.code == "THROTTLED"
        assert fn.calls == 1

    def test_cooldown_elapsed_allows_recompute(self, cache, deterministic_clock):
        fn = Counter()
        cache.get_or_compute("k", fn)
        cache.invalidate("k")
        deterministic_clock.advance(30)

        assert cache.get_or_compute("k", fn) == 2

    def test_short_ttl_inside_cooldown_is_throttled(self, deterministic_clock):
        cache = ComputationCache(deterministic_clock, ttl_seconds=5, cooldown_seconds=30)
        cache.get_or_compute("k", lambda: 1)
        deterministic_clock.advance(6)

        with pytest.raises(ThrottledError):
            cache.get_or_compute("k", lambda: 2)
        assert cache.peek_stale("k") == 1

    def test_in_flight_key_throttled(self, cache):
        started = threading.Event()
        release = threading.Event()
        results = []

        def slow():
            started.set()
            release.wait(timeout=5)
            return "done"

        worker = threading.Thread(target=lambda: results.append(cache.get_or_compute("k", slow)))
        worker.start()
        started.wait(timeout=5)

        with pytest.raises(ThrottledError) as exc_info:
            cache.get_or_compute("k", lambda: "second")

        release.set()
        worker.join(timeout=5)
        assert exc_info.value.in_flight
        assert results == ["done"]
        assert cache.stats().in_flight == 0

    def test_throttle_counted(self, cache):
        cache.get_or_compute("k", lambda: 1)
        cache.invalidate("k")

        with pytest.raises(ThrottledError):
            cache.get_or_compute("k", lambda: 1)

        assert cache.stats().throttled == 1


class TestFailures:

    def test_failure_not_cached_and_no_cooldown(self, cache):
        def boom():
            raise RuntimeError("backend down")

        with pytest.raises(RuntimeError):
            cache.get_or_compute("k", boom)

        assert cache.get_or_compute("k", lambda: "ok") == "ok"
        stats = cache.stats()
        assert stats.failures == 1
        assert stats.in_flight == 0


class TestInvalidation:

    def test_invalidate_keeps_stale_value(self, cache):
        cache.get_or_compute("k", lambda: "v1")

        assert cache.invalidate("k")
        assert cache.peek_stale("k") == "v1"
        assert cache.stats().entries == 0

    def test_invalidate_missing_key(self, cache):
        assert not cache.invalidate("nothing")
        assert cache.peek_stale("nothing") is None

    def test_invalidate_prefix(self, cache):
        cache.get_or_compute(CacheKey("recs", {"as_of": "2024-01-01"}), lambda: 1)
        cache.get_or_compute(CacheKey("recs", {"as_of": "2024-01-02"}), lambda: 2)
        cache.get_or_compute("recs_other", lambda: 3)

        assert cache.invalidate_prefix("recs") == 2
        assert cache.stats().entries == 1


class TestBoundedState:

    def test_lapsed_cooldown_marks_dropped(self, cache, deterministic_clock):
        cache.get_or_compute("a", Counter())
        cache.get_or_compute("b", Counter())
        assert cache.stats().cooling_down == 2

        deterministic_clock.advance(30)
        cache.get_or_compute("c", Counter())

        assert cache.stats().cooling_down == 1

    def test_expired_entries_moved_to_stale(self, cache, deterministic_clock):
        cache.get_or_compute("a", lambda: "old")

        deterministic_clock.advance(300)
        cache.get_or_compute("b", Counter())

        stats = cache.stats()
        assert stats.entries == 1
        assert stats.stale == 1
        assert cache.peek_stale("a") == "old"

    def test_stale_values_capped_oldest_first(self, deterministic_clock):
        cache = ComputationCache(deterministic_clock, max_stale_entries=2)
        for name in ("a", "b", "c"):
            cache.get_or_compute(name, lambda: name)
            cache.invalidate(name)

        assert cache.stats().stale == 2
        assert cache.peek_stale("a") is None
        assert cache.peek_stale("c") == "c"
