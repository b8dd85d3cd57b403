"""
Tests - ResultCache: TTL, capacity, single-flight, background refresh,
periodic sweep and export/import.
"""

import asyncio
import json

import pytest

from config import CacheConfig
from utils.cache import ResultCache, make_cache_key


@pytest.fixture
def cache(clock):
    return ResultCache(CacheConfig(max_size=3, default_ttl_s=60, refresh_threshold=0.8), clock=clock)


class TestKeys:
    def test_key_is_order_independent(self):
        a = make_cache_key("role-impact", start="2023-01-01", roles=["a", "b"])
        b = make_cache_key("role-impact", roles=["a", "b"], start="2023-01-01")
        assert a == b
        assert a.startswith("role-impact:")

    def test_config_rejects_bad_values(self):
        with pytest.raises(ValueError):
            CacheConfig(max_size=0)
        with pytest.raises(ValueError):
            CacheConfig(refresh_threshold=1.5)


class TestBasicOperations:
    def test_set_and_get(self, cache):
        cache.set("k", {"v": 1})
        assert cache.get("k") == {"v": 1}
        assert cache.has("k")
        assert "k" in cache

    def test_entry_expires_after_ttl(self, cache, clock):
        cache.set("k", "v", ttl=0.1)
        clock.advance(0.15)

        assert cache.get("k") is None
        assert not cache.has("k")
        assert len(cache) == 0

    def test_non_positive_ttl_is_rejected(self, cache):
        with pytest.raises(ValueError):
            cache.set("k", "v", ttl=0)
        with pytest.raises(ValueError):
            cache.set("k", "v", ttl=-5)

    def test_namespace_ttl(self, clock):
        c = ResultCache(CacheConfig(default_ttl_s=60, ttl_by_namespace={"insights": 5}), clock=clock)
        assert c.ttl_for("insights") == 5
        assert c.ttl_for("unknown") == 60

    def test_capacity_evicts_oldest(self, cache, clock):
        for key in ("a", "b", "c"):
            cache.set(key, key)
            clock.advance(1)
        cache.set("d", "d")

        assert len(cache) == 3
        assert not cache.has("a")
        assert cache.has("d")

    def test_overwrite_at_capacity_does_not_evict(self, cache, clock):
        for key in ("a", "b", "c"):
            cache.set(key, key)
            clock.advance(1)
        cache.set("a", "again")

        assert len(cache) == 3
        assert cache.get("a") == "again"

    def test_delete_and_clear(self, cache):
        cache.set_many([("a", 1, None), ("b", 2, 10), ("c", 3, None)])
        assert cache.get_many(["a", "b", "x"]) == {"a": 1, "b": 2, "x": None}
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        assert cache.delete_many(["b", "zzz"]) == 1
        cache.clear()
        assert len(cache) == 0

    def test_invalidate_pattern(self, cache):
        cache.set("role-impact:roles:[\"a\"]", 1)
        cache.set("role-impact:roles:[\"b\"]", 2)
        cache.set("insights:roles:[\"a\"]", 3)

        assert cache.invalidate_pattern(r"^role-impact:") == 2
        assert len(cache) == 1

    def test_entry_state_transitions(self, cache, clock):
        cache.set("k", "v", ttl=10)
        assert cache.entry_state("k") == "fresh"
        clock.advance(8.5)
        assert cache.entry_state("k") == "stale"
        clock.advance(2)
        assert cache.entry_state("k") == "expired"
        assert cache.entry_state("missing") is None

    def test_stats_and_hit_rate(self, cache, clock):
        cache.set("k", "v")
        cache.get("k")
        cache.get("missing")
        clock.advance(5)
        stats = cache.stats()

        assert stats.size == 1
        assert stats.max_size == 3
        assert stats.hit_rate == pytest.approx(0.5)
        assert stats.entries[0]["key"] == "k"
        assert stats.entries[0]["age"] == pytest.approx(5)
        assert stats.entries[0]["expires_in"] == pytest.approx(55)

    def test_sweep_removes_expired_entries(self, cache, clock):
        cache.set("short", 1, ttl=1)
        cache.set("long", 2, ttl=100)
        clock.advance(2)

        assert cache.sweep() == 1
        assert len(cache) == 1


class TestGetOrCompute:
    @pytest.mark.asyncio
    async def test_computes_once_then_hits(self, cache):
        calls = []

        async def factory():
            calls.append(1)
            return "value"

        assert await cache.get_or_compute("k", factory) == "value"
        assert await cache.get_or_compute("k", factory) == "value"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_sync_factory(self, cache):
        assert await cache.get_or_compute("k", lambda: 42) == 42
        assert cache.get("k") == 42

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_call(self, cache):
        calls = []

        async def factory():
            calls.append(1)
            await asyncio.sleep(0.01)
            return "shared"

        results = await asyncio.gather(*(cache.get_or_compute("k", factory) for _ in range(5)))

        assert results == ["shared"] * 5
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_factory_error_propagates_and_is_not_cached(self, cache):
        async def failing():
            raise RuntimeError("upstream down")

        with pytest.raises(RuntimeError):
            await cache.get_or_compute("k", failing)
        assert not cache.has("k")

        assert await cache.get_or_compute("k", lambda: "recovered") == "recovered"

    @pytest.mark.asyncio
    async def test_concurrent_waiters_all_see_the_error(self, cache):
        async def failing():
            await asyncio.sleep(0.01)
            raise RuntimeError("boom")

        results = await asyncio.gather(
            *(cache.get_or_compute("k", failing) for _ in range(3)), return_exceptions=True
        )
        assert all(isinstance(r, RuntimeError) for r in results)

    @pytest.mark.asyncio
    async def test_waiter_survives_cancelled_leader(self, cache):
        started = asyncio.Event()

        async def slow():
            started.set()
            await asyncio.sleep(10)
            return "leader"

        async def quick():
            return "waiter"

        leader = asyncio.ensure_future(cache.get_or_compute("k", slow))
        await started.wait()
        waiter = asyncio.ensure_future(cache.get_or_compute("k", quick))
        await asyncio.sleep(0)

        leader.cancel()
        with pytest.raises(asyncio.CancelledError):
            await leader

        assert await waiter == "waiter"
        assert cache.get("k") == "waiter"

    @pytest.mark.asyncio
    async def test_expired_entry_is_recomputed(self, cache, clock):
        await cache.get_or_compute("k", lambda: "first", ttl=1)
        clock.advance(2)
        assert await cache.get_or_compute("k", lambda: "second", ttl=1) == "second"


class TestRefreshIfNeeded:
    @pytest.mark.asyncio
    async def test_absent_key_returns_none(self, cache):
        calls = []
        assert await cache.refresh_if_needed("k", lambda: calls.append(1)) is None
        await cache.join_refreshes()
        assert calls == []

    @pytest.mark.asyncio
    async def test_fresh_entry_is_not_refreshed(self, cache, clock):
        calls = []
        cache.set("k", "old", ttl=10)
        clock.advance(5)

        assert await cache.refresh_if_needed("k", lambda: calls.append(1)) == "old"
        await cache.join_refreshes()
        assert calls == []

    @pytest.mark.asyncio
    async def test_stale_entry_is_served_then_replaced(self, cache, clock):
        cache.set("k", "old", ttl=10)
        clock.advance(9)

        async def factory():
            return "new"

        assert await cache.refresh_if_needed("k", factory) == "old"
        await cache.join_refreshes()

        assert cache.get("k") == "new"
        assert cache.entry_state("k") == "fresh"

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_stale_value(self, cache, clock):
        cache.set("k", "old", ttl=10)
        clock.advance(9)

        async def failing():
            raise RuntimeError("refresh failed")

        assert await cache.refresh_if_needed("k", failing) == "old"
        await cache.join_refreshes()

        assert cache.get("k") == "old"

    @pytest.mark.asyncio
    async def test_one_refresh_per_key(self, cache, clock):
        cache.set("k", "old", ttl=10)
        clock.advance(9)
        calls = []

        async def factory():
            calls.append(1)
            await asyncio.sleep(0.01)
            return "new"

        await cache.refresh_if_needed("k", factory)
        await cache.refresh_if_needed("k", factory)
        await cache.join_refreshes()

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_refresh_does_not_resurrect_deleted_key(self, cache, clock):
        cache.set("k", "old", ttl=10)
        clock.advance(9)

        async def factory():
            await asyncio.sleep(0.01)
            return "new"

        await cache.refresh_if_needed("k", factory)
        cache.delete("k")
        await cache.join_refreshes()

        assert not cache.has("k")


class TestSweepLifecycle:
    @pytest.mark.asyncio
    async def test_start_sweeps_periodically_and_stop_ends_it(self, clock):
        c = ResultCache(CacheConfig(sweep_interval_s=0.01), clock=clock)
        c.set("k", "v", ttl=1)
        clock.advance(2)

        await c.start()
        await c.start()
        assert c.running
        await asyncio.sleep(0.05)
        assert len(c) == 0

        await c.stop()
        assert not c.running

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self, cache):
        await cache.stop()
        assert not cache.running


class TestExportImport:
    def test_round_trip_skips_expired_entries(self, cache, clock):
        cache.set("long", {"score": 1.5}, ttl=100)
        cache.set("short", [1, 2], ttl=10)
        payload = cache.export_state()

        clock.advance(20)
        restored = ResultCache(cache.config, clock=clock)
        assert restored.import_state(payload) is True

        assert restored.get("long") == {"score": 1.5}
        assert not restored.has("short")

    def test_export_format(self, cache, clock):
        cache.set("k", "v", ttl=30)
        parsed = json.loads(cache.export_state())

        assert parsed["version"] == "1.0"
        entry = parsed["entries"][0]
        assert entry["key"] == "k"
        assert entry["data"] == "v"
        assert entry["expiresAt"] - entry["createdAt"] == pytest.approx(30)

    def test_import_replaces_existing_contents(self, cache, clock):
        other = ResultCache(cache.config, clock=clock)
        other.set("new", 1)
        cache.set("old", 1)

        assert cache.import_state(other.export_state()) is True
        assert cache.has("new")
        assert not cache.has("old")

    @pytest.mark.parametrize(
        "payload",
        [
            json.dumps({"version": "2.0", "timestamp": 0, "entries": []}),
            json.dumps({"version": "1.0", "timestamp": 0}),
            json.dumps({"version": "1.0", "timestamp": 0, "entries": [{"key": "x"}]}),
            json.dumps([1, 2, 3]),
            "{not json",
        ],
    )
    def test_bad_payload_is_rejected_without_changes(self, cache, payload):
        cache.set("keep", "me")

        assert cache.import_state(payload) is False
        assert cache.get("keep") == "me"
