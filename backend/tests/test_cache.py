"""Tests for the rate cache."""

from datetime import date
from decimal import Decimal

import pytest

from transferfare import cache as cache_module
from transferfare.cache import DEFAULT_TTLS, GENERATION_KEY, PriceCache, RateCache
from transferfare.services.pricing import PricingEngine
from transferfare.services.rate_resolver import RouteRatesCodec

from conftest import BrokenRedis, FlakyClearRedis, MockRedis

DAY = date(2025, 6, 15)


class Counter:
    """compute() stand-in that counts its calls."""

    def __init__(self, value):
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.value


class TestPriceCache:
    """Test in-memory behaviour."""

    def setup_method(self):
        self.cache = PriceCache()

    def test_implements_protocol(self):
        assert isinstance(self.cache, RateCache)

    def test_default_ttls(self):
        assert self.cache.ttls == {"route": 1800, "zone": 1800, "service_type": 3600}
        assert DEFAULT_TTLS["service_type"] == 3600

    def test_init_overrides_ttls(self):
        self.cache.init({"route": 60})
        assert self.cache.ttls["route"] == 60
        assert self.cache.ttls["zone"] == 1800

    def test_unknown_namespace(self):
        with pytest.raises(ValueError):
            self.cache.init({"quotes": 60})
        with pytest.raises(ValueError):
            self.cache.get_or_compute("quotes", "k", lambda: 1)

    def test_hit_skips_compute(self):
        compute = Counter("rates")
        assert self.cache.get_or_compute("route", "1:2:3", compute) == "rates"
        assert self.cache.get_or_compute("route", "1:2:3", compute) == "rates"
        assert compute.calls == 1

    def test_namespaces_are_separate(self):
        self.cache.get_or_compute("route", "1:2:3", lambda: "route")
        assert self.cache.get_or_compute("zone", "1:2:3", lambda: "zone") == "zone"

    def test_entries_expire(self, monkeypatch):
        now = [1000.0]
        monkeypatch.setattr(cache_module.time, "monotonic", lambda: now[0])
        self.cache.init({"route": 60})
        compute = Counter("rates")

        self.cache.get_or_compute("route", "k", compute)
        now[0] += 59
        self.cache.get_or_compute("route", "k", compute)
        assert compute.calls == 1

        now[0] += 2
        self.cache.get_or_compute("route", "k", compute)
        assert compute.calls == 2

    def test_clear_all(self):
        for namespace in ("route", "zone", "service_type"):
            self.cache.get_or_compute(namespace, "k", lambda: "old")
        self.cache.clear()
        for namespace in ("route", "zone", "service_type"):
            assert self.cache.get_or_compute(namespace, "k", lambda: "new") == "new"
        assert self.cache.stats()["local_generation"] == 1

    def test_clear_one_namespace(self):
        self.cache.get_or_compute("route", "k", lambda: "old")
        self.cache.get_or_compute("zone", "k", lambda: "old")
        self.cache.clear("route")
        assert self.cache.get_or_compute("route", "k", lambda: "new") == "new"
        assert self.cache.get_or_compute("zone", "k", lambda: "new") == "old"

    def test_result_computed_across_a_clear_is_not_stored(self):
        """A write that lands mid-compute must not leave the stale result behind."""
        def compute_then_write():
            self.cache.clear()
            return "stale"

        assert self.cache.get_or_compute("route", "k", compute_then_write) == "stale"
        assert self.cache.get_or_compute("route", "k", lambda: "fresh") == "fresh"

    def test_expired_entries_are_swept(self, monkeypatch):
        """Keys that are never read again do not pile up."""
        now = [1000.0]
        monkeypatch.setattr(cache_module.time, "monotonic", lambda: now[0])
        self.cache.init({"route": 60})

        for day in range(1000):
            self.cache.get_or_compute("route", f"1:2:3:{day}", lambda: [])
        now[0] += 10000
        self.cache.get_or_compute("route", "1:2:3:fresh", lambda: [])

        assert self.cache.stats()["memory_entries"] == 1

    def test_memory_level_is_bounded(self):
        cache = PriceCache(max_entries=10)
        for n in range(25):
            cache.get_or_compute("route", f"k{n}", lambda: n)

        assert cache.stats()["memory_entries"] == 10
        newest = Counter("recomputed")
        oldest = Counter("recomputed")
        assert cache.get_or_compute("route", "k24", newest) == 24
        assert cache.get_or_compute("route", "k0", oldest) == "recomputed"
        assert (newest.calls, oldest.calls) == (0, 1)

    def test_teardown(self):
        self.cache.get_or_compute("route", "k", lambda: "old")
        self.cache.teardown()
        assert self.cache.stats()["memory_entries"] == 0


class TestRedisBacking:
    """Test the shared Redis level."""

    def test_values_are_shared_between_processes(self):
        redis_client = MockRedis()
        first = PriceCache(redis_client=redis_client)
        second = PriceCache(redis_client=redis_client)

        first.get_or_compute("zone", "1:2:3", lambda: {"rates": [1, 2]})
        compute = Counter({"rates": []})
        assert second.get_or_compute("zone", "1:2:3", compute) == {"rates": [1, 2]}
        assert compute.calls == 0

    def test_clear_in_one_process_invalidates_the_other(self):
        redis_client = MockRedis()
        first = PriceCache(redis_client=redis_client)
        second = PriceCache(redis_client=redis_client)

        first.get_or_compute("route", "k", lambda: "old")
        second.get_or_compute("route", "k", lambda: "unused")
        second.clear()

        assert first.get_or_compute("route", "k", lambda: "new") == "new"
        assert redis_client.get(GENERATION_KEY) == b"1"

    def test_clear_removes_stored_keys(self):
        redis_client = MockRedis()
        cache = PriceCache(redis_client=redis_client)
        cache.get_or_compute("route", "k", lambda: "old")
        cache.get_or_compute("zone", "k", lambda: "old")

        cache.clear("route")
        assert not any(":route:" in key for key in redis_client.store)
        assert any(":zone:" in key for key in redis_client.store)

        cache.clear()
        assert list(redis_client.store) == [GENERATION_KEY]

    def test_ttl_is_passed_to_redis(self, monkeypatch):
        redis_client = MockRedis()
        calls = []
        original = redis_client.setex
        monkeypatch.setattr(redis_client, "setex", lambda key, ttl, value: calls.append(ttl) or original(key, ttl, value))

        cache = PriceCache(redis_client=redis_client, ttls={"service_type": 7200})
        cache.get_or_compute("service_type", "1", lambda: [])
        cache.get_or_compute("route", "1", lambda: [])
        assert calls == [7200, 1800]

    def test_local_copy_expires_with_redis_entry(self, monkeypatch):
        now = [1000.0]
        monkeypatch.setattr(cache_module.time, "monotonic", lambda: now[0])
        redis_client = MockRedis()
        writer = PriceCache(redis_client=redis_client)
        reader = PriceCache(redis_client=redis_client)

        writer.get_or_compute("route", "k", lambda: "old")
        redis_client.expiry_ms["rates:0:route:k"] = 5000
        assert reader.get_or_compute("route", "k", lambda: "unused") == "old"

        now[0] += 6
        redis_client.delete("rates:0:route:k")
        assert reader.get_or_compute("route", "k", lambda: "new") == "new"

    def test_stats_report_backend(self):
        assert PriceCache(redis_client=MockRedis()).stats()["backend"] == "redis"
        assert PriceCache().stats()["backend"] == "memory"


class TestBackendFailure:
    """A broken cache never breaks pricing."""

    def test_broken_redis_falls_back_to_compute(self, caplog):
        cache = PriceCache(redis_client=BrokenRedis())
        compute = Counter("rates")
        assert cache.get_or_compute("route", "k", compute) == "rates"
        assert cache.get_or_compute("route", "k", compute) == "rates"
        assert compute.calls == 2
        assert "Rate cache unavailable" in caplog.text

    def test_clear_with_broken_redis_does_not_raise(self):
        cache = PriceCache(redis_client=BrokenRedis())
        cache.clear()
        cache.teardown()

    def test_unreachable_url_uses_memory(self):
        cache = PriceCache(redis_url="redis://127.0.0.1:1/0")
        assert cache.redis_client is None
        compute = Counter("rates")
        cache.get_or_compute("route", "k", compute)
        cache.get_or_compute("route", "k", compute)
        assert compute.calls == 1

    def test_engine_with_broken_cache_still_prices(self, db_manager, make_rate, seeded):
        rate = make_rate()
        engine = PricingEngine(db_manager, cache=PriceCache(redis_client=BrokenRedis()))
        rates = engine.find_for_route(seeded.one_way, seeded.hotel_a, seeded.airport, DAY)
        assert [r.id for r in rates] == [rate.id]

    def test_failed_clear_stops_serving_redis(self, db_manager, make_rate, seeded):
        """Redis answers reads but cannot be cleared; the write must still be visible."""
        rate = make_rate(total_one_way=Decimal("60.00"))
        flaky_engine = PricingEngine(
            db_manager,
            cache=PriceCache(redis_client=FlakyClearRedis(), codec=RouteRatesCodec()),
        )

        before = flaky_engine.find_for_route(seeded.one_way, seeded.hotel_a, seeded.airport, DAY)
        assert before[0].total_one_way == Decimal("60.00")

        flaky_engine.update_rate(rate.id, {"total_one_way": Decimal("99.00")})
        after = flaky_engine.find_for_route(seeded.one_way, seeded.hotel_a, seeded.airport, DAY)
        assert after[0].total_one_way == Decimal("99.00")
        assert flaky_engine.cache.stats()["redis_degraded"] is True

    def test_redis_trusted_again_once_generation_advances(self):
        redis_client = FlakyClearRedis()
        cache = PriceCache(redis_client=redis_client)
        cache.get_or_compute("route", "k", lambda: "old")

        cache.clear()
        assert cache.stats()["redis_degraded"] is True
        assert cache.get_or_compute("route", "k", lambda: "new") == "new"
        assert cache.get_or_compute("route", "k", lambda: "unused") == "new"

        redis_client.failing = False
        assert cache.get_or_compute("route", "k", lambda: "newer") == "newer"
        assert cache.stats()["redis_degraded"] is False
        assert redis_client.get(GENERATION_KEY) == b"1"

        other_process = PriceCache(redis_client=redis_client)
        assert other_process.get_or_compute("route", "k", lambda: "unused") == "newer"


class TestCoherence:
    """Every rate write is visible to the next lookup."""

    def test_create_after_cached_lookup(self, engine, make_rate, seeded):
        assert engine.find_for_route(seeded.one_way, seeded.hotel_a, seeded.airport, DAY) == []
        rate = make_rate()
        assert [r.id for r in engine.find_for_route(seeded.one_way, seeded.hotel_a, seeded.airport, DAY)] == [rate.id]

    def test_update_after_cached_lookup(self, engine, make_rate, seeded):
        rate = make_rate()
        engine.find_for_route(seeded.one_way, seeded.hotel_a, seeded.airport, DAY)

        engine.update_rate(rate.id, {"total_one_way": Decimal("70.00")})
        rates = engine.find_for_route(seeded.one_way, seeded.hotel_a, seeded.airport, DAY)
        assert rates[0].total_one_way == Decimal("70.00")

    def test_delete_after_cached_lookup(self, engine, make_rate, seeded):
        rate = make_rate()
        engine.get_by_service_type(seeded.one_way, DAY)
        engine.find_for_zones(seeded.one_way, seeded.beach, seeded.airport_zone, DAY)

        engine.delete_rate(rate.id)
        assert engine.get_by_service_type(seeded.one_way, DAY) == []
        assert engine.find_for_zones(seeded.one_way, seeded.beach, seeded.airport_zone, DAY) == []

    def test_new_override_replaces_cached_zone_default(self, redis_engine, seeded):
        zone = redis_engine.create_rate({
            "service_type_id": seeded.one_way,
            "vehicle_type_id": seeded.sedan,
            "from_zone_id": seeded.beach,
            "to_zone_id": seeded.airport_zone,
            "cost_vehicle_one_way": "50.00",
            "total_one_way": "60.00",
            "cost_vehicle_round_trip": "90.00",
            "total_round_trip": "110.00",
        })
        assert redis_engine.resolver.resolve_route(seeded.one_way, seeded.hotel_a, seeded.airport, DAY).kind == "zone"

        override = redis_engine.create_rate({
            "service_type_id": seeded.one_way,
            "vehicle_type_id": seeded.sedan,
            "from_zone_id": seeded.beach,
            "to_zone_id": seeded.airport_zone,
            "from_location_id": seeded.hotel_a,
            "to_location_id": seeded.airport,
            "cost_vehicle_one_way": "40.00",
            "total_one_way": "45.00",
            "cost_vehicle_round_trip": "80.00",
            "total_round_trip": "95.00",
        })
        result = redis_engine.resolver.resolve_route(seeded.one_way, seeded.hotel_a, seeded.airport, DAY)
        assert result.kind == "location"
        assert [r.id for r in result] == [override.id]
        assert zone.id != override.id
