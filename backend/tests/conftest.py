"""
Centralized Test Configuration.
"""

from decimal import Decimal
from fnmatch import fnmatchcase
from types import SimpleNamespace

import pytest
import redis
from fastapi.testclient import TestClient

from transferfare.cache import PriceCache
from transferfare.database import (
    CityDB,
    DatabaseManager,
    LocationDB,
    ServiceFeatureDB,
    ServiceTypeDB,
    VehicleTypeDB,
    ZoneDB,
)
from transferfare.main import app
from transferfare.api.endpoints import get_engine
from transferfare.services.pricing import PricingEngine
from transferfare.services.rate_resolver import RouteRatesCodec


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.expiry_ms = {}
        self._closed = False

    @staticmethod
    def _key(key):
        return key.decode() if isinstance(key, bytes) else key

    def ping(self):
        return not self._closed

    def get(self, key):
        value = self.store.get(self._key(key))
        if value is None:
            return None
        return str(value).encode() if not isinstance(value, bytes) else value

    def setex(self, key, ttl, value):
        key = self._key(key)
        self.store[key] = value.encode() if isinstance(value, str) else value
        self.expiry_ms[key] = int(ttl) * 1000
        return True

    def pttl(self, key):
        key = self._key(key)
        if key not in self.store:
            return -2
        return self.expiry_ms.get(key, -1)

    def incr(self, key):
        key = self._key(key)
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]

    def delete(self, key):
        self.expiry_ms.pop(self._key(key), None)
        return 1 if self.store.pop(self._key(key), None) is not None else 0

    def scan_iter(self, pattern):
        for key in list(self.store):
            if fnmatchcase(key, pattern):
                yield key.encode()

    def close(self):
        self._closed = True


class FlakyClearRedis(MockRedis):
    """Reads and writes work; INCR and SCAN fail while ``failing`` is set."""

    def __init__(self):
        super().__init__()
        self.failing = True

    def incr(self, key):
        if self.failing:
            raise redis.exceptions.ConnectionError("Connection reset by peer")
        return super().incr(key)

    def scan_iter(self, pattern):
        if self.failing:
            raise redis.exceptions.ResponseError("SCAN not permitted")
        return super().scan_iter(pattern)


class BrokenRedis:
    """Redis client whose server is gone."""

    def _fail(self, *args, **kwargs):
        raise redis.exceptions.ConnectionError("Connection refused")

    ping = get = setex = pttl = incr = delete = scan_iter = _fail

    def close(self):
        pass


@pytest.fixture
def db_manager(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'pricing_test.db'}")
    manager.init_default_data()
    yield manager
    manager.engine.dispose()


@pytest.fixture
def seeded(db_manager):
    """Miami test data: three zones, four locations, two vehicle types."""
    session = db_manager.get_session()
    try:
        city = CityDB(name="Miami", state="FL", country="US")
        session.add(city)
        session.flush()

        beach = ZoneDB(name="South Beach", city_id=city.id)
        airport_zone = ZoneDB(name="Airport", city_id=city.id)
        downtown = ZoneDB(name="Downtown", city_id=city.id)
        session.add_all([beach, airport_zone, downtown])
        session.flush()

        hotel_a = LocationDB(name="Hotel A", address="123 Ocean Dr", zone_id=beach.id, type="H")
        hotel_b = LocationDB(name="Hotel B", address="456 Collins Ave", zone_id=beach.id, type="H")
        airport = LocationDB(name="Miami Airport", address="2100 NW 42nd Ave", zone_id=airport_zone.id, type="A")
        hotel_c = LocationDB(name="Hotel C", address="1 Brickell Ave", zone_id=downtown.id, type="H")
        session.add_all([hotel_a, hotel_b, airport, hotel_c])

        wifi = ServiceFeatureDB(name="WiFi", icon="wifi", sort_order=1)
        sedan = VehicleTypeDB(name="Sedan", code="SD", max_pax=4, max_units=5)
        van = VehicleTypeDB(name="Standard Private Van", code="VAN", max_pax=10, max_units=3, features=[wifi])
        session.add_all([wifi, sedan, van])
        session.commit()

        codes = {row.code: row.id for row in session.query(ServiceTypeDB).all()}
        return SimpleNamespace(
            one_way=codes["OW"],
            round_trip=codes["RT"],
            hotel_to_hotel=codes["HTH"],
            beach=beach.id,
            airport_zone=airport_zone.id,
            downtown=downtown.id,
            hotel_a=hotel_a.id,
            hotel_b=hotel_b.id,
            airport=airport.id,
            hotel_c=hotel_c.id,
            sedan=sedan.id,
            van=van.id,
        )
    finally:
        session.close()


@pytest.fixture
def engine(db_manager):
    return PricingEngine(db_manager, cache=PriceCache(codec=RouteRatesCodec()))


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def redis_engine(db_manager, mock_redis):
    cache = PriceCache(redis_client=mock_redis, codec=RouteRatesCodec())
    return PricingEngine(db_manager, cache=cache)


@pytest.fixture
def make_rate(engine, seeded):
    """Create a rate through the engine; defaults to a one-way beach->airport sedan fare."""
    def _make(**overrides):
        data = {
            "service_type_id": seeded.one_way,
            "vehicle_type_id": seeded.sedan,
            "from_zone_id": seeded.beach,
            "to_zone_id": seeded.airport_zone,
            "cost_vehicle_one_way": Decimal("50.00"),
            "total_one_way": Decimal("60.00"),
            "cost_vehicle_round_trip": Decimal("90.00"),
            "total_round_trip": Decimal("110.00"),
            "num_vehicles": 1,
            "available": True,
        }
        data.update(overrides)
        return engine.create_rate(data)
    return _make


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()
