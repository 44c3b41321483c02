"""
Rate resolution for routes and zone pairs.

A route between two locations is priced by the location-specific rows for
exactly that location pair when any are valid on the requested date. Those
rows win outright: vehicle types without an override are not filled in from
the zone defaults. Only when no override is valid does the route fall back to
the rows for the endpoints' zone pair.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Tuple
import json

from transferfare.cache import RateCache
from transferfare.services.rate_store import RateRecord, RateStore
from transferfare.services.validity import DateLike, as_date, is_valid_on


@dataclass(frozen=True)
class RouteRates:
    """Resolved rate set, tagged with the tier it came from."""
    rates: Tuple[RateRecord, ...] = ()
    kind = "empty"

    def __bool__(self) -> bool:
        return bool(self.rates)

    def __len__(self) -> int:
        return len(self.rates)

    def __iter__(self):
        return iter(self.rates)

    def to_list(self) -> List[RateRecord]:
        return list(self.rates)


class LocationOverride(RouteRates):
    kind = "location"


class ZoneDefault(RouteRates):
    kind = "zone"


class EmptyRoute(RouteRates):
    kind = "empty"


class ServiceTypeRates(RouteRates):
    kind = "service_type"


_KINDS = {cls.kind: cls for cls in (LocationOverride, ZoneDefault, EmptyRoute, ServiceTypeRates)}


class RouteRatesCodec:
    """Serializes RouteRates for the shared cache."""

    def dumps(self, value: RouteRates) -> str:
        return json.dumps({
            "kind": value.kind,
            "rates": [rate.to_dict() for rate in value.rates],
        })

    def loads(self, raw) -> RouteRates:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        payload: Dict[str, Any] = json.loads(raw)
        cls = _KINDS[payload["kind"]]
        return cls(tuple(RateRecord.from_dict(item) for item in payload["rates"]))


def _valid(rates: List[RateRecord], day: date) -> Tuple[RateRecord, ...]:
    return tuple(rate for rate in rates if is_valid_on(rate, day))


class RateResolver:
    """Override-priority rate lookup with validity filtering and caching."""

    def __init__(self, store: RateStore, cache: Optional[RateCache] = None):
        self.store = store
        self.cache = cache

    def _cached(self, namespace: str, key: str, compute):
        if self.cache is None:
            return compute()
        return self.cache.get_or_compute(namespace, key, compute)

    def resolve_route(
        self,
        service_type_id: int,
        from_location_id: int,
        to_location_id: int,
        on: DateLike = None,
    ) -> RouteRates:
        day = as_date(on)
        key = f"{service_type_id}:{from_location_id}:{to_location_id}:{day.isoformat()}"
        return self._cached(
            "route",
            key,
            lambda: self._compute_route(service_type_id, from_location_id, to_location_id, day),
        )

    def _compute_route(self, service_type_id: int, from_location_id: int, to_location_id: int, day: date) -> RouteRates:
        from_location = self.store.get_location(from_location_id)
        to_location = self.store.get_location(to_location_id)
        if from_location is None or to_location is None:
            return EmptyRoute()

        overrides = _valid(
            self.store.location_rates(service_type_id, from_location.id, to_location.id),
            day,
        )
        if overrides:
            return LocationOverride(overrides)

        defaults = _valid(
            self.store.zone_rates(service_type_id, from_location.zone_id, to_location.zone_id),
            day,
        )
        return ZoneDefault(defaults) if defaults else EmptyRoute()

    def resolve_zones(
        self,
        service_type_id: int,
        from_zone_id: int,
        to_zone_id: int,
        on: DateLike = None,
    ) -> RouteRates:
        """Zone-pair lookup without the location-override step."""
        day = as_date(on)
        key = f"{service_type_id}:{from_zone_id}:{to_zone_id}:{day.isoformat()}"
        return self._cached(
            "zone",
            key,
            lambda: self._compute_zones(service_type_id, from_zone_id, to_zone_id, day),
        )

    def _compute_zones(self, service_type_id: int, from_zone_id: int, to_zone_id: int, day: date) -> RouteRates:
        rates = _valid(self.store.zone_rates(service_type_id, from_zone_id, to_zone_id), day)
        return ZoneDefault(rates) if rates else EmptyRoute()

    def resolve_service_type(self, service_type_id: int, on: DateLike = None) -> RouteRates:
        day = as_date(on)
        key = f"{service_type_id}:{day.isoformat()}"
        return self._cached(
            "service_type",
            key,
            lambda: ServiceTypeRates(_valid(self.store.service_type_rates(service_type_id), day)),
        )

    # Public list-returning forms

    def find_for_route(self, service_type_id: int, from_location_id: int, to_location_id: int,
                       on: DateLike = None) -> List[RateRecord]:
        return self.resolve_route(service_type_id, from_location_id, to_location_id, on).to_list()

    def find_for_zones(self, service_type_id: int, from_zone_id: int, to_zone_id: int,
                       on: DateLike = None) -> List[RateRecord]:
        return self.resolve_zones(service_type_id, from_zone_id, to_zone_id, on).to_list()

    def get_by_service_type(self, service_type_id: int, on: DateLike = None) -> List[RateRecord]:
        return self.resolve_service_type(service_type_id, on).to_list()
