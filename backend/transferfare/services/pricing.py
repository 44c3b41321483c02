"""Pricing engine: the operations booking and quote endpoints consume."""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
import logging

from transferfare.cache import PriceCache, RateCache
from transferfare.config import settings
from transferfare.database import DatabaseManager, get_db_manager
from transferfare.exceptions import ResourceNotFoundError
from transferfare.services.currency import CurrencyConverter
from transferfare.services.price_validator import PriceConsistencyValidator, ValidationOutcome
from transferfare.services.rate_resolver import RateResolver, RouteRatesCodec
from transferfare.services.rate_store import RateRecord, RateStore
from transferfare.services.validity import DateLike

logger = logging.getLogger(__name__)


class PricingEngine:
    """
    Wires store, cache, resolver, converter and validator together.

    Rate writes go through here so that each one is followed by an explicit
    full cache clear.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        cache: Optional[RateCache] = None,
        strict_currency: bool = False,
        tolerance: Decimal = Decimal("5"),
    ):
        self.store = RateStore(db_manager)
        self.cache = cache if cache is not None else PriceCache(codec=RouteRatesCodec())
        self.resolver = RateResolver(self.store, self.cache)
        self.converter = CurrencyConverter(self.store, strict=strict_currency)
        self.validator = PriceConsistencyValidator(self.resolver, self.store, tolerance)

    def _require_service_type(self, service_type_id: int) -> None:
        if self.store.get_service_type(service_type_id) is None:
            raise ResourceNotFoundError("Service type", service_type_id)

    # Reads

    def find_for_route(self, service_type_id: int, from_location_id: int, to_location_id: int,
                       on: DateLike = None) -> List[RateRecord]:
        self._require_service_type(service_type_id)
        for location_id in (from_location_id, to_location_id):
            if self.store.get_location(location_id) is None:
                raise ResourceNotFoundError("Location", location_id)
        return self.resolver.find_for_route(service_type_id, from_location_id, to_location_id, on)

    def find_for_zones(self, service_type_id: int, from_zone_id: int, to_zone_id: int,
                       on: DateLike = None) -> List[RateRecord]:
        self._require_service_type(service_type_id)
        for zone_id in (from_zone_id, to_zone_id):
            if self.store.get_zone(zone_id) is None:
                raise ResourceNotFoundError("Zone", zone_id)
        return self.resolver.find_for_zones(service_type_id, from_zone_id, to_zone_id, on)

    def get_by_service_type(self, service_type_id: int, on: DateLike = None) -> List[RateRecord]:
        self._require_service_type(service_type_id)
        return self.resolver.get_by_service_type(service_type_id, on)

    def get_exchange_rate(self, from_currency: str, to_currency: str) -> float:
        return self.converter.get_exchange_rate(from_currency, to_currency)

    def validate_booking_price(
        self,
        submitted_price,
        trip_type: str,
        service_type_id: int,
        from_location_id: int,
        to_location_id: int,
        on: DateLike = None,
    ) -> bool:
        return self.validator.check_price(
            submitted_price, trip_type, service_type_id, from_location_id, to_location_id, on,
        ).valid

    def validate_booking(self, submitted_price, trip_type: str, service_name: str,
                         from_location_id: int, to_location_id: int,
                         pickup: DateLike = None) -> ValidationOutcome:
        return self.validator.validate(
            submitted_price, trip_type, service_name, from_location_id, to_location_id, pickup,
        )

    # Rate administration

    def get_rate(self, rate_id: int) -> RateRecord:
        rate = self.store.get_rate(rate_id)
        if rate is None:
            raise ResourceNotFoundError("Rate", rate_id)
        return rate

    def list_rates(self, filters: Dict[str, Any], page: int = 1, per_page: int = 15,
                   sort_by: str = "id", sort_order: str = "desc") -> Tuple[List[RateRecord], int]:
        return self.store.list_rates(filters, page, per_page, sort_by, sort_order)

    def create_rate(self, data: Dict[str, Any]) -> RateRecord:
        rate = self.store.create_rate(data)
        self.invalidate()
        return rate

    def update_rate(self, rate_id: int, data: Dict[str, Any]) -> RateRecord:
        rate = self.store.update_rate(rate_id, data)
        self.invalidate()
        return rate

    def delete_rate(self, rate_id: int) -> None:
        self.store.delete_rate(rate_id)
        self.invalidate()

    def invalidate(self) -> None:
        """Drop every cached resolution after a rate write."""
        self.cache.clear()
        logger.info("Rate cache cleared after rate write")


# Singleton instance for the default engine
_default_engine: Optional[PricingEngine] = None


def get_pricing_engine() -> PricingEngine:
    """Get the default pricing engine instance (Singleton pattern)."""
    global _default_engine
    if _default_engine is None:
        cache = PriceCache(
            redis_url=settings.REDIS_URL,
            codec=RouteRatesCodec(),
            ttls=settings.cache_ttls(),
        )
        _default_engine = PricingEngine(
            get_db_manager(),
            cache=cache,
            strict_currency=settings.STRICT_CURRENCY,
            tolerance=settings.PRICE_TOLERANCE,
        )
    return _default_engine
