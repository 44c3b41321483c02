"""Booking price consistency check.

Booking creation runs in two phases. ``validate()`` re-derives the route's
rates and compares them with the client's price; ``commit()`` persists the
booking only for a passing outcome. Nothing locks the rate rows between the
two calls, so a rate edited in between is not detected. ``checked_at`` and
``rate_id`` on the outcome are where a version check would hook in.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, TypeVar
import logging

from transferfare.exceptions import PriceMismatchError
from transferfare.services.rate_resolver import RateResolver
from transferfare.services.rate_store import (
    TRIP_TYPE_SERVICE_NAMES,
    RateRecord,
    RateStore,
    ServiceTypeRecord,
    VehicleTypeRecord,
)
from transferfare.services.validity import DateLike, as_date

logger = logging.getLogger(__name__)

T = TypeVar("T")

ROUND_TRIP = "round-trip"
MISMATCH_MESSAGE = "Price does not match available rates"
NO_RATES_MESSAGE = "No rates available for this route and date"


@dataclass(frozen=True)
class ValidationOutcome:
    valid: bool
    message: str
    service_type: Optional[ServiceTypeRecord] = None
    vehicle_type: Optional[VehicleTypeRecord] = None
    rate: Optional[RateRecord] = None
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def rate_id(self) -> Optional[int]:
        return self.rate.id if self.rate is not None else None


def fare_for_trip(rate: RateRecord, trip_type: str) -> Decimal:
    """Round trips are checked against total_round_trip, everything else one way."""
    return rate.total_round_trip if trip_type == ROUND_TRIP else rate.total_one_way


class PriceConsistencyValidator:
    """
    Accepts a submitted price when any resolved rate satisfies
    ``fare <= submitted + tolerance``.

    The tolerance is an absolute amount in the base currency. A submitted
    price above the real fare always passes; one below it passes only within
    the tolerance. Rates with a zero or missing fare for the trip never match.
    """

    def __init__(self, resolver: RateResolver, store: RateStore, tolerance: Decimal = Decimal("5")):
        self.resolver = resolver
        self.store = store
        self.tolerance = Decimal(tolerance)

    def check_price(
        self,
        submitted_price,
        trip_type: str,
        service_type_id: int,
        from_location_id: int,
        to_location_id: int,
        on: DateLike = None,
    ) -> ValidationOutcome:
        """Compare a submitted price against the route's resolved rates."""
        submitted = Decimal(str(submitted_price))
        rates = self.resolver.find_for_route(service_type_id, from_location_id, to_location_id, on)
        if not rates:
            return ValidationOutcome(False, NO_RATES_MESSAGE)

        for rate in rates:
            fare = fare_for_trip(rate, trip_type)
            if fare and fare <= submitted + self.tolerance:
                return ValidationOutcome(True, "Price matches available rates", rate=rate)

        logger.warning(
            "Rejected booking price %s for %s on service type %s, route %s -> %s",
            submitted, trip_type, service_type_id, from_location_id, to_location_id,
        )
        return ValidationOutcome(False, MISMATCH_MESSAGE)

    def validate(
        self,
        submitted_price,
        trip_type: str,
        service_name: str,
        from_location_id: int,
        to_location_id: int,
        pickup: DateLike = None,
    ) -> ValidationOutcome:
        """
        Phase one of booking creation.

        Resolves the service type from the trip type and the vehicle type from
        the free-form service name, then checks the price on the pickup date.
        Never raises for a business failure; the outcome carries the message.
        """
        vehicle_type = self.store.find_vehicle_type_by_name(service_name)
        if vehicle_type is None:
            return ValidationOutcome(False, f"Invalid vehicle type: {service_name}")

        service_type_name = TRIP_TYPE_SERVICE_NAMES.get(trip_type)
        if service_type_name is None:
            return ValidationOutcome(False, f"Invalid trip type: {trip_type}", vehicle_type=vehicle_type)

        service_type = self.store.get_service_type_by_name(service_type_name)
        if service_type is None:
            available = ", ".join(self.store.service_type_names())
            return ValidationOutcome(
                False,
                f"Service type not found: {service_type_name} (available: {available})",
                vehicle_type=vehicle_type,
            )

        day: date = as_date(pickup)
        logger.info(
            "Validating rates for service %s, trip type %s, service type %s",
            service_name, trip_type, service_type.name,
        )
        outcome = self.check_price(
            submitted_price, trip_type, service_type.id, from_location_id, to_location_id, day,
        )
        return ValidationOutcome(
            valid=outcome.valid,
            message=outcome.message,
            service_type=service_type,
            vehicle_type=vehicle_type,
            rate=outcome.rate,
            checked_at=outcome.checked_at,
        )

    def commit(self, outcome: ValidationOutcome, persist: Callable[[ValidationOutcome], T]) -> T:
        """
        Phase two: hand a passing outcome to the booking writer.

        ``persist`` owns its own transaction. Rates are not re-read here.
        """
        if not outcome.valid:
            raise PriceMismatchError(outcome.message)
        return persist(outcome)
