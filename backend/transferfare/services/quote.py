"""Quote building on top of the pricing engine."""

from datetime import date
from typing import List

from transferfare.config import settings
from transferfare.exceptions import (
    ExchangeRateNotFoundError,
    NoRatesAvailableError,
    ResourceNotFoundError,
    UnsupportedCurrencyError,
)
from transferfare.models import QuotePrice, QuoteResponse
from transferfare.services.pricing import PricingEngine
from transferfare.services.validity import DateLike, as_date

SERVICE_AIRPORT = "service_airport"
SERVICE_HOTEL_HOTEL = "service_hotel_hotel"


def build_quote(
    engine: PricingEngine,
    service_type: str,
    from_location_id: int,
    to_location_id: int,
    pax: int,
    on: DateLike = None,
    currency: str = "USD",
) -> QuoteResponse:
    """
    Price every vehicle that can carry ``pax`` on the route.

    Amounts are stored in the base currency and converted for display only.
    """
    currency = currency.upper()
    if not settings.is_supported_currency(currency):
        raise UnsupportedCurrencyError(currency, settings.SUPPORTED_CURRENCIES)

    service = engine.store.find_service_type(service_type)
    if service is None:
        raise ResourceNotFoundError("Service type", service_type)

    from_location = engine.store.get_location(from_location_id)
    to_location = engine.store.get_location(to_location_id)
    if from_location is None or to_location is None:
        missing = from_location_id if from_location is None else to_location_id
        raise ResourceNotFoundError("Location", missing)

    day: date = as_date(on)
    rates = engine.resolver.resolve_route(service.id, from_location.id, to_location.id, day)
    if not rates:
        raise NoRatesAvailableError()

    vehicles = engine.store.get_vehicle_types(rate.vehicle_type_id for rate in rates)
    available = [
        rate for rate in rates
        if rate.vehicle_type_id in vehicles and vehicles[rate.vehicle_type_id].max_pax >= pax
    ]
    if not available:
        raise NoRatesAvailableError("No vehicles available for the requested number of passengers")

    conversion = engine.converter.rate(settings.BASE_CURRENCY, currency)
    if engine.converter.strict and not conversion.was_exact:
        raise ExchangeRateNotFoundError(settings.BASE_CURRENCY, currency)
    factor = conversion.factor

    prices: List[QuotePrice] = []
    for rate in available:
        vehicle = vehicles[rate.vehicle_type_id]
        prices.append(QuotePrice(
            rate_id=rate.id,
            vehicle_type_id=vehicle.id,
            name=vehicle.name,
            code=vehicle.code,
            features=list(vehicle.features),
            max_pax=vehicle.max_pax,
            max_units=vehicle.max_units,
            num_vehicles=rate.num_vehicles,
            cost_vehicle_one_way=engine.converter.convert(rate.cost_vehicle_one_way, factor),
            total_one_way=engine.converter.convert(rate.total_one_way, factor),
            cost_vehicle_round_trip=engine.converter.convert(rate.cost_vehicle_round_trip, factor),
            total_round_trip=engine.converter.convert(rate.total_round_trip, factor),
            pricing_type=rate.pricing_type,
            available=rate.available,
        ))

    airport = from_location.is_airport or to_location.is_airport
    return QuoteResponse(
        service_type=service.code,
        service_type_tpv=SERVICE_AIRPORT if airport else SERVICE_HOTEL_HOTEL,
        currency=currency,
        exchange_rate=factor,
        exchange_rate_exact=conversion.was_exact,
        from_location_id=from_location.id,
        to_location_id=to_location.id,
        from_location=from_location.name.upper(),
        to_location=to_location.name.upper(),
        service_date=day,
        pax=pax,
        prices=prices,
    )
