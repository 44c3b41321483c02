"""API endpoints for rate resolution, quoting and booking price checks."""

from datetime import date
from math import ceil
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from transferfare.models import (
    BookingPriceCheck,
    BookingPriceCheckResponse,
    ExchangeRateResponse,
    Pagination,
    QuoteRequest,
    QuoteResponse,
    RateCreate,
    RateListResponse,
    RateOut,
    RateSetResponse,
    RateUpdate,
)
from transferfare.services.pricing import PricingEngine, get_pricing_engine
from transferfare.services.quote import build_quote
from transferfare.services.validity import as_date

router = APIRouter(prefix="/api", tags=["Pricing"])


def get_engine() -> PricingEngine:
    """Dependency injection for the pricing engine."""
    return get_pricing_engine()


def _rate_set(rates, on: Optional[date]) -> RateSetResponse:
    return RateSetResponse(
        rates=[RateOut.from_record(rate) for rate in rates],
        count=len(rates),
        on_date=as_date(on),
    )


# Resolution lookups (declared before /rates/{rate_id} so they match first)

@router.get("/rates/route", response_model=RateSetResponse)
async def get_route_rates(
    service_type_id: int = Query(..., ge=1),
    from_location_id: int = Query(..., ge=1),
    to_location_id: int = Query(..., ge=1),
    on_date: Optional[date] = Query(None, alias="date"),
    engine: PricingEngine = Depends(get_engine),
) -> RateSetResponse:
    """
    Rates for a location-to-location route.

    Location-specific rates for the pair replace the zone defaults entirely
    when any are valid on the date.
    """
    rates = engine.find_for_route(service_type_id, from_location_id, to_location_id, on_date)
    return _rate_set(rates, on_date)


@router.get("/rates/zones", response_model=RateSetResponse)
async def get_zone_rates(
    service_type_id: int = Query(..., ge=1),
    from_zone_id: int = Query(..., ge=1),
    to_zone_id: int = Query(..., ge=1),
    on_date: Optional[date] = Query(None, alias="date"),
    engine: PricingEngine = Depends(get_engine),
) -> RateSetResponse:
    rates = engine.find_for_zones(service_type_id, from_zone_id, to_zone_id, on_date)
    return _rate_set(rates, on_date)


@router.get("/rates/service-type/{service_type_id}", response_model=RateSetResponse)
async def get_service_type_rates(
    service_type_id: int,
    on_date: Optional[date] = Query(None, alias="date"),
    engine: PricingEngine = Depends(get_engine),
) -> RateSetResponse:
    rates = engine.get_by_service_type(service_type_id, on_date)
    return _rate_set(rates, on_date)


# Rate administration

@router.get("/rates", response_model=RateListResponse)
async def list_rates(
    service_type_id: Optional[int] = None,
    vehicle_type_id: Optional[int] = None,
    from_zone_id: Optional[int] = None,
    to_zone_id: Optional[int] = None,
    from_location_id: Optional[int] = None,
    to_location_id: Optional[int] = None,
    available: Optional[bool] = None,
    rate_type: Optional[Literal["zone", "location"]] = None,
    valid_date: Optional[date] = None,
    sort_by: str = "id",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1),
    engine: PricingEngine = Depends(get_engine),
) -> RateListResponse:
    """Paginated rate listing; per_page is capped at 100."""
    filters = {
        "service_type_id": service_type_id,
        "vehicle_type_id": vehicle_type_id,
        "from_zone_id": from_zone_id,
        "to_zone_id": to_zone_id,
        "from_location_id": from_location_id,
        "to_location_id": to_location_id,
        "available": available,
        "rate_type": rate_type,
        "valid_date": valid_date,
    }
    per_page = min(per_page, 100)
    rates, total = engine.list_rates(filters, page, per_page, sort_by, sort_order)
    last_page = max(1, ceil(total / per_page))
    return RateListResponse(
        rates=[RateOut.from_record(rate) for rate in rates],
        pagination=Pagination(
            current_page=page,
            per_page=per_page,
            total=total,
            last_page=last_page,
            has_more_pages=page < last_page,
        ),
    )


@router.get("/rates/{rate_id}", response_model=RateOut)
async def show_rate(rate_id: int, engine: PricingEngine = Depends(get_engine)) -> RateOut:
    return RateOut.from_record(engine.get_rate(rate_id))


@router.post("/rates", response_model=RateOut, status_code=status.HTTP_201_CREATED)
async def create_rate(payload: RateCreate, engine: PricingEngine = Depends(get_engine)) -> RateOut:
    """
    Create a zone rate, or a location override when both location ids are given.

    Locations must belong to the zone named on the same side.
    """
    rate = engine.create_rate(payload.model_dump())
    return RateOut.from_record(rate)


@router.put("/rates/{rate_id}", response_model=RateOut)
async def update_rate(rate_id: int, payload: RateUpdate, engine: PricingEngine = Depends(get_engine)) -> RateOut:
    rate = engine.update_rate(rate_id, payload.model_dump(exclude_unset=True))
    return RateOut.from_record(rate)


@router.delete("/rates/{rate_id}")
async def delete_rate(rate_id: int, engine: PricingEngine = Depends(get_engine)):
    engine.delete_rate(rate_id)
    return {"success": True, "message": "Rate deleted successfully"}


# Currency, quotes, bookings

@router.get("/exchange-rate", response_model=ExchangeRateResponse)
async def get_exchange_rate(
    from_currency: str = Query(..., min_length=3, max_length=3),
    to_currency: str = Query(..., min_length=3, max_length=3),
    engine: PricingEngine = Depends(get_engine),
) -> ExchangeRateResponse:
    return ExchangeRateResponse(
        from_currency=from_currency.upper(),
        to_currency=to_currency.upper(),
        exchange_rate=engine.get_exchange_rate(from_currency, to_currency),
    )


@router.post("/quote", response_model=QuoteResponse)
async def get_quote(request: QuoteRequest, engine: PricingEngine = Depends(get_engine)) -> QuoteResponse:
    """
    Price every vehicle able to carry the party on the route.

    Returns 404 when the route has no rates or no vehicle is large enough.
    """
    return build_quote(
        engine,
        request.service_type,
        request.from_location_id,
        request.to_location_id,
        request.pax,
        request.service_date,
        request.currency,
    )


@router.post("/bookings/validate-price", response_model=BookingPriceCheckResponse)
async def validate_booking_price(
    request: BookingPriceCheck,
    engine: PricingEngine = Depends(get_engine),
):
    """
    First phase of booking creation: check the client's price.

    A rejected price is reported as 422 with the outcome message.
    """
    outcome = engine.validate_booking(
        request.total_price,
        request.trip_type,
        request.service_name,
        request.from_location_id,
        request.to_location_id,
        request.pickup_date,
    )
    body = BookingPriceCheckResponse(
        valid=outcome.valid,
        message=outcome.message,
        service_type_id=outcome.service_type.id if outcome.service_type else None,
        vehicle_type_id=outcome.vehicle_type.id if outcome.vehicle_type else None,
        rate_id=outcome.rate_id,
    )
    if not outcome.valid:
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=body.model_dump())
    return body


@router.get("/health")
async def health_check(engine: PricingEngine = Depends(get_engine)):
    """Health check endpoint including datastore and cache status."""
    db_status = "healthy"
    try:
        rate_count = engine.list_rates({}, per_page=1)[1]
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        rate_count = 0

    cache_stats = engine.cache.stats() if hasattr(engine.cache, "stats") else {}
    return {
        "status": "healthy",
        "service": "Transfer Fare Pricing",
        "datastore_status": db_status,
        "rate_count": rate_count,
        "cache": cache_stats,
    }
