"""Request and response models for the pricing API."""

from datetime import date
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

TripType = Literal["arrival", "departure", "round-trip", "hotel-to-hotel"]


class RateBase(BaseModel):
    """Fields shared by rate create and update payloads."""
    from_location_id: Optional[int] = Field(None, ge=1, description="Location override origin")
    to_location_id: Optional[int] = Field(None, ge=1, description="Location override destination")
    available: Optional[bool] = True
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None

    @model_validator(mode="after")
    def check_window(self):
        if self.valid_from and self.valid_to and self.valid_to < self.valid_from:
            raise ValueError("valid_to must be on or after valid_from")
        return self


class RateCreate(RateBase):
    service_type_id: int = Field(..., ge=1)
    vehicle_type_id: int = Field(..., ge=1)
    from_zone_id: int = Field(..., ge=1)
    to_zone_id: int = Field(..., ge=1)
    cost_vehicle_one_way: Decimal = Field(..., ge=0)
    total_one_way: Decimal = Field(..., ge=0)
    cost_vehicle_round_trip: Decimal = Field(..., ge=0)
    total_round_trip: Decimal = Field(..., ge=0)
    num_vehicles: int = Field(1, ge=1)


class RateUpdate(RateBase):
    """Partial update; only fields sent by the client are applied."""
    service_type_id: Optional[int] = Field(None, ge=1)
    vehicle_type_id: Optional[int] = Field(None, ge=1)
    from_zone_id: Optional[int] = Field(None, ge=1)
    to_zone_id: Optional[int] = Field(None, ge=1)
    cost_vehicle_one_way: Optional[Decimal] = Field(None, ge=0)
    total_one_way: Optional[Decimal] = Field(None, ge=0)
    cost_vehicle_round_trip: Optional[Decimal] = Field(None, ge=0)
    total_round_trip: Optional[Decimal] = Field(None, ge=0)
    num_vehicles: Optional[int] = Field(None, ge=1)
    available: Optional[bool] = None

    @field_validator(
        "service_type_id", "vehicle_type_id", "from_zone_id", "to_zone_id",
        "cost_vehicle_one_way", "total_one_way", "cost_vehicle_round_trip",
        "total_round_trip", "num_vehicles", "available",
    )
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class RateOut(BaseModel):
    id: int
    service_type_id: int
    vehicle_type_id: int
    from_zone_id: int
    to_zone_id: int
    from_location_id: Optional[int] = None
    to_location_id: Optional[int] = None
    cost_vehicle_one_way: Decimal
    total_one_way: Decimal
    cost_vehicle_round_trip: Decimal
    total_round_trip: Decimal
    num_vehicles: int
    available: bool
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None
    pricing_type: str

    @classmethod
    def from_record(cls, rate) -> "RateOut":
        return cls(pricing_type=rate.pricing_type, **rate.__dict__)


class Pagination(BaseModel):
    current_page: int
    per_page: int
    total: int
    last_page: int
    has_more_pages: bool


class RateListResponse(BaseModel):
    rates: List[RateOut]
    pagination: Pagination


class RateSetResponse(BaseModel):
    """Resolved rates for a route, zone pair or service type."""
    rates: List[RateOut]
    count: int
    on_date: date


class ExchangeRateResponse(BaseModel):
    from_currency: str
    to_currency: str
    exchange_rate: float


class QuoteRequest(BaseModel):
    service_type: str = Field(..., max_length=50, description="Service code or trip type alias")
    from_location_id: int = Field(..., ge=1)
    to_location_id: int = Field(..., ge=1)
    pax: int = Field(..., ge=1, le=50, description="Number of passengers")
    service_date: Optional[date] = None
    currency: str = Field("USD", min_length=3, max_length=3)

    @model_validator(mode="after")
    def check_endpoints(self):
        if self.from_location_id == self.to_location_id:
            raise ValueError("to_location_id must differ from from_location_id")
        return self


class QuotePrice(BaseModel):
    rate_id: int
    vehicle_type_id: int
    name: str
    code: str
    features: List[str] = []
    max_pax: int
    max_units: int
    num_vehicles: int
    cost_vehicle_one_way: Decimal
    total_one_way: Decimal
    cost_vehicle_round_trip: Optional[Decimal] = None
    total_round_trip: Optional[Decimal] = None
    pricing_type: str
    available: bool


class QuoteResponse(BaseModel):
    service_type: str
    service_type_tpv: str
    currency: str
    exchange_rate: float
    exchange_rate_exact: bool
    from_location_id: int
    to_location_id: int
    from_location: str
    to_location: str
    service_date: date
    pax: int
    prices: List[QuotePrice]


class BookingPriceCheck(BaseModel):
    """Price-relevant part of a booking submission."""
    total_price: Decimal = Field(..., ge=0)
    trip_type: TripType
    service_name: str = Field(..., max_length=100, description="Vehicle name or code")
    from_location_id: int = Field(..., ge=1)
    to_location_id: int = Field(..., ge=1)
    pickup_date: date


class BookingPriceCheckResponse(BaseModel):
    valid: bool
    message: str
    service_type_id: Optional[int] = None
    vehicle_type_id: Optional[int] = None
    rate_id: Optional[int] = None
