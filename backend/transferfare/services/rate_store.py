"""Typed data access for rates, their endpoints and currency pairs."""

from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from sqlalchemy import func

from transferfare.database import (
    CurrencyExchangeDB,
    DatabaseManager,
    LocationDB,
    RateDB,
    ServiceTypeDB,
    VehicleTypeDB,
    ZoneDB,
)
from transferfare.exceptions import RateValidationError, ResourceNotFoundError
from transferfare.services.currency import round_money
from transferfare.services.validity import as_date, is_valid_on

logger = logging.getLogger(__name__)

MONEY_FIELDS = (
    "cost_vehicle_one_way",
    "total_one_way",
    "cost_vehicle_round_trip",
    "total_round_trip",
)

RATE_FIELDS = (
    "service_type_id",
    "vehicle_type_id",
    "from_zone_id",
    "to_zone_id",
    "from_location_id",
    "to_location_id",
) + MONEY_FIELDS + (
    "num_vehicles",
    "available",
    "valid_from",
    "valid_to",
)

SORTABLE_FIELDS = ("id", "total_one_way", "total_round_trip")
MAX_PER_PAGE = 100

# Trip types sent by booking clients, mapped to service type names
TRIP_TYPE_SERVICE_NAMES = {
    "arrival": "One Way",
    "departure": "One Way",
    "round-trip": "Round Trip",
    "hotel-to-hotel": "Hotel to Hotel",
}

# Free-form quote service names, mapped to service type codes
SERVICE_CODE_ALIASES = {
    "round-trip": "RT",
    "round trip": "RT",
    "roundtrip": "RT",
    "one-way": "OW",
    "one way": "OW",
    "oneway": "OW",
    "arrival": "OW",
    "departure": "OW",
    "hotel-to-hotel": "HTH",
    "hotel to hotel": "HTH",
    "hotel_to_hotel": "HTH",
}


@dataclass(frozen=True)
class ZoneRecord:
    id: int
    name: str
    city_id: Optional[int]


@dataclass(frozen=True)
class LocationRecord:
    id: int
    name: str
    zone_id: int
    type: str

    @property
    def is_airport(self) -> bool:
        return self.type == "A"


@dataclass(frozen=True)
class ServiceTypeRecord:
    id: int
    name: str
    code: str
    tpv_type: Optional[str]


@dataclass(frozen=True)
class VehicleTypeRecord:
    id: int
    name: str
    code: str
    max_pax: int
    max_units: int
    features: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RateRecord:
    """Immutable snapshot of a fare row, safe to cache and share."""
    id: int
    service_type_id: int
    vehicle_type_id: int
    from_zone_id: int
    to_zone_id: int
    from_location_id: Optional[int]
    to_location_id: Optional[int]
    cost_vehicle_one_way: Decimal
    total_one_way: Decimal
    cost_vehicle_round_trip: Decimal
    total_round_trip: Decimal
    num_vehicles: int
    available: bool
    valid_from: Optional[date]
    valid_to: Optional[date]

    @property
    def is_zone_based(self) -> bool:
        return self.from_zone_id is not None and self.to_zone_id is not None

    @property
    def is_location_specific(self) -> bool:
        return self.from_location_id is not None and self.to_location_id is not None

    @property
    def pricing_type(self) -> str:
        return "location" if self.is_location_specific else "zone"

    def is_valid_for_date(self, on=None) -> bool:
        return is_valid_on(self, on)

    def formatted_price(self, trip: str = "one_way") -> str:
        amount = self.total_round_trip if trip == "round_trip" else self.total_one_way
        return f"{round_money(amount):.2f}"

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation (decimals and dates as strings)."""
        data = asdict(self)
        for name in MONEY_FIELDS:
            data[name] = str(data[name])
        for name in ("valid_from", "valid_to"):
            if data[name] is not None:
                data[name] = data[name].isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RateRecord":
        values = dict(data)
        for name in MONEY_FIELDS:
            values[name] = Decimal(values[name])
        for name in ("valid_from", "valid_to"):
            if values.get(name) is not None:
                values[name] = date.fromisoformat(values[name])
        return cls(**values)

    @classmethod
    def from_row(cls, row: RateDB) -> "RateRecord":
        return cls(
            id=row.id,
            service_type_id=row.service_type_id,
            vehicle_type_id=row.vehicle_type_id,
            from_zone_id=row.from_zone_id,
            to_zone_id=row.to_zone_id,
            from_location_id=row.from_location_id,
            to_location_id=row.to_location_id,
            cost_vehicle_one_way=round_money(row.cost_vehicle_one_way),
            total_one_way=round_money(row.total_one_way),
            cost_vehicle_round_trip=round_money(row.cost_vehicle_round_trip),
            total_round_trip=round_money(row.total_round_trip),
            num_vehicles=row.num_vehicles,
            available=bool(row.available),
            valid_from=row.valid_from,
            valid_to=row.valid_to,
        )


class RateStore:
    """
    Repository over the pricing tables.

    Lookups by id return None for missing rows. Write operations validate
    foreign keys and the location-belongs-to-zone invariant before committing.
    Cache invalidation is not done here; see PricingEngine.
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    # Endpoint lookups

    def get_location(self, location_id: int) -> Optional[LocationRecord]:
        session = self.db.get_session()
        try:
            row = session.get(LocationDB, location_id)
            if row is None:
                return None
            return LocationRecord(id=row.id, name=row.name, zone_id=row.zone_id, type=row.type)
        finally:
            session.close()

    def get_zone(self, zone_id: int) -> Optional[ZoneRecord]:
        session = self.db.get_session()
        try:
            row = session.get(ZoneDB, zone_id)
            if row is None:
                return None
            return ZoneRecord(id=row.id, name=row.name, city_id=row.city_id)
        finally:
            session.close()

    def get_service_type(self, service_type_id: int) -> Optional[ServiceTypeRecord]:
        session = self.db.get_session()
        try:
            row = session.get(ServiceTypeDB, service_type_id)
            return self._service_type_record(row)
        finally:
            session.close()

    def get_service_type_by_code(self, code: str) -> Optional[ServiceTypeRecord]:
        session = self.db.get_session()
        try:
            row = session.query(ServiceTypeDB).filter_by(code=code).first()
            return self._service_type_record(row)
        finally:
            session.close()

    def get_service_type_by_name(self, name: str) -> Optional[ServiceTypeRecord]:
        session = self.db.get_session()
        try:
            row = session.query(ServiceTypeDB).filter_by(name=name).first()
            return self._service_type_record(row)
        finally:
            session.close()

    def find_service_type(self, service: str) -> Optional[ServiceTypeRecord]:
        """Resolve a quote's free-form service name via its code alias."""
        normalized = service.strip().lower()
        code = SERVICE_CODE_ALIASES.get(normalized, normalized.upper())
        return self.get_service_type_by_code(code)

    def service_type_names(self) -> List[str]:
        session = self.db.get_session()
        try:
            return [row.name for row in session.query(ServiceTypeDB).order_by(ServiceTypeDB.id)]
        finally:
            session.close()

    def get_vehicle_type(self, vehicle_type_id: int) -> Optional[VehicleTypeRecord]:
        return self.get_vehicle_types([vehicle_type_id]).get(vehicle_type_id)

    def get_vehicle_types(self, ids: Iterable[int]) -> Dict[int, VehicleTypeRecord]:
        ids = set(ids)
        if not ids:
            return {}
        session = self.db.get_session()
        try:
            rows = session.query(VehicleTypeDB).filter(VehicleTypeDB.id.in_(ids)).all()
            return {row.id: self._vehicle_type_record(row) for row in rows}
        finally:
            session.close()

    def find_vehicle_type_by_name(self, service_name: str) -> Optional[VehicleTypeRecord]:
        """Case-insensitive substring match on name, or exact code."""
        session = self.db.get_session()
        try:
            pattern = f"%{service_name.lower()}%"
            row = (
                session.query(VehicleTypeDB)
                .filter(
                    (func.lower(VehicleTypeDB.name).like(pattern))
                    | (VehicleTypeDB.code == service_name)
                )
                .order_by(VehicleTypeDB.id)
                .first()
            )
            return self._vehicle_type_record(row) if row is not None else None
        finally:
            session.close()

    # Rate candidate queries (validity filtering is the resolver's job)

    def location_rates(self, service_type_id: int, from_location_id: int, to_location_id: int) -> List[RateRecord]:
        return self._query_rates(
            service_type_id=service_type_id,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
        )

    def zone_rates(self, service_type_id: int, from_zone_id: int, to_zone_id: int) -> List[RateRecord]:
        return self._query_rates(
            service_type_id=service_type_id,
            from_zone_id=from_zone_id,
            to_zone_id=to_zone_id,
        )

    def service_type_rates(self, service_type_id: int) -> List[RateRecord]:
        return self._query_rates(service_type_id=service_type_id)

    def _query_rates(self, **filters) -> List[RateRecord]:
        session = self.db.get_session()
        try:
            rows = session.query(RateDB).filter_by(**filters).order_by(RateDB.id).all()
            return [RateRecord.from_row(row) for row in rows]
        finally:
            session.close()

    # Rate administration

    def get_rate(self, rate_id: int) -> Optional[RateRecord]:
        session = self.db.get_session()
        try:
            row = session.get(RateDB, rate_id)
            return RateRecord.from_row(row) if row is not None else None
        finally:
            session.close()

    def list_rates(
        self,
        filters: Optional[Dict[str, Any]] = None,
        page: int = 1,
        per_page: int = 15,
        sort_by: str = "id",
        sort_order: str = "desc",
    ) -> Tuple[List[RateRecord], int]:
        """Filtered, sorted, paginated rate listing. Returns (rates, total)."""
        filters = dict(filters or {})
        per_page = max(1, min(per_page, MAX_PER_PAGE))
        page = max(1, page)

        session = self.db.get_session()
        try:
            query = session.query(RateDB)
            for name in ("service_type_id", "vehicle_type_id", "from_zone_id", "to_zone_id",
                         "from_location_id", "to_location_id", "available"):
                if filters.get(name) is not None:
                    query = query.filter(getattr(RateDB, name) == filters[name])

            rate_type = filters.get("rate_type")
            if rate_type == "location":
                query = query.filter(
                    RateDB.from_location_id.isnot(None),
                    RateDB.to_location_id.isnot(None),
                )
            elif rate_type == "zone":
                query = query.filter(RateDB.from_zone_id.isnot(None), RateDB.to_zone_id.isnot(None))

            valid_date = filters.get("valid_date")
            if valid_date is not None:
                day = as_date(valid_date)
                query = query.filter(
                    RateDB.available == True,  # noqa: E712
                    (RateDB.valid_from.is_(None)) | (RateDB.valid_from <= day),
                    (RateDB.valid_to.is_(None)) | (RateDB.valid_to >= day),
                )

            column = getattr(RateDB, sort_by if sort_by in SORTABLE_FIELDS else "id")
            query = query.order_by(column.asc() if sort_order == "asc" else column.desc())

            total = query.count()
            rows = query.offset((page - 1) * per_page).limit(per_page).all()
            return [RateRecord.from_row(row) for row in rows], total
        finally:
            session.close()

    def create_rate(self, data: Dict[str, Any]) -> RateRecord:
        values = {name: data.get(name) for name in RATE_FIELDS}
        if values["num_vehicles"] is None:
            values["num_vehicles"] = 1
        if values["available"] is None:
            values["available"] = True

        with self.db.session_scope() as session:
            self._validate_rate(session, values)
            row = RateDB(**self._normalized(values))
            session.add(row)
            session.flush()
            record = RateRecord.from_row(row)

        logger.info("Created rate %s (%s)", record.id, record.pricing_type)
        return record

    def update_rate(self, rate_id: int, data: Dict[str, Any]) -> RateRecord:
        """Partial update: only keys present in ``data`` are written."""
        with self.db.session_scope() as session:
            row = session.get(RateDB, rate_id)
            if row is None:
                raise ResourceNotFoundError("Rate", rate_id)

            values = {name: getattr(row, name) for name in RATE_FIELDS}
            values.update({name: value for name, value in data.items() if name in RATE_FIELDS})
            self._validate_rate(session, values)

            for name, value in self._normalized(values).items():
                setattr(row, name, value)
            session.flush()
            record = RateRecord.from_row(row)

        logger.info("Updated rate %s", rate_id)
        return record

    def delete_rate(self, rate_id: int) -> None:
        with self.db.session_scope() as session:
            row = session.get(RateDB, rate_id)
            if row is None:
                raise ResourceNotFoundError("Rate", rate_id)
            session.delete(row)
        logger.info("Deleted rate %s", rate_id)

    def _validate_rate(self, session, values: Dict[str, Any]) -> None:
        for name, model, label in (
            ("service_type_id", ServiceTypeDB, "Service type"),
            ("vehicle_type_id", VehicleTypeDB, "Vehicle type"),
            ("from_zone_id", ZoneDB, "Zone"),
            ("to_zone_id", ZoneDB, "Zone"),
        ):
            if values.get(name) is None or session.get(model, values[name]) is None:
                raise ResourceNotFoundError(label, values.get(name))

        for side in ("from", "to"):
            location_id = values.get(f"{side}_location_id")
            if location_id is None:
                continue
            location = session.get(LocationDB, location_id)
            if location is None:
                raise ResourceNotFoundError("Location", location_id)
            if location.zone_id != values[f"{side}_zone_id"]:
                raise RateValidationError(
                    f"{side.capitalize()} location must belong to the specified {side} zone",
                    details={
                        f"{side}_location_id": location_id,
                        f"{side}_zone_id": values[f"{side}_zone_id"],
                    },
                )

        for name in MONEY_FIELDS:
            if values.get(name) is None:
                raise RateValidationError(f"{name} is required")

        valid_from, valid_to = values.get("valid_from"), values.get("valid_to")
        if valid_from is not None and valid_to is not None and as_date(valid_to) < as_date(valid_from):
            raise RateValidationError("valid_to must be on or after valid_from")

    @staticmethod
    def _normalized(values: Dict[str, Any]) -> Dict[str, Any]:
        values = dict(values)
        for name in MONEY_FIELDS:
            values[name] = round_money(values[name])
        for name in ("valid_from", "valid_to"):
            if values.get(name) is not None:
                values[name] = as_date(values[name])
        return values

    # Currency pairs

    def get_exchange_pair(self, from_currency: str, to_currency: str) -> Optional[Decimal]:
        session = self.db.get_session()
        try:
            row = session.query(CurrencyExchangeDB).filter_by(
                from_currency=from_currency,
                to_currency=to_currency
            ).first()
            return Decimal(row.exchange_rate) if row is not None else None
        finally:
            session.close()

    def set_exchange_rate(self, from_currency: str, to_currency: str, exchange_rate) -> Decimal:
        """Update or create a stored pair."""
        with self.db.session_scope() as session:
            row = session.query(CurrencyExchangeDB).filter_by(
                from_currency=from_currency,
                to_currency=to_currency
            ).first()
            if row is None:
                row = CurrencyExchangeDB(from_currency=from_currency, to_currency=to_currency)
                session.add(row)
            row.exchange_rate = Decimal(str(exchange_rate))
            return row.exchange_rate

    @staticmethod
    def _service_type_record(row) -> Optional[ServiceTypeRecord]:
        if row is None:
            return None
        return ServiceTypeRecord(id=row.id, name=row.name, code=row.code, tpv_type=row.tpv_type)

    @staticmethod
    def _vehicle_type_record(row: VehicleTypeDB) -> VehicleTypeRecord:
        return VehicleTypeRecord(
            id=row.id,
            name=row.name,
            code=row.code,
            max_pax=row.max_pax,
            max_units=row.max_units,
            features=tuple(feature.name for feature in row.features if feature.active),
        )
