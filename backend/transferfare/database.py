"""Database models and setup for the transfer pricing service."""

from contextlib import contextmanager
from decimal import Decimal
from typing import Iterator, Optional
import logging

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from transferfare.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


vehicle_type_service_feature = Table(
    "vehicle_type_service_feature",
    Base.metadata,
    Column("vehicle_type_id", Integer, ForeignKey("vehicle_types.id", ondelete="CASCADE"), primary_key=True),
    Column("service_feature_id", Integer, ForeignKey("service_features.id", ondelete="CASCADE"), primary_key=True),
)


class CityDB(Base):
    __tablename__ = "cities"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    state = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)


class ZoneDB(Base):
    """A named grouping of locations; the default pricing granularity."""
    __tablename__ = "zones"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    city_id = Column(Integer, ForeignKey("cities.id"), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    description = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Zone(id={self.id}, name={self.name})>"


class LocationDB(Base):
    """A concrete pickup/drop-off point (hotel, airport, ferry dock...)."""
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    address = Column(Text, nullable=True)
    zone_id = Column(Integer, ForeignKey("zones.id", ondelete="CASCADE"), nullable=False, index=True)
    # H=Hotel, B=Bus station, F=Ferry, R=Restaurant, A=Airport
    type = Column(String(10), nullable=False, default="H")
    active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Location(id={self.id}, name={self.name}, zone_id={self.zone_id})>"


class ServiceTypeDB(Base):
    __tablename__ = "service_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(20), nullable=False, unique=True)
    tpv_type = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    active = Column(Boolean, default=True, nullable=False)


class ServiceFeatureDB(Base):
    __tablename__ = "service_features"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    icon = Column(String(100), nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
    active = Column(Boolean, default=True, nullable=False)


class VehicleTypeDB(Base):
    __tablename__ = "vehicle_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(20), nullable=False)
    max_pax = Column(Integer, nullable=False)
    max_units = Column(Integer, nullable=False, default=1)
    travel_time = Column(String(50), nullable=True)
    active = Column(Boolean, default=True, nullable=False)

    features = relationship(
        ServiceFeatureDB,
        secondary=vehicle_type_service_feature,
        order_by=ServiceFeatureDB.sort_order,
    )


class RateDB(Base):
    """
    A priced fare row.

    Every rate is keyed by a zone pair; when both location ids are set the row
    is also a location-specific override of the zone default.
    """
    __tablename__ = "rates"

    id = Column(Integer, primary_key=True, index=True)
    service_type_id = Column(Integer, ForeignKey("service_types.id"), nullable=False, index=True)
    vehicle_type_id = Column(Integer, ForeignKey("vehicle_types.id"), nullable=False)
    from_zone_id = Column(Integer, ForeignKey("zones.id"), nullable=False)
    to_zone_id = Column(Integer, ForeignKey("zones.id"), nullable=False)
    from_location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    to_location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    cost_vehicle_one_way = Column(Numeric(10, 2), nullable=False)
    total_one_way = Column(Numeric(10, 2), nullable=False)
    cost_vehicle_round_trip = Column(Numeric(10, 2), nullable=False)
    total_round_trip = Column(Numeric(10, 2), nullable=False)
    num_vehicles = Column(Integer, nullable=False, default=1)
    available = Column(Boolean, nullable=False, default=True)
    valid_from = Column(Date, nullable=True)
    valid_to = Column(Date, nullable=True)

    def __repr__(self):
        return (
            f"<Rate(id={self.id}, service_type_id={self.service_type_id}, "
            f"zones={self.from_zone_id}->{self.to_zone_id}, total_one_way={self.total_one_way})>"
        )


class CurrencyExchangeDB(Base):
    """A directed currency pair; the reverse direction is derived on read."""
    __tablename__ = "currency_exchanges"

    id = Column(Integer, primary_key=True, index=True)
    from_currency = Column(String(3), nullable=False)
    to_currency = Column(String(3), nullable=False)
    exchange_rate = Column(Numeric(10, 6), nullable=False)

    __table_args__ = (
        UniqueConstraint('from_currency', 'to_currency', name='_currency_pair_uc'),
    )

    def __repr__(self):
        return f"<CurrencyExchange({self.from_currency}->{self.to_currency}={self.exchange_rate})>"


DEFAULT_SERVICE_TYPES = [
    ("Round Trip", "RT", "service_airport", "Airport to hotel and hotel to airport service"),
    ("One Way", "OW", "service_airport", "One way service from airport to hotel or hotel to airport"),
    ("Hotel to Hotel", "HTH", "service_hotel_hotel", "Service between hotels or locations"),
]


class DatabaseManager:
    """Manager class for database connections and seeding."""

    def __init__(self, database_url: Optional[str] = None):
        """Initialize database connection."""
        self.database_url = database_url or settings.DATABASE_URL

        engine_kwargs = {}
        if "sqlite" in self.database_url:
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if self.database_url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every session sees an empty database
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(self.database_url, **engine_kwargs)

        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

        Base.metadata.create_all(bind=self.engine)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Session that commits on success and rolls back on any error."""
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_default_data(self):
        """Seed service types and the base exchange pair when missing."""
        session = self.get_session()
        try:
            if session.query(ServiceTypeDB).count() == 0:
                for name, code, tpv_type, description in DEFAULT_SERVICE_TYPES:
                    session.add(ServiceTypeDB(
                        name=name,
                        code=code,
                        tpv_type=tpv_type,
                        description=description,
                    ))
                session.commit()
                logger.info("Initialized %d default service types", len(DEFAULT_SERVICE_TYPES))

            if session.query(CurrencyExchangeDB).count() == 0:
                session.add(CurrencyExchangeDB(
                    from_currency="USD",
                    to_currency="MXN",
                    exchange_rate=Decimal("20.000000"),
                ))
                session.commit()
                logger.info("Initialized default USD->MXN exchange rate")
        finally:
            session.close()


# Singleton instance
_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """Get singleton database manager instance."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
        _db_manager.init_default_data()
    return _db_manager
