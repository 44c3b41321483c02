"""Configuration for the transfer pricing service."""

from decimal import Decimal
from typing import Dict, List, Optional
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings."""

    # API Settings
    API_TITLE = "Transfer Fare Pricing"
    API_VERSION = "1.0.0"
    API_DESCRIPTION = (
        "Rate resolution and price quoting for airport and hotel transfers"
    )

    # Database Settings
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./transferfare.db")

    # Cache Settings (no REDIS_URL means in-process cache only)
    REDIS_URL: Optional[str] = os.getenv("REDIS_URL")
    ROUTE_CACHE_TTL = int(os.getenv("ROUTE_CACHE_TTL", "1800"))
    ZONE_CACHE_TTL = int(os.getenv("ZONE_CACHE_TTL", "1800"))
    SERVICE_TYPE_CACHE_TTL = int(os.getenv("SERVICE_TYPE_CACHE_TTL", "3600"))

    # CORS Settings
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ]

    # Pricing
    BASE_CURRENCY = "USD"
    SUPPORTED_CURRENCIES: List[str] = ["USD", "MXN"]
    PRICE_TOLERANCE = Decimal("5")
    STRICT_CURRENCY = _env_bool("STRICT_CURRENCY", False)

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def cache_ttls(cls) -> Dict[str, int]:
        """TTL in seconds for each cache namespace."""
        return {
            "route": cls.ROUTE_CACHE_TTL,
            "zone": cls.ZONE_CACHE_TTL,
            "service_type": cls.SERVICE_TYPE_CACHE_TTL,
        }

    @classmethod
    def is_supported_currency(cls, currency: str) -> bool:
        return currency.upper() in cls.SUPPORTED_CURRENCIES


settings = Settings()
