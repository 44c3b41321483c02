"""Services package for the transfer pricing system."""

from .pricing import (
    get_pricing_engine,
    PricingEngine,
)
from .rate_resolver import (
    RateResolver,
    RouteRates,
    LocationOverride,
    ZoneDefault,
    EmptyRoute,
)

__all__ = [
    'get_pricing_engine',
    'PricingEngine',
    'RateResolver',
    'RouteRates',
    'LocationOverride',
    'ZoneDefault',
    'EmptyRoute',
]
