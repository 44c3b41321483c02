"""Currency conversion between stored exchange pairs."""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union
import logging

from transferfare.exceptions import ExchangeRateNotFoundError

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")


def round_money(amount: Union[Decimal, float, int, str]) -> Decimal:
    """Round to cents, half-up."""
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ConversionFactor:
    """A conversion factor plus whether it came from a stored pair."""
    factor: float
    was_exact: bool


class CurrencyConverter:
    """
    Resolves the factor to convert an amount from one currency to another.

    Lookup order: identical codes, the stored pair, the reciprocal of the
    reverse pair. When neither direction is stored the factor silently falls
    back to 1.0 (logged as a warning) unless ``strict`` is set.
    """

    def __init__(self, store, strict: bool = False):
        self.store = store
        self.strict = strict

    def rate(self, from_currency: str, to_currency: str) -> ConversionFactor:
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()

        if from_currency == to_currency:
            return ConversionFactor(1.0, True)

        stored: Optional[Decimal] = self.store.get_exchange_pair(from_currency, to_currency)
        if stored is not None:
            return ConversionFactor(float(stored), True)

        reverse: Optional[Decimal] = self.store.get_exchange_pair(to_currency, from_currency)
        if reverse is not None and reverse != 0:
            return ConversionFactor(1 / float(reverse), True)

        logger.warning(
            "No exchange rate stored for %s -> %s; falling back to 1.0",
            from_currency, to_currency,
        )
        return ConversionFactor(1.0, False)

    def get_exchange_rate(self, from_currency: str, to_currency: str, strict: Optional[bool] = None) -> float:
        """Bare factor, as the public API returns it."""
        result = self.rate(from_currency, to_currency)
        strict = self.strict if strict is None else strict
        if strict and not result.was_exact:
            raise ExchangeRateNotFoundError(from_currency.upper(), to_currency.upper())
        return result.factor

    def convert(self, amount: Optional[Decimal], factor: float) -> Optional[Decimal]:
        """Project a base-currency amount for display."""
        if amount is None:
            return None
        return round_money(Decimal(str(amount)) * Decimal(str(factor)))
