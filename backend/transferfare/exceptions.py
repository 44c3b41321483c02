"""
Custom exceptions and error handlers for consistent error responses.

Every pricing failure that reaches a client is an AppException subclass
carrying its HTTP status; the handler below renders them uniformly.
"""

from typing import Any, Dict

from fastapi import Request, status
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when a referenced row does not exist."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class NoRatesAvailableError(AppException):
    """Raised by quoting when a route resolves to no usable rates."""

    def __init__(self, message: str = "No rates available for this route", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_NO_RATES_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details=details
        )


class RateValidationError(AppException):
    """Raised when a rate write breaks a data invariant."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_RATE_INVALID_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class PriceMismatchError(AppException):
    """Raised when a booking is committed against a failed price check."""

    def __init__(self, message: str = "Price does not match available rates", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PRICE_MISMATCH_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class ExchangeRateNotFoundError(AppException):
    """Raised in strict currency mode when no stored pair exists."""

    def __init__(self, from_currency: str, to_currency: str):
        super().__init__(
            message=f"No exchange rate configured for {from_currency} -> {to_currency}",
            error_code="ERR_FX_MISSING_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"from_currency": from_currency, "to_currency": to_currency}
        )


class UnsupportedCurrencyError(AppException):
    def __init__(self, currency: str, supported):
        super().__init__(
            message=f"Currency not supported. Only {', '.join(supported)} are allowed.",
            error_code="ERR_CURRENCY_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"currency": currency}
        )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        }
    )
