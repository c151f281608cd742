"""
Custom exception classes
Every error raised by the services maps to a status code and a stable error code
"""

from fastapi import HTTPException, status
from typing import Any, Dict, Optional

class StorefrontException(HTTPException):
    """Base exception class for the storefront application"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
        details: Optional[Any] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.details = details

class BadRequestException(StorefrontException):
    """400 Bad Request"""

    def __init__(self, detail: str, error_code: str = "BAD_REQUEST", details: Optional[Any] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code,
            details=details
        )

class UnauthorizedException(StorefrontException):
    """401 Unauthorized"""

    def __init__(self, detail: str = "Unauthorized", error_code: str = "UNAUTHORIZED"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code=error_code,
            headers={"WWW-Authenticate": "Bearer"}
        )

class ForbiddenException(StorefrontException):
    """403 Forbidden"""

    def __init__(self, detail: str = "Forbidden", error_code: str = "FORBIDDEN"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code=error_code
        )

class NotFoundException(StorefrontException):
    """404 Not Found"""

    def __init__(self, detail: str = "Not found", error_code: str = "NOT_FOUND"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code=error_code
        )

class ConflictException(StorefrontException):
    """409 Conflict"""

    def __init__(self, detail: str, error_code: str = "CONFLICT"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code
        )

class ValidationException(StorefrontException):
    """422 Unprocessable Entity"""

    def __init__(self, detail: str, error_code: str = "VALIDATION_ERROR"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code
        )

class InternalServerException(StorefrontException):
    """500 Internal Server Error"""

    def __init__(
        self,
        detail: str = "Internal server error",
        error_code: str = "INTERNAL_ERROR"
    ):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code=error_code
        )

class ServiceUnavailableException(StorefrontException):
    """503 Service Unavailable"""

    def __init__(
        self,
        detail: str = "Service temporarily unavailable",
        error_code: str = "SERVICE_UNAVAILABLE"
    ):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            error_code=error_code
        )

# Business logic exceptions
class EmptyCartException(NotFoundException):
    """Checkout attempted with no cart or no items"""

    def __init__(self, detail: str = "Cart is empty"):
        super().__init__(detail=detail, error_code="CART_EMPTY")

class InsufficientStockException(BadRequestException):
    """Variant stock insufficient"""

    def __init__(self, product_name: str, available: int, variant_name: Optional[str] = None):
        label = f"{product_name} ({variant_name})" if variant_name else product_name
        super().__init__(
            detail=f"Insufficient stock for {label}. Only {available} available.",
            error_code="INSUFFICIENT_STOCK",
            details={"product": product_name, "variant": variant_name, "available": available}
        )
        self.product_name = product_name
        self.variant_name = variant_name
        self.available = available

class InvalidStateException(BadRequestException):
    """Requested status transition is not allowed"""

    def __init__(self, detail: str, error_code: str = "INVALID_STATE"):
        super().__init__(detail=detail, error_code=error_code)

class OrderNotCancellableException(InvalidStateException):
    """Order cannot be cancelled"""

    def __init__(self, detail: str = "Order cannot be cancelled in current status"):
        super().__init__(detail=detail, error_code="ORDER_NOT_CANCELLABLE")

class InvalidPaymentException(BadRequestException):
    """Payment validation failed"""

    def __init__(self, detail: str):
        super().__init__(
            detail=detail,
            error_code="INVALID_PAYMENT"
        )

class DuplicateResourceException(ConflictException):
    """Resource already exists"""

    def __init__(self, resource: str, field: str, value: str):
        super().__init__(
            detail=f"{resource} with {field} '{value}' already exists",
            error_code="DUPLICATE_RESOURCE"
        )

class OrderNumberConflictException(ConflictException):
    """Could not allocate a unique order number"""

    def __init__(self, detail: str = "Could not allocate an order number, please retry"):
        super().__init__(detail=detail, error_code="ORDER_NUMBER_CONFLICT")

class StockConflictException(InsufficientStockException):
    """Stock was taken by a concurrent checkout after the pre-check passed"""

    def __init__(self, product_name: str, available: int, variant_name: Optional[str] = None):
        super().__init__(product_name, available, variant_name)
        self.status_code = status.HTTP_409_CONFLICT
        self.error_code = "STOCK_CONFLICT"
        self.detail = f"Stock for {product_name} changed during checkout. Only {available} available."
