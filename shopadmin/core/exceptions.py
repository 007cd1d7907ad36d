"""
Shop Admin Exception Hierarchy

Structured exception classes for the inventory subsystem. All exceptions
include code, message, and details for audit trail and debugging.

Exception Hierarchy:
    ShopAdminError
    ├── InventoryError
    │   ├── AddressingError
    │   ├── NotFoundError
    │   │   ├── ProductNotFoundError
    │   │   ├── VariantNotFoundError
    │   │   │   └── AmbiguousVariantError
    │   │   └── ReservationNotFoundError
    │   ├── InsufficientStockError
    │   ├── TransactionAbortedError
    │   ├── ReservationStateError
    │   │   └── ReservationExpiredError
    │   ├── ReservationsDisabledError
    │   └── ValidationError
    └── CacheUnavailableError
"""
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class ShopAdminError(Exception):
    """
    Base exception for all shop admin custom errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        severity: P0-P3 severity level
    """

    default_code: str = "SHOPADMIN_ERROR"
    default_severity: str = "P2"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# INVENTORY ERRORS
# =============================================================================

class InventoryError(ShopAdminError):
    """Base exception for inventory-related errors."""
    default_code = "INVENTORY_ERROR"
    default_severity = "P1"


class AddressingError(InventoryError):
    """No usable variant key could be resolved from the call arguments."""
    default_code = "VARIANT_ADDRESSING_FAILED"
    default_severity = "P2"

    def __init__(
        self,
        message: str,
        product_id: Optional[str] = None,
        variant_id: Optional[str] = None,
        label: Optional[str] = None,
        label_mode: Optional[bool] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "product_id": product_id,
            "variant_id": variant_id,
            "label": label,
            "label_mode": label_mode,
        })
        super().__init__(message, details=details, **kwargs)


class NotFoundError(InventoryError):
    """Product, variant or reservation does not exist."""
    default_code = "NOT_FOUND"
    default_severity = "P2"


class ProductNotFoundError(NotFoundError):
    default_code = "PRODUCT_NOT_FOUND"

    def __init__(self, message: str, product_id: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["product_id"] = product_id
        super().__init__(message, details=details, **kwargs)


class VariantNotFoundError(NotFoundError):
    default_code = "VARIANT_NOT_FOUND"

    def __init__(
        self,
        message: str,
        product_id: Optional[str] = None,
        match_field: Optional[str] = None,
        match_value: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "product_id": product_id,
            "match_field": match_field,
            "match_value": match_value,
        })
        super().__init__(message, details=details, **kwargs)


class AmbiguousVariantError(VariantNotFoundError):
    """More than one variant matched a single key. Data-integrity failure."""
    default_code = "VARIANT_AMBIGUOUS"
    default_severity = "P1"

    def __init__(self, message: str, match_count: Optional[int] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["match_count"] = match_count
        super().__init__(message, details=details, **kwargs)


class ReservationNotFoundError(NotFoundError):
    default_code = "RESERVATION_NOT_FOUND"

    def __init__(self, message: str, reservation_id: Optional[int] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["reservation_id"] = reservation_id
        super().__init__(message, details=details, **kwargs)


class InsufficientStockError(InventoryError):
    """Requested quantity exceeds available stock."""
    default_code = "INSUFFICIENT_STOCK"
    default_severity = "P3"

    def __init__(
        self,
        message: str,
        product_id: Optional[str] = None,
        requested_qty: Optional[int] = None,
        available_qty: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "product_id": product_id,
            "requested_qty": requested_qty,
            "available_qty": available_qty,
        })
        self.available_qty = available_qty
        super().__init__(message, details=details, **kwargs)


class TransactionAbortedError(InventoryError):
    """The store rejected or rolled back a reservation transaction."""
    default_code = "TRANSACTION_ABORTED"
    default_severity = "P1"


class ReservationStateError(InventoryError):
    """Transition not allowed from the reservation's current status."""
    default_code = "RESERVATION_INVALID_STATE"
    default_severity = "P2"

    def __init__(
        self,
        message: str,
        reservation_id: Optional[int] = None,
        status: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "reservation_id": reservation_id,
            "status": status,
        })
        super().__init__(message, details=details, **kwargs)


class ReservationExpiredError(ReservationStateError):
    default_code = "RESERVATION_EXPIRED"


class ReservationsDisabledError(InventoryError):
    """Reservation ledger is not enabled in this deployment."""
    default_code = "RESERVATIONS_DISABLED"
    default_severity = "P3"


class ValidationError(InventoryError):
    """Invalid adjustment, quantity or TTL."""
    default_code = "INVENTORY_VALIDATION_FAILED"
    default_severity = "P3"

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["field"] = field
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# INFRASTRUCTURE ERRORS
# =============================================================================

class CacheUnavailableError(ShopAdminError):
    """Cache backend unreachable or returned an error. Recovered locally."""
    default_code = "CACHE_UNAVAILABLE"
    default_severity = "P2"

    def __init__(self, message: str, operation: Optional[str] = None, key: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details.update({
            "operation": operation,
            "key": key,
        })
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# HTTP STATUS MAPPING (used by the API error handler)
# =============================================================================

EXCEPTION_STATUS_CODES = {
    AddressingError: 400,
    ValidationError: 400,
    NotFoundError: 404,
    ReservationsDisabledError: 404,
    InsufficientStockError: 409,
    ReservationStateError: 409,
    TransactionAbortedError: 503,
    CacheUnavailableError: 503,
}


def status_code_for(exc: ShopAdminError) -> int:
    """Resolve the HTTP status for an exception, walking its MRO."""
    for cls in type(exc).__mro__:
        if cls in EXCEPTION_STATUS_CODES:
            return EXCEPTION_STATUS_CODES[cls]
    return 500
