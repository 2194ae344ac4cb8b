"""
Butik Exception Hierarchy

Every failure a core operation can report carries an explicit ErrorKind,
a machine-readable code, a human-readable message and optional details.
Handlers map the kind to an HTTP status and the response envelope.

Exception Hierarchy:
    ButikError
    ├── NotFoundError
    ├── InvalidInputError
    │   ├── InvalidStatusError
    │   └── NoFieldsProvidedError
    ├── InsufficientStockError
    │   └── StockExceededError
    └── ConflictError
        └── AlreadyProcessedError
"""
import enum
from typing import Optional, Dict, Any


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    INSUFFICIENT_STOCK = "insufficient_stock"
    STOCK_EXCEEDED = "stock_exceeded"
    INVALID_STATUS = "invalid_status"
    NO_FIELDS_PROVIDED = "no_fields_provided"
    CONFLICT = "conflict"
    ALREADY_PROCESSED = "already_processed"


class ButikError(Exception):
    """
    Base exception for all Butik domain errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
    """

    kind: ErrorKind = ErrorKind.INVALID_INPUT
    default_code: str = "BUTIK_ERROR"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class NotFoundError(ButikError):
    """Referenced cart, order, product, user or item does not exist."""
    kind = ErrorKind.NOT_FOUND
    default_code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any = None, **kwargs):
        message = kwargs.pop("message", None) or f"{entity} not found"
        details = kwargs.pop("details", {})
        details.update({"entity": entity, "id": entity_id})
        super().__init__(message, details=details, **kwargs)


class InvalidInputError(ButikError):
    """Missing or malformed field, non-numeric quantity or price."""
    kind = ErrorKind.INVALID_INPUT
    default_code = "INVALID_INPUT"

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        super().__init__(message, details=details, **kwargs)


class InvalidStatusError(InvalidInputError):
    """Order status outside the enumerated set."""
    kind = ErrorKind.INVALID_STATUS
    default_code = "INVALID_STATUS"

    def __init__(self, status: Any, allowed=(), **kwargs):
        allowed = list(allowed)
        message = kwargs.pop("message", None) or (
            f"Invalid status {status!r}. Valid values: {', '.join(allowed)}"
        )
        details = kwargs.pop("details", {})
        details.update({"status": status, "allowed": allowed})
        super().__init__(message, field="status", details=details, **kwargs)


class NoFieldsProvidedError(InvalidInputError):
    """Partial update called with nothing to change."""
    kind = ErrorKind.NO_FIELDS_PROVIDED
    default_code = "NO_FIELDS_PROVIDED"

    def __init__(self, message: str = "At least one field must be provided for update", **kwargs):
        super().__init__(message, **kwargs)


class InsufficientStockError(ButikError):
    """Requested or reconciled quantity exceeds available stock."""
    kind = ErrorKind.INSUFFICIENT_STOCK
    default_code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(
        self,
        message: str,
        product_id: Optional[int] = None,
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
        super().__init__(message, details=details, **kwargs)


class StockExceededError(InsufficientStockError):
    """Cart quantity would exceed the product's current stock."""
    kind = ErrorKind.STOCK_EXCEEDED
    default_code = "STOCK_EXCEEDED"
    status_code = 400


class ConflictError(ButikError):
    """Request conflicts with the current state of the resource."""
    kind = ErrorKind.CONFLICT
    default_code = "CONFLICT"
    status_code = 409


class AlreadyProcessedError(ConflictError):
    """The one-time side effect has already been applied."""
    kind = ErrorKind.ALREADY_PROCESSED
    default_code = "ALREADY_PROCESSED"
