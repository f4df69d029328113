"""Error taxonomy for the storefront services.

Services raise these; the application translates them into the JSON error
envelope ``{"message": ..., "error": <kind>, "details": {...}}``.
"""
from typing import Any, Dict, Optional


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    kind = "STOREFRONT_ERROR"
    status = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message, "error": self.kind}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(StorefrontError):
    """Raised when a request body or query fails validation."""

    kind = "VALIDATION_ERROR"

    def __init__(self, errors: Optional[list] = None, message: str = "Validation failed"):
        super().__init__(message, {"errors": errors} if errors else None)
        self.errors = errors or []


class ProductUnavailable(StorefrontError):
    """Raised when an ordered product is missing or inactive."""

    kind = "PRODUCT_UNAVAILABLE"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(
            f"Product {product_id} not found or inactive",
            {"product": product_id},
        )


class InsufficientStock(StorefrontError):
    """Raised when a size entry cannot cover the requested quantity."""

    kind = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: int, size: str, requested: int, available: int, name: Optional[str] = None):
        self.product_id = product_id
        self.size = size
        self.requested = requested
        self.available = available
        label = name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label} in size {size}",
            {"product": product_id, "size": size, "requested": requested, "available": available},
        )


class InvalidTransition(StorefrontError):
    """Raised when an order cannot move to the requested status."""

    kind = "INVALID_TRANSITION"

    def __init__(self, order_id: int, status: str, target: str):
        self.order_id = order_id
        self.current_status = status
        self.target = target
        super().__init__(
            f"Order cannot be {target} from status {status}",
            {"order": order_id, "status": status},
        )


TransitionError = InvalidTransition


class BadRequest(StorefrontError):
    """A well-formed request the current state rejects."""

    kind = "BAD_REQUEST"

    def __init__(self, message: str, kind: Optional[str] = None):
        if kind:
            self.kind = kind
        super().__init__(message)


class Unauthorized(StorefrontError):
    kind = "UNAUTHORIZED"
    status = 401

    def __init__(self, message: str = "Authentication required", kind: Optional[str] = None):
        if kind:
            self.kind = kind
        super().__init__(message)


class Forbidden(StorefrontError):
    kind = "FORBIDDEN"
    status = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class NotFound(StorefrontError):
    kind = "NOT_FOUND"
    status = 404

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found", {"id": identifier})


class Conflict(StorefrontError):
    kind = "CONFLICT"
    status = 409

    def __init__(self, message: str, kind: Optional[str] = None):
        if kind:
            self.kind = kind
        super().__init__(message)


class StoreUnavailable(StorefrontError):
    """Raised when the backing store fails; never recoverable by the caller."""

    kind = "STORE_UNAVAILABLE"
    status = 500

    def __init__(self, message: str = "Storage temporarily unavailable"):
        super().__init__(message)
