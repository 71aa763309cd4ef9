"""
Exception taxonomy shared by services and routes.

Every error carries a machine-readable `code`, a human-readable `message`,
the HTTP status the API layer should answer with, and optional `details`
the client can use to self-correct (e.g. the allowed next statuses).
"""
from typing import Dict, Iterable, Optional


class ShopError(Exception):
    code = "SHOP_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict:
        body = {"message": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


# --- taxonomy roots ---


class ValidationError(ShopError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(ShopError):
    code = "NOT_FOUND"
    status_code = 404


class AuthenticationRequired(ShopError):
    code = "AUTH_REQUIRED"
    status_code = 401


class AccessDenied(ShopError):
    code = "FORBIDDEN"
    status_code = 403


class ConflictError(ShopError):
    code = "CONFLICT"
    status_code = 409


class StateError(ShopError):
    code = "INVALID_STATE"
    status_code = 400


class ExternalServiceError(ShopError):
    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502


# --- pricing / catalogue ---


class InvalidProduct(ValidationError):
    code = "INVALID_PRODUCT"


class InvalidPricing(ValidationError):
    code = "INVALID_PRICING"


class PriceOutOfRange(ValidationError):
    code = "PRICE_OUT_OF_RANGE"


class PriceMismatch(ValidationError):
    code = "PRICE_MISMATCH"


class ProductNotFound(NotFoundError):
    code = "PRODUCT_NOT_FOUND"


class VariantNotFound(NotFoundError):
    code = "VARIANT_NOT_FOUND"
    # a stale or wrong selection is something the client fixes, not a missing URL
    status_code = 400


class ProductInactive(StateError):
    code = "PRODUCT_INACTIVE"


class VariantInactive(StateError):
    code = "VARIANT_INACTIVE"


# --- cart ---


class InvalidQuantity(ValidationError):
    code = "INVALID_QUANTITY"


class QuantityLimitExceeded(ValidationError):
    code = "QUANTITY_LIMIT_EXCEEDED"


class CartNotFound(NotFoundError):
    code = "CART_NOT_FOUND"


class ItemNotFound(NotFoundError):
    code = "ITEM_NOT_FOUND"


# --- orders ---


class OrderNotFound(NotFoundError):
    code = "ORDER_NOT_FOUND"


class IncompleteOrderData(ValidationError):
    code = "INCOMPLETE_ORDER_DATA"


class InvalidStatusChange(StateError):
    code = "INVALID_STATUS_CHANGE"

    def __init__(self, current: str, attempted: str, allowed: Iterable[str]):
        allowed = list(allowed)
        super().__init__(
            f'Status change from "{current}" to "{attempted}" is not allowed. '
            f"Allowed: {', '.join(allowed) or 'none'}",
            details={"current": current, "attempted": attempted, "allowed": allowed},
        )
        self.current = current
        self.attempted = attempted
        self.allowed = allowed


class StaleStatusTransition(ConflictError):
    code = "STALE_STATUS_TRANSITION"


class OrderAlreadyExists(ConflictError):
    code = "ORDER_ALREADY_EXISTS"

    def __init__(self, message: str, order=None, details: Optional[Dict] = None):
        super().__init__(message, details)
        self.order = order


class PaymentIntentMismatch(ConflictError):
    code = "PAYMENT_INTENT_MISMATCH"
    status_code = 400


class PaymentAmountMismatch(ConflictError):
    code = "PAYMENT_AMOUNT_MISMATCH"


class OrderAccessDenied(AccessDenied):
    code = "UNAUTHORIZED_ORDER_ACCESS"


class InvoiceNotAvailable(StateError):
    code = "INVOICE_NOT_AVAILABLE"


# --- payment gateway / notifications ---


class PaymentGatewayError(ExternalServiceError):
    code = "PAYMENT_GATEWAY_ERROR"


class PaymentRequiresAction(ExternalServiceError):
    code = "REQUIRES_ACTION"
    status_code = 402


class PaymentProcessing(ExternalServiceError):
    code = "PAYMENT_PROCESSING"
    status_code = 202


class PaymentCanceled(ExternalServiceError):
    code = "PAYMENT_CANCELED"
    status_code = 400


class PaymentFailed(ExternalServiceError):
    code = "PAYMENT_FAILED"
    status_code = 400


class WebhookSignatureInvalid(ValidationError):
    code = "INVALID_WEBHOOK_SIGNATURE"
