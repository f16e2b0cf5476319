"""Domain errors for the order/payment core.

Each error knows its HTTP status and renders its own JSON envelope, so routes
can simply let them propagate to the handler registered in ``checkout.main``.

Status mapping:
- 400: request validation, unknown products, stock shortage, amount mismatch,
  signature mismatch
- 404: unknown order
- 409: illegal order state transition
- 500: gateway, persistence and configuration failures
"""

from decimal import Decimal

from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
)


class OrderServiceError(Exception):
    status_code: int = HTTP_400_BAD_REQUEST
    default_message: str = "Request could not be processed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_response(self) -> dict:
        return {"error": self.message}


class ValidationError(OrderServiceError):
    default_message = "Invalid request"


class InvalidItemError(ValidationError):
    default_message = "Invalid item structure: each item must have id and positive quantity"


class ProductsNotFound(OrderServiceError):
    def __init__(self, missing_ids: list[str]):
        self.missing_ids = list(missing_ids)
        super().__init__(f"Products not found: {', '.join(self.missing_ids)}")

    def to_response(self) -> dict:
        return {"error": self.message, "missingProductIds": self.missing_ids}


class StockConflict(OrderServiceError):
    default_message = "Insufficient stock"

    def __init__(self, shortages: list[dict], message: str | None = None):
        self.shortages = shortages
        super().__init__(message)

    def to_response(self) -> dict:
        return {"error": self.message, "stockIssues": self.shortages}


class AmountMismatch(OrderServiceError):
    default_message = "Amount validation failed. Please refresh and try again."

    def __init__(self, calculated_total: Decimal, received: Decimal | None = None):
        self.calculated_total = calculated_total
        self.received = received
        super().__init__()

    def to_response(self) -> dict:
        return {"error": self.message, "calculatedTotal": float(self.calculated_total)}


class SignatureInvalid(OrderServiceError):
    default_message = "Invalid signature"


class OrderNotFound(OrderServiceError):
    status_code = HTTP_404_NOT_FOUND
    default_message = "Order not found"


class InvalidTransition(OrderServiceError):
    status_code = HTTP_409_CONFLICT

    def __init__(self, current: str, target: str, message: str | None = None):
        self.current = current
        self.target = target
        super().__init__(message or f"Cannot move order from {current} to {target}")


class GatewayUnavailable(OrderServiceError):
    status_code = HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Payment gateway unavailable"


class PersistenceError(OrderServiceError):
    status_code = HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Failed to persist order"


class WebhookNotConfigured(OrderServiceError):
    status_code = HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Webhook not properly configured"
