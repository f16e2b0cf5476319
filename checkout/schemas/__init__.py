from checkout.schemas.orders import (
    CartItem,
    CreateOrderRequest,
    OrderResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from checkout.schemas.webhooks import (
    OrderPaid,
    PaymentCaptured,
    PaymentFailed,
    UnknownEvent,
    WebhookEvent,
    parse_webhook_event,
)

__all__ = [
    "CartItem",
    "CreateOrderRequest",
    "OrderResponse",
    "VerifyPaymentRequest",
    "VerifyPaymentResponse",
    "OrderPaid",
    "PaymentCaptured",
    "PaymentFailed",
    "UnknownEvent",
    "WebhookEvent",
    "parse_webhook_event",
]
