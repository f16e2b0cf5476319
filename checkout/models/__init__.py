from checkout.models.database import Base, get_db
from checkout.models.product import Product
from checkout.models.order import Order, OrderStatus, PaymentStatus
from checkout.models.idempotency import IdempotencyKey
from checkout.models.webhook_dead_letter import WebhookDeadLetter

__all__ = [
    "Base",
    "get_db",
    "Product",
    "Order",
    "OrderStatus",
    "PaymentStatus",
    "IdempotencyKey",
    "WebhookDeadLetter",
]
