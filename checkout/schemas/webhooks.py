"""Razorpay webhook payloads as a closed set of event variants.

``parse_webhook_event`` turns the verified JSON payload into exactly one of
``PaymentCaptured``, ``PaymentFailed``, ``OrderPaid`` or ``UnknownEvent`` so the
reconciler can dispatch on type instead of on raw event strings.
"""

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from checkout.errors import ValidationError

PAYMENT_CAPTURED = "payment.captured"
PAYMENT_FAILED = "payment.failed"
ORDER_PAID = "order.paid"


class PaymentEntity(BaseModel):
    id: str
    order_id: str
    amount: int | None = None
    currency: str | None = None
    status: str | None = None
    error_code: str | None = None
    error_description: str | None = None

    model_config = ConfigDict(extra="ignore")


class OrderEntity(BaseModel):
    id: str
    amount: int | None = None
    amount_paid: int | None = None
    status: str | None = None

    model_config = ConfigDict(extra="ignore")


@dataclass(frozen=True)
class PaymentCaptured:
    payment: PaymentEntity
    name: str = PAYMENT_CAPTURED

    @property
    def gateway_order_id(self) -> str:
        return self.payment.order_id


@dataclass(frozen=True)
class PaymentFailed:
    payment: PaymentEntity
    name: str = PAYMENT_FAILED

    @property
    def gateway_order_id(self) -> str:
        return self.payment.order_id


@dataclass(frozen=True)
class OrderPaid:
    order: OrderEntity
    payment: PaymentEntity | None = None
    name: str = ORDER_PAID

    @property
    def gateway_order_id(self) -> str:
        return self.order.id


@dataclass(frozen=True)
class UnknownEvent:
    name: str

    @property
    def gateway_order_id(self) -> None:
        return None


WebhookEvent = PaymentCaptured | PaymentFailed | OrderPaid | UnknownEvent


def _entity(payload: dict, key: str) -> dict | None:
    section = (payload.get("payload") or {}).get(key) or {}
    return section.get("entity")


def parse_webhook_event(payload: dict) -> WebhookEvent:
    if not isinstance(payload, dict):
        raise ValidationError("Webhook payload must be a JSON object")

    name = payload.get("event")
    if not isinstance(name, str) or not name:
        raise ValidationError("Webhook payload has no event name")

    try:
        if name in (PAYMENT_CAPTURED, PAYMENT_FAILED):
            entity = _entity(payload, "payment")
            if entity is None:
                raise ValidationError(f"{name} webhook has no payment entity")
            payment = PaymentEntity.model_validate(entity)
            if name == PAYMENT_CAPTURED:
                return PaymentCaptured(payment=payment)
            return PaymentFailed(payment=payment)

        if name == ORDER_PAID:
            entity = _entity(payload, "order")
            if entity is None:
                raise ValidationError(f"{name} webhook has no order entity")
            payment_entity = _entity(payload, "payment")
            return OrderPaid(
                order=OrderEntity.model_validate(entity),
                payment=PaymentEntity.model_validate(payment_entity) if payment_entity else None,
            )
    except PydanticValidationError as exc:
        raise ValidationError(f"Malformed {name} webhook payload: {exc.error_count()} error(s)") from exc

    return UnknownEvent(name=name)
