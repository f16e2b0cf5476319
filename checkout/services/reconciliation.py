"""Reconciles client verification calls and Razorpay webhooks into order state.

Three signals can arrive in any order and more than once: the client's
verify-payment call, ``payment.captured``/``payment.failed`` and ``order.paid``.
Every handler locks the order row, applies an idempotent update and commits
once. Stock is only returned through ``release_reserved_stock``, which clears
``stock_reserved`` in the same transaction.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal

from checkout.dependencies import ServiceContext
from checkout.errors import GatewayUnavailable, StockConflict
from checkout.models import Order, OrderStatus, PaymentStatus, WebhookDeadLetter
from checkout.schemas.webhooks import (
    OrderPaid,
    PaymentCaptured,
    PaymentEntity,
    PaymentFailed,
    UnknownEvent,
    WebhookEvent,
)
from checkout.services import inventory
from checkout.services.razorpay_gateway import to_minor_units
from checkout.services.state import release_reserved_stock, transition

logger = logging.getLogger(__name__)

SIGNATURE_FAILURE_REASON = "Signature verification failed"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PaymentReconciler:
    def __init__(self, ctx: ServiceContext):
        self.db = ctx.db
        self.gateway = ctx.gateway

    def _find(self, gateway_order_id: str) -> Order | None:
        return (
            self.db.query(Order)
            .filter(Order.gateway_order_id == gateway_order_id)
            .with_for_update()
            .first()
        )

    def _dead_letter(
        self,
        event: WebhookEvent,
        reason: str,
        payload: dict,
        payment_id: str | None = None,
    ) -> None:
        self.db.add(
            WebhookDeadLetter(
                event=event.name,
                gateway_order_id=event.gateway_order_id,
                gateway_payment_id=payment_id,
                reason=reason,
                payload=json.dumps(payload, sort_keys=True),
            )
        )
        self.db.commit()

    def _mark_paid(self, order: Order, payment_id: str | None, source: str) -> None:
        """Move an order to paid/processing. Safe to apply repeatedly."""
        if payment_id and not order.gateway_payment_id:
            order.gateway_payment_id = payment_id

        if order.payment_status == PaymentStatus.COMPLETED.value:
            logger.info("Order %s already paid, %s leaves status %s", order.id, source, order.status)
            return

        order.payment_status = PaymentStatus.COMPLETED.value
        order.paid_at = _now()
        if payment_id:
            order.gateway_payment_id = payment_id

        if order.status == OrderStatus.CANCELLED.value:
            order.failure_code = "PAID_AFTER_CANCEL"
            logger.error(
                "Order %s was paid (%s) after cancellation; refund required",
                order.id,
                order.gateway_payment_id,
            )
            return

        if order.status == OrderStatus.FAILED.value and not order.stock_reserved:
            try:
                inventory.reserve(self.db, order.quantities(), order.gateway_order_id)
            except StockConflict as exc:
                order.failure_code = "STOCK_UNAVAILABLE"
                order.failure_reason = "Paid after a failed attempt but stock is no longer available"
                logger.error(
                    "Order %s paid after a failed attempt but stock is gone (%s); refund required",
                    order.id,
                    exc.shortages,
                )
            else:
                order.stock_reserved = True
                order.failure_code = None
                order.failure_reason = None

        if order.status in (OrderStatus.PENDING.value, OrderStatus.FAILED.value):
            transition(order, OrderStatus.PROCESSING)

    def _mark_failed(
        self,
        order: Order,
        reason: str,
        code: str | None = None,
        description: str | None = None,
    ) -> None:
        order.payment_status = PaymentStatus.FAILED.value
        order.failed_at = _now()
        order.failure_reason = reason
        if code:
            order.failure_code = code
        if description:
            order.failure_description = description
        if order.status != OrderStatus.FAILED.value:
            transition(order, OrderStatus.FAILED)
        if release_reserved_stock(self.db, order):
            logger.info("Released stock reserved by order %s", order.id)

    def verify_client_payment(self, gateway_order_id: str, payment_id: str, signature: str) -> bool:
        """Check the signature the client relayed after checkout and apply the outcome."""
        if not self.gateway.key_secret:
            raise GatewayUnavailable("RAZORPAY_KEY_SECRET is not set, cannot verify payments")
        verified = self.gateway.verify_signature(gateway_order_id, payment_id, signature)
        logger.info(
            "Payment verification attempt: order=%s payment=%s verified=%s",
            gateway_order_id,
            payment_id,
            verified,
        )

        if not verified:
            logger.error(
                "Payment verification failed: order=%s payment=%s expected=%s received=%s",
                gateway_order_id,
                payment_id,
                self.gateway.payment_signature(gateway_order_id, payment_id),
                signature,
            )

        order = self._find(gateway_order_id)
        if order is None:
            logger.warning("Order not found for payment status update: %s", gateway_order_id)
            return verified

        if verified:
            self._mark_paid(order, payment_id, source="client verification")
            order.gateway_signature = signature
            order.verified_at = _now()
        elif order.payment_status == PaymentStatus.COMPLETED.value:
            # an invalid client signature cannot undo a payment the gateway confirmed
            logger.error("Ignoring invalid signature for already paid order %s", order.id)
        elif order.status in (OrderStatus.CANCELLED.value, OrderStatus.CONFIRMED.value):
            logger.error("Invalid signature for %s order %s; status unchanged", order.status, order.id)
            self.db.rollback()
            return verified
        else:
            self._mark_failed(order, SIGNATURE_FAILURE_REASON, code="SIGNATURE_INVALID")
        self.db.commit()
        logger.info("Order %s payment status is %s", order.id, order.payment_status)
        return verified

    def apply_webhook(self, event: WebhookEvent, payload: dict) -> None:
        if isinstance(event, PaymentCaptured):
            self._on_payment_captured(event, payload)
        elif isinstance(event, PaymentFailed):
            self._on_payment_failed(event, payload)
        elif isinstance(event, OrderPaid):
            self._on_order_paid(event, payload)
        elif isinstance(event, UnknownEvent):
            logger.info("Unhandled webhook event: %s", event.name)
        else:
            raise TypeError(f"Unsupported webhook event {event!r}")

    def _unmatched(self, event: WebhookEvent, payload: dict, payment_id: str | None) -> None:
        logger.warning("Order not found for %s event: %s", event.name, event.gateway_order_id)
        self._dead_letter(event, "order_not_found", payload, payment_id)

    def _on_payment_captured(self, event: PaymentCaptured, payload: dict) -> None:
        payment: PaymentEntity = event.payment
        logger.info(
            "Processing payment captured: payment=%s order=%s amount=%s",
            payment.id,
            payment.order_id,
            payment.amount,
        )
        order = self._find(payment.order_id)
        if order is None:
            self.db.rollback()
            self._unmatched(event, payload, payment.id)
            return

        if payment.amount is not None and payment.amount != to_minor_units(order.total):
            logger.error(
                "Captured amount mismatch for order %s: expected=%s received=%s",
                order.id,
                to_minor_units(order.total),
                payment.amount,
            )
            self.db.rollback()
            self._dead_letter(event, "amount_mismatch", payload, payment.id)
            return

        self._mark_paid(order, payment.id, source=event.name)
        order.captured_at = _now()
        if payment.amount is not None:
            order.captured_amount = Decimal(payment.amount) / 100
        self.db.commit()
        logger.info("Payment captured processed for order %s (payment %s)", order.id, payment.id)

    def _on_payment_failed(self, event: PaymentFailed, payload: dict) -> None:
        payment: PaymentEntity = event.payment
        logger.info(
            "Processing payment failed: payment=%s order=%s code=%s description=%s",
            payment.id,
            payment.order_id,
            payment.error_code,
            payment.error_description,
        )
        order = self._find(payment.order_id)
        if order is None:
            self.db.rollback()
            self._unmatched(event, payload, payment.id)
            return

        if order.status in (OrderStatus.CANCELLED.value, OrderStatus.CONFIRMED.value):
            logger.info("Ignoring payment failure for %s order %s", order.status, order.id)
            self.db.rollback()
            return

        if order.payment_status == PaymentStatus.COMPLETED.value and order.gateway_payment_id != payment.id:
            logger.warning(
                "Ignoring failure of payment %s for order %s already paid by %s",
                payment.id,
                order.id,
                order.gateway_payment_id,
            )
            self.db.rollback()
            return

        order.gateway_payment_id = payment.id
        self._mark_failed(
            order,
            reason="Payment failed",
            code=payment.error_code,
            description=payment.error_description,
        )
        self.db.commit()
        logger.info("Payment failed processed for order %s (payment %s)", order.id, payment.id)

    def _on_order_paid(self, event: OrderPaid, payload: dict) -> None:
        logger.info(
            "Processing order paid: order=%s amount=%s status=%s",
            event.order.id,
            event.order.amount,
            event.order.status,
        )
        payment_id = event.payment.id if event.payment else None
        order = self._find(event.order.id)
        if order is None:
            self.db.rollback()
            self._unmatched(event, payload, payment_id)
            return

        if order.payment_status != PaymentStatus.PENDING.value:
            logger.info("Order %s payment status already %s", order.id, order.payment_status)
            self.db.rollback()
            return

        paid_amount = event.payment.amount if event.payment else event.order.amount_paid
        if paid_amount is not None and paid_amount != to_minor_units(order.total):
            logger.error(
                "Paid amount mismatch for order %s: expected=%s received=%s",
                order.id,
                to_minor_units(order.total),
                paid_amount,
            )
            self.db.rollback()
            self._dead_letter(event, "amount_mismatch", payload, payment_id)
            return

        self._mark_paid(order, payment_id, source=event.name)
        self.db.commit()
        logger.info("Order paid processed for order %s", order.id)
