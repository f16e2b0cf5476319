"""Order creation and the operator-facing order transitions.

``create_order`` runs strictly in sequence: idempotency check, price fetch,
validation, amount cross-check, gateway order, stock reservation plus order
insert (one commit), idempotency store. Nothing local is written before the
gateway order exists.
"""

import json
import logging
import secrets
import time
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from checkout.dependencies import ServiceContext
from checkout.errors import (
    AmountMismatch,
    InvalidTransition,
    OrderNotFound,
    PersistenceError,
    StockConflict,
)
from checkout.models import Order, OrderStatus, PaymentStatus
from checkout.schemas.orders import CreateOrderRequest
from checkout.services import catalog, idempotency, inventory, pricing
from checkout.services.razorpay_gateway import to_minor_units
from checkout.services.state import release_reserved_stock, transition

logger = logging.getLogger(__name__)

GUEST_EMAIL = "guest@example.com"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _receipt() -> str:
    return f"receipt_{_now_ms()}_{secrets.token_hex(3)}"


class OrderService:
    def __init__(self, ctx: ServiceContext):
        self.db = ctx.db
        self.gateway = ctx.gateway
        self.settings = ctx.settings

    def create_order(self, request: CreateOrderRequest) -> str:
        """Create a priced, stock-reserved gateway order; returns the JSON response text.

        The same text is stored under the request fingerprint, so a retried
        request gets byte-identical content back.
        """
        timestamp = request.request_timestamp if request.request_timestamp is not None else _now_ms()
        request_hash = idempotency.fingerprint(
            self.settings.REQUEST_ID_SECRET, request.user_id, request.items, timestamp
        )

        existing = idempotency.lookup(self.db, request_hash)
        if existing is not None:
            return existing

        pricing.validate_items(request.items)
        prices = catalog.fetch_prices(self.db, (item.id for item in request.items))

        shortages = pricing.check_stock(request.items, prices)
        if shortages:
            logger.info("Insufficient stock for user %s: %s", request.user_id, shortages)
            raise StockConflict(shortages)

        totals = pricing.compute_totals(request.items, prices)
        try:
            pricing.check_amount(request.amount, totals)
        except AmountMismatch:
            logger.error(
                "Amount mismatch detected for user %s: received=%s calculated=%s",
                request.user_id,
                request.amount,
                totals.total,
            )
            raise

        user_email = request.user_email or GUEST_EMAIL
        currency = self.settings.CURRENCY
        remote_order = self.gateway.create_remote_order(
            amount_minor=to_minor_units(totals.total),
            currency=currency,
            receipt=_receipt(),
            notes={
                "userId": request.user_id,
                "userEmail": user_email,
                "itemCount": len(request.items),
                "calculatedTotal": str(totals.total),
                "requestHash": request_hash,
            },
        )
        gateway_order_id = remote_order["id"]

        order = Order(
            gateway_order_id=gateway_order_id,
            user_id=request.user_id,
            user_email=user_email,
            items=[
                {
                    "id": item.id,
                    "quantity": item.quantity,
                    "price": str(prices[item.id].price),
                    "name": prices[item.id].name,
                }
                for item in request.items
            ],
            subtotal=totals.subtotal,
            tax=totals.tax,
            shipping=totals.shipping,
            total=totals.total,
            currency=currency,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            stock_reserved=True,
            request_hash=request_hash,
        )
        try:
            inventory.reserve(self.db, pricing.quantities_by_product(request.items), gateway_order_id)
            self.db.add(order)
            self.db.commit()
        except StockConflict:
            self.db.rollback()
            logger.warning("Gateway order %s left unused after losing the stock race", gateway_order_id)
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to persist order for gateway order %s: %s", gateway_order_id, exc)
            raise PersistenceError() from exc

        response = json.dumps(
            {
                **remote_order,
                "calculatedTotals": totals.as_dict(),
                "firestoreOrderId": order.id,
            }
        )
        idempotency.store(
            self.db,
            request_hash,
            response,
            gateway_order_id,
            ttl_hours=self.settings.IDEMPOTENCY_TTL_HOURS,
        )

        logger.info(
            "Order created: gateway order %s, order %s, user %s, amount %s, total %s, %s item(s)",
            gateway_order_id,
            order.id,
            request.user_id,
            remote_order.get("amount"),
            totals.total,
            len(request.items),
        )
        return response

    def get_order(self, order_id: str) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if order is None:
            raise OrderNotFound()
        return order

    def list_orders_for_user(self, user_id: str) -> list[Order]:
        return (
            self.db.query(Order)
            .filter(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .all()
        )

    def _locked(self, order_id: str) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id).with_for_update().first()
        if order is None:
            raise OrderNotFound()
        return order

    def cancel_order(self, order_id: str, reason: str | None = None) -> Order:
        order = self._locked(order_id)
        if order.status == OrderStatus.CANCELLED.value:
            self.db.rollback()
            return order
        try:
            transition(order, OrderStatus.CANCELLED)
        except InvalidTransition:
            self.db.rollback()
            raise
        now = datetime.now(timezone.utc)
        order.cancelled_at = now
        order.failure_reason = reason or "Cancelled before fulfilment"
        release_reserved_stock(self.db, order)
        self.db.commit()
        if order.payment_status == PaymentStatus.COMPLETED.value:
            logger.warning(
                "Order %s cancelled after payment %s; refund must be issued separately",
                order.id,
                order.gateway_payment_id,
            )
        logger.info("Order %s cancelled", order.id)
        return order

    def confirm_order(self, order_id: str) -> Order:
        order = self._locked(order_id)
        try:
            if order.payment_status != PaymentStatus.COMPLETED.value:
                raise InvalidTransition(order.status, OrderStatus.CONFIRMED.value)
            if not order.stock_reserved:
                raise InvalidTransition(
                    order.status,
                    OrderStatus.CONFIRMED.value,
                    message=f"Order {order.id} holds no reserved stock and cannot be fulfilled",
                )
            transition(order, OrderStatus.CONFIRMED)
        except InvalidTransition:
            self.db.rollback()
            raise
        order.confirmed_at = datetime.now(timezone.utc)
        self.db.commit()
        logger.info("Order %s confirmed for fulfilment", order.id)
        return order
