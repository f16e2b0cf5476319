"""Order lifecycle rules shared by the order service and the payment reconciler."""

import logging
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from checkout.errors import InvalidTransition
from checkout.models import Order, OrderStatus
from checkout.services import inventory

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.FAILED, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED, OrderStatus.FAILED},
    # a later payment attempt on the same gateway order can still be captured
    OrderStatus.FAILED: {OrderStatus.PROCESSING},
    OrderStatus.CONFIRMED: set(),
    OrderStatus.CANCELLED: set(),
}


def can_transition(current: str, target: OrderStatus) -> bool:
    if current == target.value:
        return True
    return target in ALLOWED_TRANSITIONS.get(OrderStatus(current), set())


def transition(order: Order, target: OrderStatus) -> None:
    if not can_transition(order.status, target):
        raise InvalidTransition(order.status, target.value)
    if order.status != target.value:
        logger.info("Order %s: %s -> %s", order.id, order.status, target.value)
    order.status = target.value


def release_reserved_stock(db: Session, order: Order) -> bool:
    """Clear ``stock_reserved`` and return the stock, at most once per order.

    The flag is cleared with a conditional UPDATE in the caller's transaction,
    so two handlers racing on the same order cannot both release. Returns True
    when this call performed the release.
    """
    claimed = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.stock_reserved.is_(True))
        .values(stock_reserved=False, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    ).rowcount
    set_committed_value(order, "stock_reserved", False)
    if claimed != 1:
        logger.info("Stock for order %s already released", order.id)
        return False
    inventory.release(db, order.quantities(), order.gateway_order_id or order.id)
    return True
