"""Stock reservation and release.

Both operations run inside the caller's transaction and never commit, so the
caller can persist the matching order change (``stock_reserved``) in the same
commit. Each product is decremented with a single conditional UPDATE
(``stock >= quantity``), which the database applies atomically; there is no
read-then-write window for concurrent checkouts to race through.
"""

import logging
from typing import Mapping

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from checkout.errors import StockConflict
from checkout.models import Product

logger = logging.getLogger(__name__)


def _shortage(db: Session, product_id: str, requested: int) -> dict:
    row = db.execute(select(Product.stock, Product.name).where(Product.id == product_id)).first()
    available = row.stock if row is not None else 0
    name = row.name if row is not None else None
    return {"productId": product_id, "name": name, "requested": requested, "available": available}


def reserve(db: Session, quantities: Mapping[str, int], reference: str) -> None:
    """Decrement stock for every product or for none of them.

    On a shortage, decrements already applied in this batch are undone within
    the same transaction before StockConflict is raised.
    Products are updated in id order so concurrent batches lock rows consistently.
    """
    applied: dict[str, int] = {}
    for product_id in sorted(quantities):
        quantity = quantities[product_id]
        result = db.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            shortage = _shortage(db, product_id, quantity)
            _increment(db, applied)
            logger.warning(
                "Failed to reserve stock for %s: product %s requested=%s available=%s",
                reference,
                product_id,
                quantity,
                shortage["available"],
            )
            raise StockConflict([shortage], message=f"Insufficient stock for product {product_id}")
        applied[product_id] = quantity
    logger.info("Stock reserved for %s: %s", reference, dict(quantities))


def _increment(db: Session, quantities: Mapping[str, int]) -> list[str]:
    missing = []
    for product_id in sorted(quantities):
        result = db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantities[product_id], updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            missing.append(product_id)
    return missing


def release(db: Session, quantities: Mapping[str, int], reference: str) -> None:
    """Increment stock back. Callers must guard against double release."""
    for product_id in _increment(db, quantities):
        logger.warning("Product %s vanished before stock release for %s", product_id, reference)
    logger.info("Stock released for %s: %s", reference, dict(quantities))
