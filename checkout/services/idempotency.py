"""Request fingerprints and the persisted response cache behind them."""

import hashlib
import hmac
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from checkout.errors import PersistenceError
from checkout.models import IdempotencyKey
from checkout.schemas.orders import CartItem

logger = logging.getLogger(__name__)


def serialize_items(items: Sequence[CartItem]) -> str:
    """Compact JSON of the cart exactly as submitted; item order matters."""
    return json.dumps([item.model_dump() for item in items], separators=(",", ":"))


def fingerprint(secret: str, user_id: str, items: Sequence[CartItem], timestamp: int | str) -> str:
    data = f"{user_id}-{serialize_items(items)}-{timestamp}"
    return hmac.new(secret.encode("utf-8"), data.encode("utf-8"), hashlib.sha256).hexdigest()


def lookup(db: Session, request_hash: str, now: datetime | None = None) -> str | None:
    """Return the stored response for an unexpired fingerprint, or None."""
    now = now or datetime.now(timezone.utc)
    try:
        record = (
            db.query(IdempotencyKey)
            .filter(IdempotencyKey.request_hash == request_hash, IdempotencyKey.expires_at > now)
            .first()
        )
    except SQLAlchemyError as exc:
        logger.error("Error checking idempotency for %s: %s", request_hash, exc)
        raise PersistenceError("Failed to check request idempotency") from exc

    if record is None:
        return None
    logger.info(
        "Returning existing order for duplicate request %s (gateway order %s)",
        request_hash,
        record.gateway_order_id,
    )
    return record.response


def store(
    db: Session,
    request_hash: str,
    response: str,
    gateway_order_id: str | None,
    ttl_hours: int = 24,
) -> bool:
    """Persist the response for a fingerprint. Never raises; returns False on failure."""
    expires_at = datetime.now(timezone.utc) + timedelta(hours=ttl_hours)
    try:
        db.merge(
            IdempotencyKey(
                request_hash=request_hash,
                response=response,
                gateway_order_id=gateway_order_id,
                expires_at=expires_at,
            )
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Error storing idempotency result for %s: %s", request_hash, exc)
        return False
    logger.info("Stored idempotency result for %s", request_hash)
    return True


def purge_expired(db: Session, now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    deleted = (
        db.query(IdempotencyKey)
        .filter(IdempotencyKey.expires_at <= now)
        .delete(synchronize_session=False)
    )
    db.commit()
    if deleted:
        logger.info("Purged %s expired idempotency keys", deleted)
    return deleted
