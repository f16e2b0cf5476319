import uuid
from enum import Enum

from sqlalchemy import JSON, Boolean, Column, DateTime, Numeric, String
from sqlalchemy.orm import validates
from sqlalchemy.sql import func

from checkout.models.database import Base


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def _new_order_id() -> str:
    return uuid.uuid4().hex


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(32), primary_key=True, default=_new_order_id)
    gateway_order_id = Column(String(64), unique=True, index=True, nullable=True)
    user_id = Column(String(128), nullable=False, index=True)
    user_email = Column(String(255), nullable=False)
    # [{"id", "quantity", "price", "name"}] snapshotted at creation time
    items = Column(JSON, nullable=False)
    subtotal = Column(Numeric(12, 4), nullable=False)
    tax = Column(Numeric(12, 4), nullable=False)
    shipping = Column(Numeric(12, 4), nullable=False)
    total = Column(Numeric(12, 4), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    stock_reserved = Column(Boolean, nullable=False, default=False)
    request_hash = Column(String(64), nullable=False, index=True)

    gateway_payment_id = Column(String(64), nullable=True)
    gateway_signature = Column(String(128), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    captured_amount = Column(Numeric(12, 2), nullable=True)
    captured_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    failure_reason = Column(String(255), nullable=True)
    failure_code = Column(String(64), nullable=True)
    failure_description = Column(String(512), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @validates("gateway_order_id")
    def _validate_gateway_order_id(self, key, value):
        current = self.gateway_order_id
        if current is not None and value != current:
            raise ValueError(f"gateway_order_id of order {self.id} is immutable once set")
        return value

    def quantities(self) -> dict[str, int]:
        quantities: dict[str, int] = {}
        for item in self.items or []:
            quantities[item["id"]] = quantities.get(item["id"], 0) + int(item["quantity"])
        return quantities
