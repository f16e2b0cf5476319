from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from checkout.models.database import Base


class WebhookDeadLetter(Base):
    __tablename__ = "webhook_dead_letters"

    id = Column(Integer, primary_key=True, index=True)
    event = Column(String(64), nullable=False)
    gateway_order_id = Column(String(64), nullable=True, index=True)
    gateway_payment_id = Column(String(64), nullable=True)
    reason = Column(String(64), nullable=False)  # order_not_found | amount_mismatch
    payload = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
