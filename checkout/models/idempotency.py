from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.sql import func

from checkout.models.database import Base


class IdempotencyKey(Base):
    __tablename__ = "idempotency_keys"

    request_hash = Column(String(64), primary_key=True)
    # exact JSON text returned to the client, replayed byte for byte
    response = Column(Text, nullable=False)
    gateway_order_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
