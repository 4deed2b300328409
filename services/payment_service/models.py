from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Text
from shared.config.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = {"schema": "payment_schema"}

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, nullable=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    provider = Column(String, nullable=False, default="razorpay")
    gateway_payment_id = Column(String, nullable=False, unique=True)
    gateway_order_id = Column(String, nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, nullable=False, default="INR")
    status = Column(String, default="captured") # captured, failed, refunded
    is_success = Column(Boolean, default=True, nullable=False)
    failure_msg = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
