from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, Integer, Numeric, String
from shared.config.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Shipment(Base):
    __tablename__ = "shipments"
    __table_args__ = {"schema": "shipment_schema"}

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, nullable=False, index=True)
    status = Column(String, nullable=False, default="pending_review")
    delivery_mode = Column(String, nullable=False, default="surface") # surface, express
    payment_mode = Column(String, nullable=False) # cod, prepaid
    weight = Column(Integer, nullable=False) # grams
    destination_pincode = Column(String, nullable=True)
    destination_city = Column(String, nullable=True)
    destination_state = Column(String, nullable=True)
    estimated_cost = Column(Numeric(12, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
