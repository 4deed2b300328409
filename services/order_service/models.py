from datetime import datetime, timezone
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from shared.config.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Order(Base):
    __tablename__ = "orders"
    # We use a separate schema to simulate microservice isolation
    __table_args__ = {"schema": "order_schema"}

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)

    # Computed once at creation, never recomputed
    subtotal = Column(Numeric(12, 2), nullable=False)
    express_charge = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    final_total = Column(Numeric(12, 2), nullable=False)

    shipping_address = Column(JSON, nullable=False)
    delivery_metadata = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    gift_wrap = Column(Boolean, default=False, nullable=False)
    gift_message = Column(Text, nullable=True)

    payment_method = Column(String, nullable=False) # cod, online
    payment_status = Column(String, nullable=False, default="unpaid") # unpaid, paid, failed, refunded
    status = Column(String, nullable=False, default="pending")
    requires_review = Column(Boolean, default=False, nullable=False)
    cancellation_reason = Column(Text, nullable=True)

    gateway_order_id = Column(String, nullable=True, unique=True)
    gateway_payment_id = Column(String, nullable=True)
    gateway_signature = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    lines = relationship("OrderLine", back_populates="order", lazy="selectin", order_by="OrderLine.id")


class OrderLine(Base):
    """One row per cart line at order time. Bundle granularity only."""

    __tablename__ = "order_lines"
    __table_args__ = {"schema": "order_schema"}

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("order_schema.orders.id"), nullable=False, index=True)
    bundle_id = Column(Integer, nullable=True)
    product_id = Column(Integer, nullable=True) # standalone products only
    title = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False) # copied, not live
    bundle_origin = Column(String, nullable=False, default="bundle") # bundle, single
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    order = relationship("Order", back_populates="lines")
