from datetime import datetime, timezone
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer
from shared.config.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = {"schema": "cart_schema"}

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (
        # A line points at a bundle or at a standalone product, never both
        CheckConstraint(
            "(bundle_id IS NULL) <> (product_id IS NULL)",
            name="ck_cart_items_one_reference",
        ),
        CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),
        {"schema": "cart_schema"},
    )

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("cart_schema.carts.id"), nullable=False)
    user_id = Column(Integer, nullable=False, index=True)
    bundle_id = Column(Integer, nullable=True)
    product_id = Column(Integer, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
