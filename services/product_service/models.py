from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String
from shared.config.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Bundle(Base):
    __tablename__ = "bundles"
    __table_args__ = {"schema": "product_schema"}

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    stock_limit = Column(Integer, nullable=True) # NULL = unlimited stock
    weight = Column(Integer, nullable=True) # grams
    is_active = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Product(Base):
    """A standalone product that can sit in a cart outside any bundle."""

    __tablename__ = "products"
    __table_args__ = {"schema": "product_schema"}

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    stock = Column(Integer, nullable=True) # NULL = unlimited stock
    weight = Column(Integer, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
