from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from .models import Order


class OrderRepository:
    @staticmethod
    async def create_order(db: AsyncSession, order: Order, payment=None):
        """
        Header, lines (attached through order.lines) and an optional payment
        record go out in one transaction: either all rows exist or none do.
        """
        try:
            db.add(order)
            await db.flush()
            if payment is not None:
                payment.order_id = order.id
                db.add(payment)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int, user_id: int | None = None, refresh: bool = False):
        stmt = select(Order).where(Order.id == order_id)
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def get_by_gateway_order_id(db: AsyncSession, gateway_order_id: str):
        result = await db.execute(
            select(Order)
            .where(Order.gateway_order_id == gateway_order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def list_orders(db: AsyncSession, user_id: int, status: str | None = None, limit: int = 20, offset: int = 0):
        stmt = select(Order).where(Order.user_id == user_id)
        if status:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset)
        result = await db.execute(stmt)
        return result.scalars().all()

    @staticmethod
    async def save(db: AsyncSession, order: Order):
        await db.commit()
        return order
