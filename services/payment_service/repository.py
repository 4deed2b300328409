from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from .models import Payment


class PaymentRepository:
    @staticmethod
    async def get_by_gateway_payment_id(db: AsyncSession, gateway_payment_id: str):
        result = await db.execute(select(Payment).where(Payment.gateway_payment_id == gateway_payment_id))
        return result.scalars().first()

    @staticmethod
    async def list_for_user(db: AsyncSession, user_id: int, status: str | None = None, limit: int = 10, offset: int = 0):
        stmt = select(Payment).where(Payment.user_id == user_id)
        if status:
            stmt = stmt.where(Payment.status == status)
        stmt = stmt.order_by(Payment.created_at.desc(), Payment.id.desc()).limit(limit).offset(offset)
        result = await db.execute(stmt)
        return result.scalars().all()

    @staticmethod
    async def get_for_user(db: AsyncSession, payment_id: int, user_id: int):
        result = await db.execute(select(Payment).where(Payment.id == payment_id, Payment.user_id == user_id))
        return result.scalars().first()
