from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from .models import Shipment


class ShipmentRepository:
    @staticmethod
    async def create_shipment(db: AsyncSession, shipment: Shipment):
        db.add(shipment)
        await db.commit()
        await db.refresh(shipment)
        return shipment

    @staticmethod
    async def get_for_order(db: AsyncSession, order_id: int):
        result = await db.execute(select(Shipment).where(Shipment.order_id == order_id))
        return result.scalars().first()
