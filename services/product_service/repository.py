from typing import Iterable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import case, select, update
from .models import Bundle, Product, _utcnow

# model -> name of its stock column
STOCK_COLUMNS = {Bundle: "stock_limit", Product: "stock"}


class ProductRepository:

    @staticmethod
    async def create(db: AsyncSession, entity):
        db.add(entity)
        await db.commit()
        await db.refresh(entity)
        return entity

    # Stock changes through bulk UPDATEs, so reads refresh the identity map
    @staticmethod
    async def get_bundle(db: AsyncSession, bundle_id: int):
        result = await db.execute(select(Bundle).where(Bundle.id == bundle_id).execution_options(populate_existing=True))
        return result.scalars().first()

    @staticmethod
    async def get_product(db: AsyncSession, product_id: int):
        result = await db.execute(select(Product).where(Product.id == product_id).execution_options(populate_existing=True))
        return result.scalars().first()

    @staticmethod
    async def get_bundles(db: AsyncSession, bundle_ids: Iterable[int]):
        ids = list(set(bundle_ids))
        if not ids:
            return {}
        result = await db.execute(select(Bundle).where(Bundle.id.in_(ids)).execution_options(populate_existing=True))
        return {b.id: b for b in result.scalars().all()}

    @staticmethod
    async def get_products(db: AsyncSession, product_ids: Iterable[int]):
        ids = list(set(product_ids))
        if not ids:
            return {}
        result = await db.execute(select(Product).where(Product.id.in_(ids)).execution_options(populate_existing=True))
        return {p.id: p for p in result.scalars().all()}

    @staticmethod
    async def list_bundles(db: AsyncSession):
        result = await db.execute(select(Bundle).where(Bundle.is_active.is_(True)).order_by(Bundle.id))
        return result.scalars().all()

    @staticmethod
    async def decrement_stock(db: AsyncSession, model, entity_id: int, quantity: int):
        """
        Single-statement clamp-at-zero decrement. Returns the new stock, or
        None when the row is missing or has unlimited stock.
        """
        column = getattr(model, STOCK_COLUMNS[model])
        stmt = (
            update(model)
            .where(model.id == entity_id, column.is_not(None))
            .values(**{STOCK_COLUMNS[model]: case((column > quantity, column - quantity), else_=0), "updated_at": _utcnow()})
            .returning(column)
        )
        result = await db.execute(stmt)
        new_stock = result.scalar_one_or_none()
        await db.commit()
        return new_stock

    @staticmethod
    async def increment_stock(db: AsyncSession, model, entity_id: int, quantity: int):
        column = getattr(model, STOCK_COLUMNS[model])
        stmt = (
            update(model)
            .where(model.id == entity_id, column.is_not(None))
            .values(**{STOCK_COLUMNS[model]: column + quantity, "updated_at": _utcnow()})
            .returning(column)
        )
        result = await db.execute(stmt)
        new_stock = result.scalar_one_or_none()
        await db.commit()
        return new_stock
