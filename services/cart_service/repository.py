from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, update
from .models import Cart, CartItem, _utcnow


class CartRepository:
    @staticmethod
    async def get_cart(db: AsyncSession, user_id: int):
        result = await db.execute(select(Cart).where(Cart.user_id == user_id))
        return result.scalars().first()

    @staticmethod
    async def create_cart(db: AsyncSession, cart: Cart):
        db.add(cart)
        await db.commit()
        await db.refresh(cart)
        return cart

    @staticmethod
    async def get_items(db: AsyncSession, user_id: int):
        result = await db.execute(
            select(CartItem)
            .where(CartItem.user_id == user_id)
            .order_by(CartItem.created_at.desc(), CartItem.id.desc())
        )
        return result.scalars().all()

    @staticmethod
    async def get_item(db: AsyncSession, user_id: int, item_id: int):
        result = await db.execute(
            select(CartItem).where(CartItem.id == item_id, CartItem.user_id == user_id)
        )
        return result.scalars().first()

    @staticmethod
    async def add_item(db: AsyncSession, item: CartItem):
        """Repeat adds of the same bundle/product accumulate quantity."""
        stmt = select(CartItem).where(CartItem.user_id == item.user_id)
        if item.bundle_id is not None:
            stmt = stmt.where(CartItem.bundle_id == item.bundle_id)
        else:
            stmt = stmt.where(CartItem.product_id == item.product_id)
        result = await db.execute(stmt)
        existing_item = result.scalars().first()

        if existing_item:
            existing_item.quantity += item.quantity
            item = existing_item
        else:
            db.add(item)

        await CartRepository._touch(db, item.user_id)
        await db.commit()
        await db.refresh(item)
        return item

    @staticmethod
    async def set_quantity(db: AsyncSession, item: CartItem, quantity: int):
        item.quantity = quantity
        await CartRepository._touch(db, item.user_id)
        await db.commit()
        await db.refresh(item)
        return item

    @staticmethod
    async def remove_item(db: AsyncSession, user_id: int, item_id: int) -> bool:
        stmt = delete(CartItem).where(CartItem.id == item_id, CartItem.user_id == user_id)
        result = await db.execute(stmt)
        await CartRepository._touch(db, user_id)
        await db.commit()
        return result.rowcount > 0

    @staticmethod
    async def remove_lines(db: AsyncSession, user_id: int, item_ids) -> int:
        stmt = delete(CartItem).where(CartItem.user_id == user_id, CartItem.id.in_(list(item_ids)))
        result = await db.execute(stmt)
        await CartRepository._touch(db, user_id)
        await db.commit()
        return result.rowcount

    @staticmethod
    async def clear_cart(db: AsyncSession, user_id: int) -> int:
        """Deletes all items for the user and forces a commit."""
        stmt = delete(CartItem).where(CartItem.user_id == user_id)
        result = await db.execute(stmt)
        await CartRepository._touch(db, user_id)
        await db.commit()
        return result.rowcount

    @staticmethod
    async def _touch(db: AsyncSession, user_id: int):
        await db.execute(update(Cart).where(Cart.user_id == user_id).values(updated_at=_utcnow()))
