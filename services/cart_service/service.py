from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.product_service.repository import ProductRepository
from shared.errors import NotFoundError, ValidationError
from .models import Cart, CartItem
from .repository import CartRepository
from .schemas import CartItemCreate, CartLine, CartView, StockCheck, StockCheckItem

logger = structlog.get_logger(__name__)


class CartService:
    """Cart maintenance plus the read model used at checkout time."""

    @staticmethod
    async def get_or_create_cart(db: AsyncSession, user_id: int) -> Cart:
        if not user_id or user_id <= 0:
            raise NotFoundError(f"No cart owner with id {user_id}")
        cart = await CartRepository.get_cart(db, user_id)
        if cart is None:
            cart = await CartRepository.create_cart(db, Cart(user_id=user_id))
            logger.info("cart.created", user_id=user_id, cart_id=cart.id)
        return cart

    @staticmethod
    async def get_cart(db: AsyncSession, user_id: int) -> CartView:
        """
        Cart lines joined with the live catalog price, stock and weight.
        Prices are never snapshotted on the cart; they are read here every time.
        """
        cart = await CartService.get_or_create_cart(db, user_id)
        items = await CartRepository.get_items(db, user_id)

        bundles = await ProductRepository.get_bundles(db, [i.bundle_id for i in items if i.bundle_id is not None])
        products = await ProductRepository.get_products(db, [i.product_id for i in items if i.product_id is not None])

        lines = []
        subtotal = Decimal("0")
        for item in items:
            if item.bundle_id is not None:
                source = bundles.get(item.bundle_id)
                stock = source.stock_limit if source else None
            else:
                source = products.get(item.product_id)
                stock = source.stock if source else None

            if source is None:
                # Catalog entry was removed after the item was added
                lines.append(
                    CartLine(
                        line_id=item.id,
                        bundle_id=item.bundle_id,
                        product_id=item.product_id,
                        quantity=item.quantity,
                        available=False,
                    )
                )
                continue

            price = Decimal(source.price)
            item_total = price * item.quantity
            subtotal += item_total
            lines.append(
                CartLine(
                    line_id=item.id,
                    bundle_id=item.bundle_id,
                    product_id=item.product_id,
                    title=source.title,
                    quantity=item.quantity,
                    price=price,
                    weight=source.weight,
                    stock=stock,
                    item_total=item_total,
                )
            )

        return CartView(
            cart_id=cart.id,
            user_id=user_id,
            lines=lines,
            item_count=len(lines),
            subtotal=subtotal.quantize(Decimal("0.01")),
        )

    @staticmethod
    async def check_stock(db: AsyncSession, user_id: int, cart: CartView | None = None) -> StockCheck:
        """
        Stock-sufficiency verdict for every line. This is a read only; the
        later deduction re-checks nothing, it clamps at zero.
        """
        if cart is None:
            cart = await CartService.get_cart(db, user_id)

        items = []
        for line in cart.lines:
            in_stock = line.available and (line.stock is None or line.stock >= line.quantity)
            items.append(
                StockCheckItem(
                    line_id=line.line_id,
                    bundle_id=line.bundle_id,
                    product_id=line.product_id,
                    title=line.title,
                    required_qty=line.quantity,
                    available_stock=line.stock if line.available else 0,
                    in_stock=in_stock,
                )
            )

        out_of_stock = [i for i in items if not i.in_stock]
        return StockCheck(all_in_stock=not out_of_stock, items=items, out_of_stock_items=out_of_stock)

    @staticmethod
    async def add_item(db: AsyncSession, user_id: int, data: CartItemCreate) -> CartItem:
        cart = await CartService.get_or_create_cart(db, user_id)

        if data.bundle_id is not None:
            if await ProductRepository.get_bundle(db, data.bundle_id) is None:
                raise NotFoundError(f"Bundle {data.bundle_id} not found")
        elif await ProductRepository.get_product(db, data.product_id) is None:
            raise NotFoundError(f"Product {data.product_id} not found")

        item = CartItem(
            cart_id=cart.id,
            user_id=user_id,
            bundle_id=data.bundle_id,
            product_id=data.product_id,
            quantity=data.quantity,
        )
        item = await CartRepository.add_item(db, item)
        logger.info("cart.item_added", user_id=user_id, line_id=item.id, quantity=item.quantity)
        return item

    @staticmethod
    async def update_item_quantity(db: AsyncSession, user_id: int, item_id: int, quantity: int):
        """Sets an explicit quantity; zero or less removes the line."""
        if quantity <= 0:
            await CartService.remove_item(db, user_id, item_id)
            return None
        item = await CartRepository.get_item(db, user_id, item_id)
        if item is None:
            raise NotFoundError(f"Cart item {item_id} not found")
        return await CartRepository.set_quantity(db, item, quantity)

    @staticmethod
    async def remove_item(db: AsyncSession, user_id: int, item_id: int):
        removed = await CartRepository.remove_item(db, user_id, item_id)
        if not removed:
            raise NotFoundError(f"Cart item {item_id} not found")
        logger.info("cart.item_removed", user_id=user_id, line_id=item_id)

    @staticmethod
    async def clear_cart(db: AsyncSession, user_id: int) -> int:
        count = await CartRepository.clear_cart(db, user_id)
        logger.info("cart.cleared", user_id=user_id, items=count)
        return count

    @staticmethod
    async def remove_ordered_lines(db: AsyncSession, user_id: int, cart: CartView) -> int:
        """Drops only the lines that went into an order; items added meanwhile stay."""
        count = await CartRepository.remove_lines(db, user_id, [line.line_id for line in cart.lines])
        logger.info("cart.cleared", user_id=user_id, items=count)
        return count

    @staticmethod
    def require_lines(cart: CartView):
        if not cart.lines:
            raise ValidationError("Cannot create order. Cart is empty.", code="CART_EMPTY")
