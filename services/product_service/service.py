import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import NotFoundError
from shared.observability import ecomm_stock_adjustments_total
from .models import Bundle, Product
from .repository import ProductRepository
from .schemas import (
    BundleCreate,
    ProductCreate,
    StockChange,
    StockDeduction,
    StockFailure,
    StockRestoration,
)

logger = structlog.get_logger(__name__)

PAST_TENSE = {"deduct": "stock.deducted", "restore": "stock.restored"}


class ProductService:

    @staticmethod
    async def create_bundle(db: AsyncSession, data: BundleCreate):
        bundle = Bundle(
            title=data.title,
            price=data.price,
            stock_limit=data.stock_limit,
            weight=data.weight,
        )
        return await ProductRepository.create(db, bundle)

    @staticmethod
    async def create_product(db: AsyncSession, data: ProductCreate):
        product = Product(
            title=data.title,
            price=data.price,
            stock=data.stock,
            weight=data.weight,
        )
        return await ProductRepository.create(db, product)

    @staticmethod
    async def list_bundles(db: AsyncSession):
        return await ProductRepository.list_bundles(db)

    @staticmethod
    async def get_bundle(db: AsyncSession, bundle_id: int):
        bundle = await ProductRepository.get_bundle(db, bundle_id)
        if not bundle:
            raise NotFoundError(f"Bundle {bundle_id} not found")
        return bundle

    @staticmethod
    async def get_product(db: AsyncSession, product_id: int):
        product = await ProductRepository.get_product(db, product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        return product


class StockService:
    """
    Stock Adjuster.

    Every item is processed on its own: a failing item (unknown id, store
    error) is reported in `failed` and never blocks or unwinds the others.
    The counter itself is only ever changed through a single conditional
    UPDATE, so concurrent checkouts cannot lose each other's decrements.
    """

    @staticmethod
    async def deduct(db: AsyncSession, items) -> StockDeduction:
        """Deduct bundle stock for [{bundle_id, quantity}] after an order is placed."""
        changed, failed = await StockService._adjust(db, items, Bundle, "bundle_id", "deduct")
        return StockDeduction(success=not failed, deducted=changed, failed=failed)

    @staticmethod
    async def restore(db: AsyncSession, items) -> StockRestoration:
        """Inverse of deduct, used when an order is cancelled."""
        changed, failed = await StockService._adjust(db, items, Bundle, "bundle_id", "restore")
        return StockRestoration(success=not failed, restored=changed, failed=failed)

    @staticmethod
    async def deduct_products(db: AsyncSession, items) -> StockDeduction:
        """Same policy for standalone products, [{product_id, quantity}]."""
        changed, failed = await StockService._adjust(db, items, Product, "product_id", "deduct")
        return StockDeduction(success=not failed, deducted=changed, failed=failed)

    @staticmethod
    async def restore_products(db: AsyncSession, items) -> StockRestoration:
        changed, failed = await StockService._adjust(db, items, Product, "product_id", "restore")
        return StockRestoration(success=not failed, restored=changed, failed=failed)

    @staticmethod
    async def _load(db: AsyncSession, model, entity_id: int):
        if model is Bundle:
            entity = await ProductRepository.get_bundle(db, entity_id)
        else:
            entity = await ProductRepository.get_product(db, entity_id)
        if entity is None:
            raise LookupError(f"{model.__name__} {entity_id} not found")
        return entity

    @staticmethod
    async def _adjust(db: AsyncSession, items, model, key: str, operation: str):
        changed, failed = [], []
        items = list(items)
        logger.info(f"stock.{operation}_started", kind=key, items=len(items))

        for item in items:
            entity_id, quantity = item[key], item["quantity"]
            try:
                if quantity <= 0:
                    raise ValueError("Quantity must be a positive integer")

                entity = await StockService._load(db, model, entity_id)

                previous = entity.stock_limit if model is Bundle else entity.stock
                if previous is None:
                    # Unlimited stock: nothing to mutate
                    changed.append(StockChange(**{key: entity_id}, title=entity.title, quantity=quantity, unlimited=True))
                    ecomm_stock_adjustments_total.labels(operation=operation, result="unlimited").inc()
                    continue

                if operation == "deduct":
                    new = await ProductRepository.decrement_stock(db, model, entity_id, quantity)
                else:
                    new = await ProductRepository.increment_stock(db, model, entity_id, quantity)
                if new is None:
                    # Deleted or made unlimited since the read; a deleted row fails here
                    await StockService._load(db, model, entity_id)
                    changed.append(StockChange(**{key: entity_id}, title=entity.title, quantity=quantity, unlimited=True))
                    continue

                changed.append(
                    StockChange(
                        **{key: entity_id},
                        title=entity.title,
                        quantity=quantity,
                        previous=previous,
                        new=new,
                        is_now_out_of_stock=new == 0,
                    )
                )
                ecomm_stock_adjustments_total.labels(operation=operation, result="success").inc()
                logger.info(PAST_TENSE[operation], **{key: entity_id}, previous=previous, new=new)

            except (SQLAlchemyError, LookupError, ValueError) as e:
                if isinstance(e, SQLAlchemyError):
                    await db.rollback()
                failed.append(StockFailure(**{key: entity_id}, quantity=quantity, error=str(e)))
                ecomm_stock_adjustments_total.labels(operation=operation, result="failed").inc()
                logger.error(f"stock.{operation}_failed", **{key: entity_id}, quantity=quantity, error=str(e))

        logger.info(f"stock.{operation}_complete", succeeded=len(changed), failed=len(failed))
        return changed, failed
