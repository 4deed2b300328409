import asyncio

from sqlalchemy import delete

from services.product_service.models import Bundle
from services.product_service.repository import ProductRepository
from services.product_service.service import StockService


class TestDeduct:
    async def test_deducts_and_reports(self, db, seed):
        bundle = await seed.bundle(stock_limit=10)

        result = await StockService.deduct(db, [{"bundle_id": bundle.id, "quantity": 3}])

        assert result.success
        change = result.deducted[0]
        assert (change.previous, change.new) == (10, 7)
        assert not change.is_now_out_of_stock
        assert (await ProductRepository.get_bundle(db, bundle.id)).stock_limit == 7

    async def test_clamps_at_zero(self, db, seed):
        bundle = await seed.bundle(stock_limit=2)

        result = await StockService.deduct(db, [{"bundle_id": bundle.id, "quantity": 5}])

        assert result.success
        assert result.deducted[0].new == 0
        assert result.deducted[0].is_now_out_of_stock
        assert (await ProductRepository.get_bundle(db, bundle.id)).stock_limit == 0

    async def test_unlimited_stock_is_untouched(self, db, seed):
        bundle = await seed.bundle(stock_limit=None)

        result = await StockService.deduct(db, [{"bundle_id": bundle.id, "quantity": 50}])

        assert result.success
        assert result.deducted[0].unlimited
        assert (await ProductRepository.get_bundle(db, bundle.id)).stock_limit is None

    async def test_partial_failure_does_not_block_other_items(self, db, seed):
        first = await seed.bundle(title="A", stock_limit=5)
        second = await seed.bundle(title="B", stock_limit=5)

        result = await StockService.deduct(
            db,
            [
                {"bundle_id": first.id, "quantity": 1},
                {"bundle_id": 9999, "quantity": 1},
                {"bundle_id": second.id, "quantity": 0},
                {"bundle_id": second.id, "quantity": 2},
            ],
        )

        assert not result.success
        assert [f.bundle_id for f in result.failed] == [9999, second.id]
        assert [(c.bundle_id, c.new) for c in result.deducted] == [(first.id, 4), (second.id, 3)]

    async def test_bundle_deleted_before_write_is_a_failure(self, db, seed, monkeypatch):
        bundle = await seed.bundle(stock_limit=5)
        bundle_id = bundle.id
        original = ProductRepository.decrement_stock

        async def delete_then_decrement(db_, model, entity_id, quantity):
            await db_.execute(delete(Bundle).where(Bundle.id == entity_id))
            await db_.commit()
            return await original(db_, model, entity_id, quantity)

        monkeypatch.setattr(ProductRepository, "decrement_stock", staticmethod(delete_then_decrement))
        result = await StockService.deduct(db, [{"bundle_id": bundle_id, "quantity": 1}])

        assert not result.success
        assert result.deducted == []
        assert [f.bundle_id for f in result.failed] == [bundle_id]
        assert "not found" in result.failed[0].error

    async def test_repeated_deductions_see_fresh_stock(self, db, seed):
        bundle = await seed.bundle(stock_limit=10)

        await StockService.deduct(db, [{"bundle_id": bundle.id, "quantity": 4}])
        result = await StockService.deduct(db, [{"bundle_id": bundle.id, "quantity": 4}])

        assert (result.deducted[0].previous, result.deducted[0].new) == (6, 2)

    async def test_concurrent_deductions_do_not_lose_updates(self, session_factory, seed):
        bundle = await seed.bundle(stock_limit=10)

        async def deduct_once():
            async with session_factory() as session:
                return await StockService.deduct(session, [{"bundle_id": bundle.id, "quantity": 3}])

        results = await asyncio.gather(deduct_once(), deduct_once(), deduct_once())

        assert all(r.success for r in results)
        async with session_factory() as session:
            assert (await ProductRepository.get_bundle(session, bundle.id)).stock_limit == 1


class TestRestore:
    async def test_restore_is_inverse_of_deduct(self, db, seed):
        bundle = await seed.bundle(stock_limit=8)
        await StockService.deduct(db, [{"bundle_id": bundle.id, "quantity": 5}])

        result = await StockService.restore(db, [{"bundle_id": bundle.id, "quantity": 5}])

        assert result.success
        assert result.restored[0].new == 8

    async def test_products_follow_the_same_policy(self, db, seed):
        product = await seed.product(stock=3)

        deducted = await StockService.deduct_products(db, [{"product_id": product.id, "quantity": 4}])
        assert deducted.deducted[0].new == 0

        restored = await StockService.restore_products(db, [{"product_id": product.id, "quantity": 2}])
        assert restored.restored[0].new == 2

    async def test_restore_unknown_product_is_reported(self, db):
        result = await StockService.restore_products(db, [{"product_id": 404, "quantity": 1}])

        assert not result.success
        assert result.failed[0].product_id == 404
