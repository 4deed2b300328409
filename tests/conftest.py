"""
Shared fixtures: a throwaway SQLite database per test (the per-service
Postgres schemas are translated away), catalog/cart seeding helpers and a
fake Razorpay API served through httpx.MockTransport.
"""
import json
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from shared.config.database import SCHEMAS, init_models
from shared.config.settings import GatewayConfig

# Register every model with Base before create_all
from services.product_service import models as product_models  # noqa: F401
from services.cart_service import models as cart_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401
from services.payment_service import models as payment_models  # noqa: F401
from services.shipment_service import models as shipment_models  # noqa: F401

from services.cart_service.schemas import CartItemCreate
from services.cart_service.service import CartService
from services.order_service.schemas import CheckoutDetails
from services.payment_service.gateway import RazorpayGateway
from services.product_service.schemas import BundleCreate, ProductCreate
from services.product_service.service import ProductService
from tests.helpers import KEY_SECRET, WEBHOOK_SECRET


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}",
        execution_options={"schema_translate_map": {schema: None for schema in SCHEMAS}},
    )
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


class Seeder:
    def __init__(self, db):
        self.db = db

    async def bundle(self, title="Starter Kit", price="499.00", stock_limit=10, weight=500):
        return await ProductService.create_bundle(
            self.db, BundleCreate(title=title, price=Decimal(price), stock_limit=stock_limit, weight=weight)
        )

    async def product(self, title="Refill Pack", price="99.50", stock=20, weight=None):
        return await ProductService.create_product(
            self.db, ProductCreate(title=title, price=Decimal(price), stock=stock, weight=weight)
        )

    async def add(self, user_id, bundle=None, product=None, quantity=1):
        data = CartItemCreate(
            bundle_id=bundle.id if bundle is not None else None,
            product_id=product.id if product is not None else None,
            quantity=quantity,
        )
        return await CartService.add_item(self.db, user_id, data)


@pytest.fixture
def seed(db):
    return Seeder(db)


@pytest.fixture
def checkout_details():
    return CheckoutDetails(
        shipping_address={
            "line1": "12 MG Road",
            "city": "Bengaluru",
            "state": "Karnataka",
            "zip": "560001",
            "phone": "9876543210",
        },
        delivery={"mode": "surface", "estimated_days": 5},
    )


@pytest.fixture
def gateway_config():
    return GatewayConfig(key_id="rzp_test_key", key_secret=KEY_SECRET, webhook_secret=WEBHOOK_SECRET)


class FakeRazorpay:
    """Just enough of the Razorpay REST API: POST /orders and GET /payments/{id}."""

    def __init__(self):
        self.intents = {}
        self.requests = []
        # gateway_payment_id -> captured amount in paise; default is the intent amount
        self.captured_amounts = {}
        self.fail_with = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            if isinstance(self.fail_with, Exception):
                raise self.fail_with
            return httpx.Response(self.fail_with, json={"error": {"description": "boom"}})

        path = request.url.path
        if request.method == "POST" and path.endswith("/orders"):
            body = json.loads(request.content)
            intent_id = f"order_GW{len(self.intents) + 1}"
            intent = {"id": intent_id, "amount": body["amount"], "currency": body["currency"], "status": "created"}
            self.intents[intent_id] = {**intent, "receipt": body.get("receipt"), "notes": body.get("notes")}
            return httpx.Response(200, json=intent)

        if request.method == "GET" and "/payments/" in path:
            payment_id = path.rsplit("/", 1)[-1]
            intent = next(iter(self.intents.values()), {"amount": 0, "currency": "INR"})
            amount = self.captured_amounts.get(payment_id, intent["amount"])
            return httpx.Response(
                200,
                json={"id": payment_id, "amount": amount, "currency": "INR", "status": "captured"},
            )

        return httpx.Response(404, json={"error": {"description": "not found"}})


@pytest.fixture
def fake_razorpay():
    return FakeRazorpay()


@pytest.fixture
def gateway(gateway_config, fake_razorpay):
    return RazorpayGateway(gateway_config, transport=httpx.MockTransport(fake_razorpay.handler))
