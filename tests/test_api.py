"""
Route layer: each mounted service app is driven through FastAPI's TestClient
with the database, settings, gateway and shipping-rate dependencies swapped
for test doubles.
"""
import asyncio
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from services.cart_service.main import cart_app
from services.order_service.main import order_app
from services.payment_service.main import payment_app
from services.payment_service.router import get_gateway
from services.product_service.main import product_app
from services.shipment_service.client import get_rate_client
from shared.config.database import SCHEMAS, get_db, init_models
from shared.config.settings import Settings, get_settings
from tests.helpers import KEY_SECRET, WEBHOOK_SECRET, sign

APPS = (product_app, cart_app, order_app, payment_app)
USER = 5
INTERNAL_API_KEY = "test-internal-key"
HEADERS = {"X-Internal-API-Key": INTERNAL_API_KEY, "X-User-Id": str(USER)}
DETAILS = {
    "shipping_address": {
        "line1": "221B Residency Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "zip": "560025",
        "phone": "9123456789",
    },
    "delivery": {"mode": "surface"},
}


@pytest.fixture
def clients(tmp_path, gateway_config, gateway):
    # TestClient runs every request on its own event loop: no pooled connections
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        poolclass=NullPool,
        execution_options={"schema_translate_map": {schema: None for schema in SCHEMAS}},
    )
    asyncio.run(init_models(engine))
    factory = async_sessionmaker(engine, expire_on_commit=False)

    async def override_db():
        async with factory() as session:
            yield session

    settings = Settings(gateway=gateway_config, internal_api_key=INTERNAL_API_KEY)
    for app in APPS:
        app.dependency_overrides[get_db] = override_db
        app.dependency_overrides[get_settings] = lambda: settings
        app.dependency_overrides[get_rate_client] = lambda: None
    payment_app.dependency_overrides[get_gateway] = lambda: gateway

    yield {
        "products": TestClient(product_app),
        "carts": TestClient(cart_app),
        "orders": TestClient(order_app),
        "payments": TestClient(payment_app),
    }

    for app in APPS:
        app.dependency_overrides.clear()
    asyncio.run(engine.dispose())


def create_bundle(clients, price="499.00", stock_limit=10):
    resp = clients["products"].post(
        "/bundles", json={"title": "Festive Box", "price": price, "stock_limit": stock_limit, "weight": 400}, headers=HEADERS
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def add_to_cart(clients, bundle_id, quantity=1):
    resp = clients["carts"].post("/items", json={"bundle_id": bundle_id, "quantity": quantity}, headers=HEADERS)
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestSecurity:
    def test_health_is_public(self, clients):
        for client in clients.values():
            assert client.get("/health").status_code == 200

    def test_internal_key_required(self, clients):
        resp = clients["products"].get("/bundles")
        assert resp.status_code == 403

    def test_wrong_internal_key_rejected(self, clients):
        resp = clients["orders"].get("/", headers={**HEADERS, "X-Internal-API-Key": "guess"})
        assert resp.status_code == 403

    def test_user_id_required(self, clients):
        resp = clients["carts"].get("/", headers={"X-Internal-API-Key": INTERNAL_API_KEY})
        assert resp.status_code == 401


class TestCartRoutes:
    def test_add_update_remove(self, clients):
        bundle = create_bundle(clients)
        cart = add_to_cart(clients, bundle["id"], quantity=2)
        line_id = cart["lines"][0]["line_id"]
        assert Decimal(cart["subtotal"]) == Decimal("998.00")

        cart = clients["carts"].patch(f"/items/{line_id}", json={"quantity": 3}, headers=HEADERS).json()
        assert cart["lines"][0]["quantity"] == 3

        cart = clients["carts"].delete(f"/items/{line_id}", headers=HEADERS).json()
        assert cart["lines"] == []

    def test_unknown_line_is_404(self, clients):
        resp = clients["carts"].delete("/items/999", headers=HEADERS)
        assert resp.status_code == 404
        assert resp.json()["code"] == "NOT_FOUND"

    def test_stock_check(self, clients):
        bundle = create_bundle(clients, stock_limit=1)
        add_to_cart(clients, bundle["id"], quantity=3)

        body = clients["carts"].get("/stock", headers=HEADERS).json()

        assert body["all_in_stock"] is False
        assert body["out_of_stock_items"][0]["required_qty"] == 3


class TestOrderRoutes:
    def test_cod_checkout_then_cancel(self, clients):
        bundle = create_bundle(clients, stock_limit=10)
        add_to_cart(clients, bundle["id"], quantity=2)

        resp = clients["orders"].post("/", json=DETAILS, headers=HEADERS)
        assert resp.status_code == 201, resp.text
        order = resp.json()["order"]
        assert (order["status"], order["payment_status"]) == ("pending", "unpaid")
        assert Decimal(order["final_total"]) == Decimal("998.00")
        assert len(order["lines"]) == 1
        assert clients["products"].get(f"/bundles/{bundle['id']}", headers=HEADERS).json()["stock_limit"] == 8

        resp = clients["orders"].post(f"/{order['id']}/cancel", json={"reason": "  ordered twice "}, headers=HEADERS)
        assert resp.status_code == 200
        body = resp.json()
        assert body["order"]["status"] == "cancelled"
        assert body["order"]["cancellation_reason"] == "ordered twice"
        assert body["stock_restoration"]["success"] is True
        assert clients["products"].get(f"/bundles/{bundle['id']}", headers=HEADERS).json()["stock_limit"] == 10

        again = clients["orders"].post(f"/{order['id']}/cancel", headers=HEADERS)
        assert again.status_code == 409
        assert again.json()["code"] == "ORDER_CANNOT_BE_CANCELLED"

    def test_insufficient_stock_is_conflict(self, clients):
        bundle = create_bundle(clients, stock_limit=1)
        add_to_cart(clients, bundle["id"], quantity=2)

        resp = clients["orders"].post("/", json=DETAILS, headers=HEADERS)

        assert resp.status_code == 409
        body = resp.json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["out_of_stock_items"][0]["bundle_id"] == bundle["id"]

    def test_empty_cart_is_bad_request(self, clients):
        resp = clients["orders"].post("/", json=DETAILS, headers=HEADERS)
        assert resp.status_code == 400
        assert resp.json()["code"] == "CART_EMPTY"

    def test_missing_address_is_rejected(self, clients):
        resp = clients["orders"].post("/", json={"delivery": {"mode": "surface"}}, headers=HEADERS)
        assert resp.status_code == 422

    def test_admin_status_update(self, clients):
        add_to_cart(clients, create_bundle(clients)["id"])
        order = clients["orders"].post("/", json=DETAILS, headers=HEADERS).json()["order"]

        bad = clients["orders"].patch(f"/{order['id']}/status", json={"status": "lost"}, headers=HEADERS)
        assert bad.status_code == 400
        assert bad.json()["code"] == "INVALID_STATUS"

        ok = clients["orders"].patch(f"/{order['id']}/status", json={"status": "confirmed"}, headers=HEADERS)
        assert ok.json()["order"]["status"] == "confirmed"

    def test_other_users_order_is_404(self, clients):
        add_to_cart(clients, create_bundle(clients)["id"])
        order = clients["orders"].post("/", json=DETAILS, headers=HEADERS).json()["order"]

        resp = clients["orders"].get(f"/{order['id']}", headers={**HEADERS, "X-User-Id": str(USER + 1)})
        assert resp.status_code == 404


class TestPaymentRoutes:
    def test_intent_verify_and_replay(self, clients):
        add_to_cart(clients, create_bundle(clients, price="150.00")["id"], quantity=2)

        intent = clients["payments"].post("/razorpay/create", json={"metadata": DETAILS}, headers=HEADERS).json()
        assert intent["amount_minor"] == 30000

        payload = {
            "gateway_order_id": intent["gateway_order_id"],
            "gateway_payment_id": "pay_API1",
            "gateway_signature": sign(KEY_SECRET, f"{intent['gateway_order_id']}|pay_API1"),
            "metadata": intent["metadata"],
        }
        first = clients["payments"].post("/razorpay/verify", json=payload, headers=HEADERS)
        assert first.status_code == 200, first.text
        assert first.json()["order"]["payment_status"] == "paid"
        assert first.json()["already_processed"] is False

        replay = clients["payments"].post("/razorpay/verify", json=payload, headers=HEADERS).json()
        assert replay["already_processed"] is True
        assert replay["order"]["id"] == first.json()["order"]["id"]

        history = clients["payments"].get("/history", headers=HEADERS).json()
        assert [p["gateway_payment_id"] for p in history] == ["pay_API1"]

    def test_invalid_signature(self, clients):
        add_to_cart(clients, create_bundle(clients)["id"])
        payload = {
            "gateway_order_id": "order_GW1",
            "gateway_payment_id": "pay_X",
            "gateway_signature": "f" * 64,
            "metadata": DETAILS,
        }

        resp = clients["payments"].post("/razorpay/verify", json=payload, headers=HEADERS)

        assert resp.status_code == 400
        assert resp.json() == {
            "detail": "Payment verification failed",
            "code": "INVALID_SIGNATURE",
            "error_type": "InvalidSignatureError",
        }

    def test_gateway_outage_is_retryable(self, clients, fake_razorpay):
        add_to_cart(clients, create_bundle(clients)["id"])
        fake_razorpay.fail_with = 503

        resp = clients["payments"].post("/razorpay/create", json={"metadata": DETAILS}, headers=HEADERS)

        assert resp.status_code == 502
        assert resp.json()["retryable"] is True

    def test_webhook_needs_no_api_key_but_a_signature(self, clients):
        body = b'{"event": "payment.captured", "payload": {"payment": {"entity": {"id": "pay_1", "order_id": "order_none", "amount": 100}}}}'

        unsigned = clients["payments"].post("/razorpay/webhook", content=body)
        assert unsigned.status_code == 400

        signed = clients["payments"].post(
            "/razorpay/webhook", content=body, headers={"X-Razorpay-Signature": sign(WEBHOOK_SECRET, body)}
        )
        assert signed.status_code == 200
        assert signed.json()["outcome"] == "ignored"
