"""
Cart → order pipeline as saga steps.

Every step reads from and writes to the shared `ctx` dict:

    db, user_id, details (CheckoutDetails), payment_method ("cod" | "online"),
    payment (gateway ids and captured amount, online only), rates (optional
    ShippingRateClient)

Steps up to and including create_order are critical. Everything after the
order is committed is best-effort: failures are reported, never undone.
"""
from decimal import Decimal

import structlog

from services.cart_service.service import CartService
from services.order_service.schemas import OrderHeader, OrderLineCreate
from services.order_service.service import OrderService
from services.order_service.totals import calculate_totals as compute_totals
from services.payment_service.models import Payment
from services.product_service.schemas import StockDeduction
from services.product_service.service import StockService
from services.shipment_service.service import ShipmentService
from shared.errors import InsufficientStockError
from .saga import PartialFailure, SagaOrchestrator

logger = structlog.get_logger(__name__)

# --- ACTIONS ---

async def load_cart(ctx: dict):
    cart = await CartService.get_cart(ctx["db"], ctx["user_id"])
    CartService.require_lines(cart)
    ctx["cart"] = cart
    return {"lines": cart.item_count}


async def check_stock(ctx: dict):
    stock = await CartService.check_stock(ctx["db"], ctx["user_id"], ctx["cart"])
    if not stock.all_in_stock:
        raise InsufficientStockError([item.model_dump(mode="json") for item in stock.out_of_stock_items])


async def calculate_totals(ctx: dict):
    delivery = ctx["details"].delivery
    totals = compute_totals(
        [{"price": l.price, "quantity": l.quantity, "weight": l.weight} for l in ctx["cart"].lines],
        delivery_mode=delivery.mode,
        express_charge=delivery.express_charge,
    )
    ctx["totals"] = totals
    return {"final_total": str(totals.final_total)}


async def create_order(ctx: dict):
    details, totals = ctx["details"], ctx["totals"]
    online = ctx["payment_method"] == "online"
    payment = ctx.get("payment") or {}

    requires_review = False
    if online and payment.get("amount") is not None:
        captured = Decimal(str(payment["amount"]))
        if captured != totals.final_total:
            requires_review = True
            logger.warning(
                "payment.amount_mismatch",
                gateway_order_id=payment.get("gateway_order_id"),
                captured=str(captured),
                expected=str(totals.final_total),
            )

    header = OrderHeader(
        user_id=ctx["user_id"],
        subtotal=totals.subtotal,
        express_charge=totals.express_charge,
        discount=totals.discount,
        final_total=totals.final_total,
        shipping_address=details.shipping_address,
        delivery_metadata=details.delivery,
        payment_method=ctx["payment_method"],
        payment_status="paid" if online else "unpaid",
        status="confirmed" if online else "pending",
        notes=details.notes,
        gift_wrap=details.gift_wrap,
        gift_message=details.gift_message,
        requires_review=requires_review,
        gateway_order_id=payment.get("gateway_order_id"),
        gateway_payment_id=payment.get("gateway_payment_id"),
        gateway_signature=payment.get("gateway_signature"),
    )
    lines = [
        OrderLineCreate(
            bundle_id=l.bundle_id,
            product_id=l.product_id,
            title=l.title,
            quantity=l.quantity,
            unit_price=l.price,
            bundle_origin=l.bundle_origin,
        )
        for l in ctx["cart"].lines
    ]

    record = None
    if online:
        record = Payment(
            user_id=ctx["user_id"],
            provider="razorpay",
            gateway_payment_id=payment["gateway_payment_id"],
            gateway_order_id=payment.get("gateway_order_id"),
            amount=payment.get("amount", totals.final_total),
            currency=payment.get("currency", "INR"),
            status="captured",
            is_success=True,
        )

    order = await OrderService.create(ctx["db"], header, lines, payment=record)
    # Plain values only from here on: a rollback in a later step expires ORM objects
    ctx["order_id"] = order.id
    ctx["shipping_address"] = dict(order.shipping_address)
    return {"order_id": order.id}


async def deduct_stock(ctx: dict):
    db, lines = ctx["db"], ctx["cart"].lines
    bundles = await StockService.deduct(
        db, [{"bundle_id": l.bundle_id, "quantity": l.quantity} for l in lines if l.bundle_id is not None]
    )
    products = await StockService.deduct_products(
        db, [{"product_id": l.product_id, "quantity": l.quantity} for l in lines if l.product_id is not None]
    )
    report = StockDeduction(
        success=bundles.success and products.success,
        deducted=bundles.deducted + products.deducted,
        failed=bundles.failed + products.failed,
    )
    detail = report.model_dump(mode="json")
    if not report.success:
        raise PartialFailure(f"{len(report.failed)} stock deduction(s) failed for order {ctx['order_id']}", detail)
    return detail


async def clear_cart(ctx: dict):
    removed = await CartService.remove_ordered_lines(ctx["db"], ctx["user_id"], ctx["cart"])
    return {"removed": removed}


async def request_shipment(ctx: dict):
    shipment = await ShipmentService.request_shipment(
        ctx["db"],
        ctx["order_id"],
        ctx["shipping_address"],
        ctx["totals"].estimated_weight,
        ctx["details"].delivery.mode,
        ctx["payment_method"],
        rates=ctx.get("rates"),
    )
    return {
        "shipment_id": shipment.id,
        "status": shipment.status,
        "estimated_cost": str(shipment.estimated_cost) if shipment.estimated_cost is not None else None,
    }


# --- BUILDER FACTORY ---

def releasing_session(action):
    """
    A best-effort step that fails mid-write leaves the shared session in a
    failed state. Rolling back discards only that step's uncommitted work;
    the order and the steps before it are already committed.
    """
    async def run(ctx: dict):
        try:
            return await action(ctx)
        except Exception:
            await ctx["db"].rollback()
            raise

    return run


def build_checkout_saga() -> SagaOrchestrator:
    saga = SagaOrchestrator()
    saga.add_step("load_cart", load_cart)
    saga.add_step("check_stock", check_stock)
    saga.add_step("calculate_totals", calculate_totals)
    saga.add_step("create_order", create_order)
    saga.add_step("deduct_stock", releasing_session(deduct_stock), best_effort=True)
    saga.add_step("clear_cart", releasing_session(clear_cart), best_effort=True)
    saga.add_step("request_shipment", releasing_session(request_shipment), best_effort=True)
    return saga
