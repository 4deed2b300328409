from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.product_service.schemas import StockRestoration
from services.product_service.service import StockService
from shared.errors import (
    InvalidStatusError,
    NotFoundError,
    OrderCannotBeCancelledError,
    ValidationError,
)
from .models import Order, OrderLine
from .repository import OrderRepository
from .schemas import OrderHeader, OrderLineCreate

logger = structlog.get_logger(__name__)

ORDER_STATUSES = {
    "pending",
    "confirmed",
    "processing",
    "picked_up",
    "in_transit",
    "out_for_delivery",
    "delivered",
    "failed",
    "rto_initiated",
    "rto_delivered",
    "cancelled",
}

PAYMENT_STATUSES = {"unpaid", "paid", "refunded", "failed"}

CANCELLABLE_STATUSES = {"pending", "confirmed"}

# Documented lifecycle. Writes outside it are allowed but logged.
ALLOWED_TRANSITIONS = {
    "pending": {"confirmed", "cancelled", "failed"},
    "confirmed": {"processing", "cancelled", "failed"},
    "processing": {"picked_up", "failed"},
    "picked_up": {"in_transit", "failed", "rto_initiated"},
    "in_transit": {"out_for_delivery", "failed", "rto_initiated"},
    "out_for_delivery": {"delivered", "failed", "rto_initiated"},
    "rto_initiated": {"rto_delivered"},
    "delivered": set(),
    "rto_delivered": set(),
    "failed": set(),
    "cancelled": set(),
}

STATUS_TIMESTAMPS = {
    "confirmed": "confirmed_at",
    "delivered": "delivered_at",
    "cancelled": "cancelled_at",
}


def _utcnow():
    return datetime.now(timezone.utc)


class OrderService:
    """Order Writer: creation, status transitions and cancellation."""

    @staticmethod
    async def create(db: AsyncSession, header: OrderHeader, lines: list[OrderLineCreate], payment=None) -> Order:
        if not lines:
            raise ValidationError("An order needs at least one line", code="CART_EMPTY")
        if header.final_total != header.subtotal + header.express_charge - header.discount:
            raise ValidationError("final_total must equal subtotal + express_charge - discount")
        for status, allowed in ((header.status, ORDER_STATUSES), (header.payment_status, PAYMENT_STATUSES)):
            if status not in allowed:
                raise InvalidStatusError(status, allowed)

        now = _utcnow()
        order = Order(
            user_id=header.user_id,
            subtotal=header.subtotal,
            express_charge=header.express_charge,
            discount=header.discount,
            final_total=header.final_total,
            shipping_address=header.shipping_address.model_dump(mode="json"),
            delivery_metadata=header.delivery_metadata.model_dump(mode="json") if header.delivery_metadata else None,
            payment_method=header.payment_method,
            payment_status=header.payment_status,
            status=header.status,
            notes=header.notes,
            gift_wrap=header.gift_wrap,
            gift_message=header.gift_message,
            requires_review=header.requires_review,
            gateway_order_id=header.gateway_order_id,
            gateway_payment_id=header.gateway_payment_id,
            gateway_signature=header.gateway_signature,
            confirmed_at=now if header.status == "confirmed" else None,
            paid_at=now if header.payment_status == "paid" else None,
        )
        order.lines = [
            OrderLine(
                bundle_id=line.bundle_id,
                product_id=line.product_id,
                title=line.title,
                quantity=line.quantity,
                unit_price=line.unit_price,
                bundle_origin=line.bundle_origin,
            )
            for line in lines
        ]

        order = await OrderRepository.create_order(db, order, payment=payment)
        logger.info(
            "order.created",
            order_id=order.id,
            user_id=order.user_id,
            lines=len(order.lines),
            final_total=str(order.final_total),
            payment_method=order.payment_method,
        )
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int, user_id: int | None = None) -> Order:
        order = await OrderRepository.get_order(db, order_id, user_id)
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    @staticmethod
    async def list_orders(db: AsyncSession, user_id: int, status: str | None = None, limit: int = 20, offset: int = 0):
        if status and status not in ORDER_STATUSES:
            raise InvalidStatusError(status, ORDER_STATUSES)
        return await OrderRepository.list_orders(db, user_id, status, limit, offset)

    @staticmethod
    async def update_status(db: AsyncSession, order_id: int, new_status: str):
        """
        Permissive: any known status may be written. Transitions outside the
        documented lifecycle are logged, not rejected.
        Returns (order, stock restoration report or None).
        """
        if new_status not in ORDER_STATUSES:
            raise InvalidStatusError(new_status, ORDER_STATUSES)
        order = await OrderService.get_order(db, order_id)

        previous = order.status
        if new_status != previous and new_status not in ALLOWED_TRANSITIONS.get(previous, set()):
            logger.warning("order.illegal_transition", order_id=order_id, from_status=previous, to_status=new_status)

        OrderService.apply_status(order, new_status)
        await OrderRepository.save(db, order)
        logger.info("order.status_updated", order_id=order_id, from_status=previous, to_status=new_status)

        restoration = None
        if new_status == "cancelled" and previous != "cancelled":
            restoration = await OrderService.restore_stock(db, order)
            order = await OrderRepository.get_order(db, order_id, refresh=True)
        return order, restoration

    @staticmethod
    async def update_payment_status(db: AsyncSession, order_id: int, payment_status: str, gateway_payment_id: str | None = None):
        if payment_status not in PAYMENT_STATUSES:
            raise InvalidStatusError(payment_status, PAYMENT_STATUSES)
        order = await OrderService.get_order(db, order_id)

        order.payment_status = payment_status
        if gateway_payment_id:
            order.gateway_payment_id = gateway_payment_id
        if payment_status == "paid" and order.paid_at is None:
            order.paid_at = _utcnow()
        await OrderRepository.save(db, order)
        logger.info("order.payment_status_updated", order_id=order_id, payment_status=payment_status)
        return order

    @staticmethod
    async def cancel(db: AsyncSession, order_id: int, user_id: int, reason: str | None = None):
        """
        Customer cancellation. Only pending/confirmed orders qualify; a paid
        order is flagged as refunded (the refund itself is issued elsewhere).
        Returns (order, stock restoration report).
        """
        order = await OrderRepository.get_order(db, order_id, user_id)
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        if order.status not in CANCELLABLE_STATUSES:
            raise OrderCannotBeCancelledError(order.status)

        OrderService.apply_status(order, "cancelled")
        order.cancellation_reason = reason
        if order.payment_status == "paid":
            order.payment_status = "refunded"
        await OrderRepository.save(db, order)
        logger.info("order.cancelled", order_id=order_id, user_id=user_id, payment_status=order.payment_status)

        restoration = await OrderService.restore_stock(db, order)
        order = await OrderRepository.get_order(db, order_id, refresh=True)
        return order, restoration

    @staticmethod
    async def restore_stock(db: AsyncSession, order: Order) -> StockRestoration:
        """Put a cancelled order's quantities back. Best-effort, per item."""
        lines = list(order.lines)
        bundles = await StockService.restore(
            db, [{"bundle_id": l.bundle_id, "quantity": l.quantity} for l in lines if l.bundle_id is not None]
        )
        products = await StockService.restore_products(
            db, [{"product_id": l.product_id, "quantity": l.quantity} for l in lines if l.product_id is not None]
        )
        report = StockRestoration(
            success=bundles.success and products.success,
            restored=bundles.restored + products.restored,
            failed=bundles.failed + products.failed,
        )
        if not report.success:
            logger.error("order.stock_restore_incomplete", order_id=order.id, failed=len(report.failed))
        return report

    @staticmethod
    def mark_paid(order: Order, gateway_payment_id: str, gateway_signature: str | None = None):
        """
        In-memory only; the caller commits together with its payment record.

        A cancelled order stays cancelled. Its stock is already restored, so
        the captured money is owed back: the order is marked refunded and held
        for review until the refund is issued at the gateway.
        """
        order.gateway_payment_id = gateway_payment_id
        if gateway_signature:
            order.gateway_signature = gateway_signature
        if order.status == "cancelled":
            order.payment_status = "refunded"
            order.requires_review = True
            logger.warning("order.captured_after_cancel", order_id=order.id, gateway_payment_id=gateway_payment_id)
            return
        order.payment_status = "paid"
        if order.paid_at is None:
            order.paid_at = _utcnow()
        if order.status == "pending":
            OrderService.apply_status(order, "confirmed")

    @staticmethod
    def apply_status(order: Order, new_status: str):
        order.status = new_status
        stamp = STATUS_TIMESTAMPS.get(new_status)
        if stamp and getattr(order, stamp) is None:
            setattr(order, stamp, _utcnow())
