"""
Payment Reconciler.

Online checkout runs in two calls. `create_intent` reserves the amount at the
gateway without writing a local order, so an abandoned payment leaves nothing
behind. `verify_and_place` checks the callback signature and only then runs
the same cart → order pipeline as cash on delivery, recording the payment in
the order's transaction. Webhooks reconcile independently of the browser
callback and are idempotent on the order's payment status.
"""
import json
import time

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from services.cart_service.service import CartService
from services.checkout_service.service import CheckoutService
from services.order_service.models import Order
from services.order_service.repository import OrderRepository
from services.order_service.service import OrderService
from services.order_service.totals import calculate_totals
from services.shipment_service.client import ShippingRateClient
from shared.errors import (
    ConflictError,
    InsufficientStockError,
    InvalidSignatureError,
    NotFoundError,
)
from shared.observability import ecomm_payment_verifications_total, ecomm_webhook_events_total
from .gateway import RazorpayGateway, from_minor_units, to_minor_units
from .models import Payment
from .repository import PaymentRepository
from .schemas import IntentCreate, IntentResponse, PaymentVerify, WebhookAck
from .signature import verify_payment_signature, verify_webhook_signature

logger = structlog.get_logger(__name__)

CAPTURE_EVENTS = {"payment.captured", "order.paid"}
REFUND_EVENTS = {"refund.created", "refund.processed"}
# A captured payment has been booked against the order
SETTLED_PAYMENT_STATUSES = {"paid", "refunded"}


class PaymentService:
    @staticmethod
    async def create_intent(db: AsyncSession, gateway: RazorpayGateway, user_id: int, data: IntentCreate) -> IntentResponse:
        """
        Totals are computed from the live cart. When `order_id` names an
        existing unpaid order of the caller, its stored final_total is charged
        instead and the gateway order id is attached to it.
        """
        order = None
        if data.order_id is not None:
            order = await OrderRepository.get_order(db, data.order_id, user_id)
            if order is None:
                raise NotFoundError(f"Order {data.order_id} not found")
            if order.status == "cancelled":
                raise ConflictError(f"Order {order.id} is cancelled", code="ORDER_CANCELLED")
            if order.payment_status in SETTLED_PAYMENT_STATUSES:
                raise ConflictError(f"Order {order.id} is already paid", code="ORDER_ALREADY_PAID")
            amount = order.final_total
        else:
            cart = await CartService.get_cart(db, user_id)
            CartService.require_lines(cart)
            stock = await CartService.check_stock(db, user_id, cart)
            if not stock.all_in_stock:
                raise InsufficientStockError([i.model_dump(mode="json") for i in stock.out_of_stock_items])
            delivery = data.metadata.delivery
            amount = calculate_totals(
                [{"price": l.price, "quantity": l.quantity, "weight": l.weight} for l in cart.lines],
                delivery_mode=delivery.mode,
                express_charge=delivery.express_charge,
            ).final_total

        amount_minor = to_minor_units(amount)
        receipt = f"order_{order.id}" if order is not None else f"receipt_{user_id}_{int(time.time())}"
        notes = {"user_id": str(user_id), "order_id": str(order.id) if order is not None else ""}
        intent = await gateway.create_order_intent(amount_minor, gateway.config.currency, receipt, notes)

        if order is not None:
            order.gateway_order_id = intent["id"]
            await OrderRepository.save(db, order)

        logger.info("payment.intent_created", user_id=user_id, gateway_order_id=intent["id"], amount=str(amount))
        return IntentResponse(
            gateway_order_id=intent["id"],
            amount=from_minor_units(intent.get("amount", amount_minor)),
            amount_minor=intent.get("amount", amount_minor),
            currency=intent.get("currency", gateway.config.currency),
            key_id=gateway.config.key_id,
            order_id=order.id if order is not None else None,
            metadata=data.metadata,
        )

    @staticmethod
    async def verify_and_place(
        db: AsyncSession,
        gateway: RazorpayGateway,
        user_id: int,
        data: PaymentVerify,
        rates: ShippingRateClient | None = None,
    ):
        """
        Returns (order, already_processed, saga report or None).

        A second verification of the same gateway order returns the order the
        first one produced; no second order or payment record is written.
        """
        valid = verify_payment_signature(
            gateway.config.key_secret, data.gateway_order_id, data.gateway_payment_id, data.gateway_signature
        )
        ecomm_payment_verifications_total.labels(result="valid" if valid else "invalid").inc()
        if not valid:
            logger.warning("payment.signature_invalid", user_id=user_id, gateway_order_id=data.gateway_order_id)
            raise InvalidSignatureError()

        existing = await OrderRepository.get_by_gateway_order_id(db, data.gateway_order_id)
        if existing is not None:
            if existing.user_id != user_id:
                raise NotFoundError(f"No order for gateway order {data.gateway_order_id}")
            if existing.payment_status in SETTLED_PAYMENT_STATUSES:
                logger.info("payment.already_processed", order_id=existing.id, gateway_order_id=data.gateway_order_id)
                return existing, True, None

        captured = await gateway.fetch_payment(data.gateway_payment_id)
        amount = from_minor_units(captured["amount"])
        currency = captured.get("currency", gateway.config.currency)

        if existing is not None:
            # Intent was created for an order placed earlier
            order = await PaymentService._settle_existing(db, existing, data, amount, currency)
            return order, False, None

        payment = {
            "gateway_order_id": data.gateway_order_id,
            "gateway_payment_id": data.gateway_payment_id,
            "gateway_signature": data.gateway_signature,
            "amount": amount,
            "currency": currency,
        }
        try:
            result = await CheckoutService.place_order(
                db, user_id, data.metadata, payment_method="online", payment=payment, rates=rates
            )
        except IntegrityError:
            # A webhook or a parallel verify committed the same gateway order first
            existing = await OrderRepository.get_by_gateway_order_id(db, data.gateway_order_id)
            if existing is None:
                raise
            logger.info("payment.already_processed", order_id=existing.id, gateway_order_id=data.gateway_order_id)
            return existing, True, None

        logger.info("payment.verified", order_id=result.order.id, gateway_payment_id=data.gateway_payment_id)
        return result.order, False, result.report

    @staticmethod
    async def _settle_existing(db: AsyncSession, order: Order, data: PaymentVerify, amount, currency) -> Order:
        if amount != order.final_total:
            order.requires_review = True
            logger.warning(
                "payment.amount_mismatch",
                order_id=order.id,
                captured=str(amount),
                expected=str(order.final_total),
            )
        await PaymentService._record_capture(
            db, order, data.gateway_payment_id, data.gateway_order_id, amount, currency, data.gateway_signature
        )
        logger.info("payment.verified", order_id=order.id, gateway_payment_id=data.gateway_payment_id)
        return await OrderRepository.get_order(db, order.id, refresh=True)

    @staticmethod
    async def _record_capture(
        db: AsyncSession,
        order: Order,
        gateway_payment_id: str,
        gateway_order_id: str | None,
        amount,
        currency: str,
        gateway_signature: str | None = None,
    ):
        """
        Books a captured payment against an order placed earlier and commits.
        A cancelled order stays cancelled; see OrderService.mark_paid.
        """
        OrderService.mark_paid(order, gateway_payment_id, gateway_signature)
        if await PaymentRepository.get_by_gateway_payment_id(db, gateway_payment_id) is None:
            db.add(
                Payment(
                    order_id=order.id,
                    user_id=order.user_id,
                    gateway_payment_id=gateway_payment_id,
                    gateway_order_id=gateway_order_id,
                    amount=amount,
                    currency=currency,
                )
            )
        await db.commit()

    @staticmethod
    async def handle_webhook(db: AsyncSession, signature: str | None, raw_body: bytes, secret: str) -> WebhookAck:
        """
        Bad signatures are rejected. Anything else is acknowledged, including
        events that fail internally, so the gateway does not redeliver forever;
        those failures are logged for manual follow-up.
        """
        if not verify_webhook_signature(secret, signature, raw_body):
            ecomm_webhook_events_total.labels(event="unknown", outcome="rejected").inc()
            logger.warning("webhook.signature_invalid")
            raise InvalidSignatureError()

        try:
            body = json.loads(raw_body)
            event = body["event"]
            payload = body.get("payload") or {}
        except (ValueError, KeyError, TypeError):
            ecomm_webhook_events_total.labels(event="unknown", outcome="ignored").inc()
            logger.warning("webhook.ignored", reason="malformed body")
            return WebhookAck(outcome="ignored")

        try:
            if event in CAPTURE_EVENTS:
                outcome = await PaymentService._on_captured(db, payload)
            elif event == "payment.failed":
                outcome = await PaymentService._on_failed(db, payload)
            elif event in REFUND_EVENTS:
                outcome = await PaymentService._on_refund(db, payload)
            else:
                outcome = "ignored"
                logger.info("webhook.ignored", webhook_event=event, reason="unhandled event")
        except Exception as e:
            await db.rollback()
            outcome = "error"
            logger.exception("webhook.processing_failed", webhook_event=event, error=str(e))

        ecomm_webhook_events_total.labels(event=event, outcome=outcome).inc()
        logger.info("webhook.handled", webhook_event=event, outcome=outcome)
        return WebhookAck(event=event, outcome=outcome)

    @staticmethod
    async def _order_for_payment_entity(db: AsyncSession, entity: dict):
        if entity.get("order_id"):
            order = await OrderRepository.get_by_gateway_order_id(db, entity["order_id"])
            if order is not None:
                return order
        local_id = (entity.get("notes") or {}).get("order_id")
        if local_id and str(local_id).isdigit():
            return await OrderRepository.get_order(db, int(local_id), refresh=True)
        return None

    @staticmethod
    async def _on_captured(db: AsyncSession, payload: dict) -> str:
        entity = payload["payment"]["entity"]
        order = await PaymentService._order_for_payment_entity(db, entity)
        if order is None:
            # The browser callback has not placed the order yet; it will record the payment itself
            logger.info("webhook.ignored", gateway_payment_id=entity.get("id"), reason="no local order")
            return "ignored"
        if order.payment_status in SETTLED_PAYMENT_STATUSES:
            return "noop"

        await PaymentService._record_capture(
            db,
            order,
            entity["id"],
            entity.get("order_id"),
            from_minor_units(entity["amount"]),
            entity.get("currency", "INR"),
        )
        logger.info("order.payment_captured", order_id=order.id, gateway_payment_id=entity["id"])
        return "applied"

    @staticmethod
    async def _on_failed(db: AsyncSession, payload: dict) -> str:
        entity = payload["payment"]["entity"]
        order = await PaymentService._order_for_payment_entity(db, entity)
        if order is None:
            logger.info("webhook.ignored", gateway_payment_id=entity.get("id"), reason="no local order")
            return "ignored"
        if order.payment_status != "unpaid":
            return "noop"

        order.payment_status = "failed"
        if await PaymentRepository.get_by_gateway_payment_id(db, entity["id"]) is None:
            db.add(
                Payment(
                    order_id=order.id,
                    user_id=order.user_id,
                    gateway_payment_id=entity["id"],
                    gateway_order_id=entity.get("order_id"),
                    amount=from_minor_units(entity.get("amount", 0)),
                    currency=entity.get("currency", "INR"),
                    status="failed",
                    is_success=False,
                    failure_msg=entity.get("error_description"),
                )
            )
        await db.commit()
        logger.info("order.payment_failed", order_id=order.id, gateway_payment_id=entity["id"])
        return "applied"

    @staticmethod
    async def _on_refund(db: AsyncSession, payload: dict) -> str:
        entity = payload["refund"]["entity"]
        record = await PaymentRepository.get_by_gateway_payment_id(db, entity["payment_id"])
        if record is None or record.order_id is None:
            logger.info("webhook.ignored", refund_id=entity.get("id"), reason="unknown payment")
            return "ignored"
        if record.status == "refunded":
            return "noop"

        record.status = "refunded"
        order = await OrderRepository.get_order(db, record.order_id, refresh=True)
        if order is not None and order.payment_status == "paid":
            order.payment_status = "refunded"
        await db.commit()
        logger.info("order.refunded", order_id=record.order_id, refund_id=entity.get("id"))
        return "applied"

    @staticmethod
    async def get_payment_history(db: AsyncSession, user_id: int, status: str | None = None, limit: int = 10, offset: int = 0):
        return await PaymentRepository.list_for_user(db, user_id, status, limit, offset)

    @staticmethod
    async def get_payment(db: AsyncSession, payment_id: int, user_id: int) -> Payment:
        payment = await PaymentRepository.get_for_user(db, payment_id, user_id)
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found")
        return payment
