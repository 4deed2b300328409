import time
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.models import Order
from services.order_service.repository import OrderRepository
from services.order_service.schemas import CheckoutDetails
from services.shipment_service.client import ShippingRateClient
from shared.errors import CommerceError, ConflictError
from shared.observability import ecomm_checkout_duration_seconds, ecomm_checkout_total
from .checkout_saga import build_checkout_saga
from .saga import SagaReport

logger = structlog.get_logger(__name__)

# In-process lock against a double submit of the same cart
active_checkouts: set = set()


@dataclass
class CheckoutResult:
    order: Order
    report: SagaReport


class CheckoutService:
    @staticmethod
    async def place_order(
        db: AsyncSession,
        user_id: int,
        details: CheckoutDetails,
        payment_method: str = "cod",
        payment: dict | None = None,
        rates: ShippingRateClient | None = None,
    ) -> CheckoutResult:
        """
        Runs the cart → order pipeline for one user.

        The order is committed or nothing is. Once it is, stock deduction,
        cart clearing and shipment creation are attempted and their outcome
        is returned in `report` for the caller to inspect or repair later.
        """
        if user_id in active_checkouts:
            raise ConflictError("A checkout is already in progress for this cart", code="CHECKOUT_IN_PROGRESS")
        active_checkouts.add(user_id)

        ctx = {
            "db": db,
            "user_id": user_id,
            "details": details,
            "payment_method": payment_method,
            "payment": payment,
            "rates": rates,
        }
        started = time.perf_counter()
        try:
            report = await build_checkout_saga().execute(ctx)
        except CommerceError as e:
            ecomm_checkout_total.labels(status=e.code.lower(), payment_method=payment_method).inc()
            raise
        except Exception:
            ecomm_checkout_total.labels(status="error", payment_method=payment_method).inc()
            raise
        finally:
            active_checkouts.discard(user_id)
            ecomm_checkout_duration_seconds.observe(time.perf_counter() - started)

        status = "success" if report.complete else "partial"
        ecomm_checkout_total.labels(status=status, payment_method=payment_method).inc()
        if not report.complete:
            logger.warning(
                "checkout.incomplete",
                order_id=ctx["order_id"],
                failed_steps=[s.name for s in report.failures],
            )
        logger.info("checkout.completed", order_id=ctx["order_id"], user_id=user_id, payment_method=payment_method)

        order = await OrderRepository.get_order(db, ctx["order_id"], refresh=True)
        return CheckoutResult(order=order, report=report)
