import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from .client import ShippingRateClient
from .models import Shipment
from .repository import ShipmentRepository

logger = structlog.get_logger(__name__)


class ShipmentService:
    @staticmethod
    async def request_shipment(
        db: AsyncSession,
        order_id: int,
        destination: dict,
        weight: int,
        mode: str,
        payment_mode: str,
        rates: ShippingRateClient | None = None,
    ) -> Shipment:
        """
        Stores a pending_review shipment stub for an order, costed through the
        shipping-rate service when one is configured. Errors propagate; the
        checkout records them as a best-effort failure.
        """
        existing = await ShipmentRepository.get_for_order(db, order_id)
        if existing:
            return existing

        pincode = destination.get("zip")
        estimated_cost = None
        if rates is not None and pincode:
            estimated_cost = await rates.estimate(pincode, weight, mode, payment_mode)

        shipment = Shipment(
            order_id=order_id,
            status="pending_review",
            delivery_mode=mode,
            payment_mode=payment_mode,
            weight=weight,
            destination_pincode=pincode,
            destination_city=destination.get("city"),
            destination_state=destination.get("state"),
            estimated_cost=estimated_cost,
        )
        shipment = await ShipmentRepository.create_shipment(db, shipment)
        logger.info("shipment.requested", order_id=order_id, shipment_id=shipment.id, estimated_cost=str(estimated_cost))
        return shipment
