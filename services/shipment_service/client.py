"""Client for the external shipping-rate service used to cost a shipment."""
from decimal import Decimal

import httpx
import structlog

from shared.config.settings import get_settings
from shared.errors import UpstreamError

logger = structlog.get_logger(__name__)


class ShippingRateClient:
    def __init__(self, base_url: str, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def estimate(self, pincode: str, weight: int, mode: str, payment_mode: str) -> Decimal:
        params = {"pincode": pincode, "weight": weight, "mode": mode, "payment_mode": payment_mode}
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get("/rates", params=params)
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(
                f"Shipping rate lookup failed with {e.response.status_code}",
                retryable=e.response.status_code >= 500,
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Shipping rate service unreachable: {e}", retryable=True) from e

        cost = Decimal(str(resp.json()["total_amount"]))
        logger.info("shipment.rate_estimated", pincode=pincode, weight=weight, mode=mode, cost=str(cost))
        return cost


def get_rate_client() -> ShippingRateClient | None:
    """FastAPI dependency; None when no shipping-rate service is configured."""
    settings = get_settings()
    if not settings.shipping_rate_url:
        return None
    return ShippingRateClient(settings.shipping_rate_url, timeout=settings.gateway.timeout)
