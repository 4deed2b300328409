"""
Razorpay REST client.

Configuration is passed in explicitly; nothing here reads the environment.
Every call runs with the configured timeout. Transport failures, timeouts and
5xx answers become retryable UpstreamErrors; 4xx answers are definitive.
"""
from decimal import ROUND_HALF_UP, Decimal

import httpx
import structlog

from shared.config.settings import GatewayConfig
from shared.errors import UpstreamError

logger = structlog.get_logger(__name__)


def to_minor_units(amount) -> int:
    """Rupees to paise."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount_minor) -> Decimal:
    return (Decimal(int(amount_minor)) / 100).quantize(Decimal("0.01"))


class RazorpayGateway:
    def __init__(self, config: GatewayConfig, transport: httpx.AsyncBaseTransport | None = None):
        if not config.key_id or not config.key_secret:
            logger.warning("gateway.credentials_missing", base_url=config.base_url)
        self.config = config
        self._transport = transport

    async def create_order_intent(self, amount_minor: int, currency: str | None = None, receipt: str | None = None, notes: dict | None = None) -> dict:
        if amount_minor <= 0:
            raise UpstreamError("Amount must be greater than 0")
        payload = {
            "amount": amount_minor,
            "currency": currency or self.config.currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        intent = await self._request("POST", "/orders", json=payload)
        logger.info("gateway.intent_created", gateway_order_id=intent.get("id"), amount_minor=amount_minor)
        return intent

    async def fetch_payment(self, payment_id: str) -> dict:
        return await self._request("GET", f"/payments/{payment_id}")

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            async with httpx.AsyncClient(
                base_url=self.config.base_url,
                auth=(self.config.key_id, self.config.key_secret),
                timeout=self.config.timeout,
                transport=self._transport,
            ) as client:
                resp = await client.request(method, path, **kwargs)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("gateway.request_failed", method=method, path=path, status=status)
            if status == 401:
                raise UpstreamError("Invalid payment gateway credentials") from e
            raise UpstreamError(f"Payment gateway returned {status}", retryable=status >= 500) from e
        except httpx.TimeoutException as e:
            logger.error("gateway.timeout", method=method, path=path)
            raise UpstreamError("Payment gateway timed out", retryable=True) from e
        except httpx.HTTPError as e:
            logger.error("gateway.unreachable", method=method, path=path, error=str(e))
            raise UpstreamError("Payment gateway unreachable", retryable=True) from e
