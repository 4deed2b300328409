"""HMAC-SHA256 checks for checkout callbacks and webhook deliveries. Never raise."""
import hashlib
import hmac
import secrets

import structlog

logger = structlog.get_logger(__name__)


def _hex_hmac(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(secret: str, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
    if not all(isinstance(v, str) and v for v in (secret, gateway_order_id, gateway_payment_id, signature)):
        return False
    try:
        expected = _hex_hmac(secret, f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8"))
        return secrets.compare_digest(expected, signature)
    except (TypeError, ValueError, UnicodeError):
        return False


def verify_webhook_signature(secret: str, signature: str, raw_body: bytes) -> bool:
    if not secret:
        logger.warning("webhook.secret_unset", detail="signature verification skipped")
        return True
    if not signature or raw_body is None:
        return False
    try:
        body = raw_body.encode("utf-8") if isinstance(raw_body, str) else bytes(raw_body)
        return secrets.compare_digest(_hex_hmac(secret, body), signature)
    except (TypeError, ValueError, UnicodeError):
        return False
