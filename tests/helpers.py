import hashlib
import hmac

KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"


def sign(secret: str, message) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
