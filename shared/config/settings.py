"""
Explicit configuration objects.

Values are read from the environment once (a .env file is honoured through
python-dotenv) and handed to services through FastAPI dependencies, so
nothing below the router layer reads os.environ directly.
"""
import os
import warnings
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

RAZORPAY_API_URL = "https://api.razorpay.com/v1"
INSECURE_INTERNAL_API_KEY = "insecure-default-change-me"


@dataclass(frozen=True)
class GatewayConfig:
    key_id: str
    key_secret: str
    currency: str = "INR"
    webhook_secret: str = ""
    base_url: str = RAZORPAY_API_URL
    timeout: float = 10.0


@dataclass(frozen=True)
class Settings:
    gateway: GatewayConfig
    internal_api_key: str = INSECURE_INTERNAL_API_KEY
    shipping_rate_url: str = ""
    otlp_endpoint: str = ""


def load_settings() -> Settings:
    gateway = GatewayConfig(
        key_id=os.getenv("RAZORPAY_KEY_ID", ""),
        key_secret=os.getenv("RAZORPAY_KEY_SECRET", ""),
        currency=os.getenv("RAZORPAY_CURRENCY", "INR"),
        webhook_secret=os.getenv("RAZORPAY_WEBHOOK_SECRET", ""),
        base_url=os.getenv("RAZORPAY_BASE_URL", RAZORPAY_API_URL),
        timeout=float(os.getenv("GATEWAY_TIMEOUT", "10")),
    )
    internal_api_key = os.getenv("INTERNAL_API_KEY", "")
    if not internal_api_key:
        warnings.warn("INTERNAL_API_KEY is not set. Using an insecure default.", stacklevel=2)
        internal_api_key = INSECURE_INTERNAL_API_KEY
    return Settings(
        gateway=gateway,
        internal_api_key=internal_api_key,
        shipping_rate_url=os.getenv("SHIPPING_RATE_URL", ""),
        otlp_endpoint=os.getenv("OTLP_ENDPOINT", ""),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
