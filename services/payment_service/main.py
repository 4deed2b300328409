from fastapi import FastAPI

from shared.errors import register_exception_handlers
from shared.observability.setup import setup_observability

from .models import Payment  # noqa: F401
from .router import router, public_router


payment_app = FastAPI(title="Payment Service", version="2.0.0")

# Structured logs, optional OTLP traces and /metrics
setup_observability(payment_app, "payment_service")
register_exception_handlers(payment_app)

payment_app.include_router(public_router)
payment_app.include_router(router)
