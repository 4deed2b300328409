from fastapi import FastAPI

from shared.errors import register_exception_handlers
from shared.observability.setup import setup_observability

from .models import Cart, CartItem  # noqa: F401  (registers models with Base)
from .router import router, public_router

cart_app = FastAPI(title="Cart Service", version="2.0.0")

setup_observability(cart_app, "cart_service")
register_exception_handlers(cart_app)

cart_app.include_router(public_router)
cart_app.include_router(router)
