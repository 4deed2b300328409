from fastapi import FastAPI

from shared.config.database import init_models
from shared.errors import register_exception_handlers
from shared.observability import configure_logging

# IMPORTANT: import models so they register with Base
from services.product_service import models as product_models  # noqa: F401
from services.cart_service import models as cart_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401
from services.payment_service import models as payment_models  # noqa: F401
from services.shipment_service import models as shipment_models  # noqa: F401

from services.product_service.main import product_app
from services.cart_service.main import cart_app
from services.order_service.main import order_app
from services.payment_service.main import payment_app

configure_logging()

app = FastAPI(title="Storefront Cluster")
register_exception_handlers(app)


@app.on_event("startup")
async def startup_event():
    # Schemas (Postgres only) and all tables
    await init_models()


@app.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "storefront", "status": "running"}


app.mount("/products", product_app)
app.mount("/carts", cart_app)
app.mount("/orders", order_app)
app.mount("/payments", payment_app)
