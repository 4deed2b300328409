from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from services.checkout_service.service import CheckoutService
from services.product_service.schemas import StockRestoration
from services.shipment_service.client import ShippingRateClient, get_rate_client
from shared.config.database import get_db
from shared.security.dependencies import get_current_user_id, verify_internal_api_key

from .schemas import CancelRequest, CheckoutDetails, OrderResponse, PaymentStatusUpdate, StatusUpdate
from .service import OrderService

# THIS PROTECTS THE ENTIRE SERVICE
router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()


class PlacedOrder(BaseModel):
    order: OrderResponse
    steps: list = []


class StatusChange(BaseModel):
    order: OrderResponse
    stock_restoration: Optional[StockRestoration] = None


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "order", "status": "running"}


@router.post("/", response_model=PlacedOrder, status_code=201)
async def place_cod_order(
    details: CheckoutDetails,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    rates: ShippingRateClient | None = Depends(get_rate_client),
):
    """Cash on delivery: the cart is turned into an order right away."""
    result = await CheckoutService.place_order(db, user_id, details, payment_method="cod", rates=rates)
    return PlacedOrder(
        order=OrderResponse.model_validate(result.order),
        steps=[s.model_dump(mode="json") for s in result.report.steps],
    )


@router.get("/", response_model=List[OrderResponse])
async def list_orders(
    status: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.list_orders(db, user_id, status, limit, offset)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: int, user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return await OrderService.get_order(db, order_id, user_id)


@router.post("/{order_id}/cancel", response_model=StatusChange)
async def cancel_order(
    order_id: int,
    payload: Optional[CancelRequest] = None,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    order, restoration = await OrderService.cancel(db, order_id, user_id, payload.reason if payload else None)
    return StatusChange(order=OrderResponse.model_validate(order), stock_restoration=restoration)


# Admin routes: no owner check, the upstream gateway restricts who reaches them
@router.patch("/{order_id}/status", response_model=StatusChange)
async def update_status(order_id: int, payload: StatusUpdate, db: AsyncSession = Depends(get_db)):
    order, restoration = await OrderService.update_status(db, order_id, payload.status)
    return StatusChange(order=OrderResponse.model_validate(order), stock_restoration=restoration)


@router.patch("/{order_id}/payment_status", response_model=OrderResponse)
async def update_payment_status(order_id: int, payload: PaymentStatusUpdate, db: AsyncSession = Depends(get_db)):
    return await OrderService.update_payment_status(db, order_id, payload.payment_status, payload.gateway_payment_id)
