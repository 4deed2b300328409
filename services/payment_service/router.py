"""
Payment routes. Everything except the gateway webhook and /health requires
X-Internal-API-Key; the webhook authenticates through its HMAC signature.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.schemas import OrderResponse
from services.shipment_service.client import ShippingRateClient, get_rate_client
from shared.config.database import get_db
from shared.config.settings import Settings, get_settings
from shared.security.dependencies import get_current_user_id, verify_internal_api_key

from .gateway import RazorpayGateway
from .schemas import IntentCreate, IntentResponse, PaymentResponse, PaymentVerify, VerifyResponse, WebhookAck
from .service import PaymentService

router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()  # Health check and the gateway webhook


def get_gateway(settings: Settings = Depends(get_settings)) -> RazorpayGateway:
    return RazorpayGateway(settings.gateway)


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "payment", "status": "running"}


@public_router.post("/razorpay/webhook", response_model=WebhookAck)
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    # Signature is computed over the exact bytes received
    raw_body = await request.body()
    return await PaymentService.handle_webhook(db, x_razorpay_signature, raw_body, settings.gateway.webhook_secret)


@router.post("/razorpay/create", response_model=IntentResponse)
async def create_intent(
    payload: IntentCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    return await PaymentService.create_intent(db, gateway, user_id, payload)


@router.post("/razorpay/verify", response_model=VerifyResponse)
async def verify_payment(
    payload: PaymentVerify,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
    rates: ShippingRateClient | None = Depends(get_rate_client),
):
    order, already_processed, report = await PaymentService.verify_and_place(db, gateway, user_id, payload, rates)
    return VerifyResponse(
        order=OrderResponse.model_validate(order),
        already_processed=already_processed,
        steps=[s.model_dump(mode="json") for s in report.steps] if report else [],
    )


@router.get("/history", response_model=List[PaymentResponse])
async def payment_history(
    status: Optional[str] = None,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await PaymentService.get_payment_history(db, user_id, status, limit, offset)


@router.get("/{payment_id}", response_model=PaymentResponse)
async def payment_details(payment_id: int, user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return await PaymentService.get_payment(db, payment_id, user_id)
