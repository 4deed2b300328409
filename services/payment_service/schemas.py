from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from services.order_service.schemas import CheckoutDetails, OrderResponse


class IntentCreate(BaseModel):
    # Round-tripped to the client and replayed verbatim on verification
    metadata: CheckoutDetails
    order_id: Optional[int] = None


class IntentResponse(BaseModel):
    gateway_order_id: str
    amount: Decimal
    amount_minor: int
    currency: str
    key_id: str
    order_id: Optional[int] = None
    metadata: CheckoutDetails


class PaymentVerify(BaseModel):
    gateway_order_id: str = Field(min_length=1)
    gateway_payment_id: str = Field(min_length=1)
    gateway_signature: str = Field(min_length=1)
    metadata: CheckoutDetails


class StepReport(BaseModel):
    name: str
    ok: bool
    best_effort: bool
    error: Optional[str] = None
    detail: Any = None


class VerifyResponse(BaseModel):
    order: OrderResponse
    already_processed: bool = False
    steps: List[StepReport] = []


class PaymentResponse(BaseModel):
    id: int
    order_id: Optional[int]
    user_id: int
    provider: str
    gateway_payment_id: str
    gateway_order_id: Optional[str]
    amount: Decimal
    currency: str
    status: str
    is_success: bool
    failure_msg: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class WebhookAck(BaseModel):
    status: str = "ok"
    event: Optional[str] = None
    outcome: Optional[str] = None


class WebhookEvent(BaseModel):
    event: str
    payload: Dict[str, Any] = {}
