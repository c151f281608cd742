"""
Payment schemas for request/response validation
"""

from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional
import uuid

from storefront.models.order import OrderStatus, PaymentStatus

class CreateIntentRequest(BaseModel):
    order_id: uuid.UUID

class CreateIntentResponse(BaseModel):
    payment_intent_id: str
    client_secret: str
    amount: Decimal
    currency: str

class ConfirmPaymentRequest(BaseModel):
    order_id: uuid.UUID
    payment_intent_id: str = Field(..., min_length=1, max_length=200)

class PaymentStatusResponse(BaseModel):
    order_id: uuid.UUID
    order_number: str
    payment_status: PaymentStatus
    order_status: OrderStatus
    payment_intent_id: Optional[str] = None

class WebhookAck(BaseModel):
    received: bool = True
    event: Optional[str] = None
