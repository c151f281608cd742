"""
Payment API routes
"""

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import uuid

from storefront.core.config import settings
from storefront.core.database import get_db
from storefront.core.security import get_current_user
from storefront.middleware.rate_limit import limiter
from storefront.schemas.base import APIResponse
from .gateway import PaymentGateway, get_payment_gateway
from .schemas import (
    CreateIntentRequest,
    CreateIntentResponse,
    ConfirmPaymentRequest,
    PaymentStatusResponse,
    WebhookAck,
)
from .services import PaymentService

router = APIRouter()

@router.post(
    "/create-intent",
    response_model=APIResponse[CreateIntentResponse],
    summary="Create payment intent",
    description="Start a gateway payment for an order"
)
@limiter.limit(settings.RATE_LIMIT_CHECKOUT)
async def create_intent(
    request: Request,
    payload: CreateIntentRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    service = PaymentService(db, gateway)
    intent = await service.create_intent(uuid.UUID(current_user["id"]), payload.order_id)
    return APIResponse(data=intent)

@router.post(
    "/confirm",
    response_model=APIResponse[PaymentStatusResponse],
    summary="Confirm payment",
    description="Record the outcome of a client-side payment"
)
async def confirm_payment(
    payload: ConfirmPaymentRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    service = PaymentService(db, gateway)
    result = await service.confirm(
        uuid.UUID(current_user["id"]),
        payload.order_id,
        payload.payment_intent_id
    )
    return APIResponse(data=result)

@router.get(
    "/status/{order_id}",
    response_model=APIResponse[PaymentStatusResponse],
    summary="Get payment status"
)
async def get_payment_status(
    order_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    service = PaymentService(db, gateway)
    return APIResponse(data=await service.get_status(uuid.UUID(current_user["id"]), order_id))

@router.post(
    "/webhook",
    response_model=WebhookAck,
    summary="Payment webhook",
    description="Handle payment gateway webhooks"
)
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    # Signature is computed over the raw body
    payload = await request.body()
    service = PaymentService(db, gateway)
    return await service.handle_webhook(payload, stripe_signature)
