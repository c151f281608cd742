"""
Order API routes
"""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List
import uuid

from storefront.core.config import settings
from storefront.core.database import get_db
from storefront.core.security import get_current_user, require_admin
from storefront.middleware.rate_limit import limiter
from storefront.models.order import OrderStatus, PaymentStatus
from storefront.schemas.base import APIResponse
from storefront.services.order_notification import OrderNotificationService, get_order_notifications
from .schemas import (
    OrderCreate,
    OrderResponse,
    OrderStatusUpdate,
    PaymentStatusUpdate,
)
from .services import OrderService

router = APIRouter()

@router.post(
    "",
    response_model=APIResponse[OrderResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create order",
    description="Check out the caller's cart"
)
@limiter.limit(settings.RATE_LIMIT_CHECKOUT)
async def create_order(
    request: Request,
    order_data: OrderCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifications: OrderNotificationService = Depends(get_order_notifications)
):
    service = OrderService(db, notifications)
    order = await service.create_order(
        user_id=uuid.UUID(current_user["id"]),
        data=order_data,
        email=current_user.get("email")
    )
    return APIResponse(data=await service.to_response(order), message="Order placed")

@router.get(
    "",
    response_model=APIResponse[List[OrderResponse]],
    summary="List orders",
    description="Get paginated list of the caller's orders"
)
async def list_orders(
    status: Optional[OrderStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = OrderService(db)
    orders, pagination = await service.list_orders(
        user_id=uuid.UUID(current_user["id"]),
        status=status,
        page=page,
        limit=limit
    )
    return APIResponse(data=await service.to_responses(orders), pagination=pagination)

@router.get(
    "/admin/all",
    response_model=APIResponse[List[OrderResponse]],
    summary="List all orders (admin)"
)
async def list_all_orders(
    status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=settings.MAX_PAGE_SIZE),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    service = OrderService(db)
    orders, pagination = await service.list_all_orders(
        status=status,
        payment_status=payment_status,
        search=search,
        page=page,
        limit=limit
    )
    return APIResponse(data=await service.to_responses(orders), pagination=pagination)

@router.get(
    "/{order_ref}",
    response_model=APIResponse[OrderResponse],
    summary="Get order details",
    description="Look up one of the caller's orders by id or order number"
)
async def get_order(
    order_ref: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = OrderService(db)
    order = await service.get_order(order_ref, user_id=uuid.UUID(current_user["id"]))
    return APIResponse(data=await service.to_response(order))

@router.post(
    "/{order_id}/cancel",
    response_model=APIResponse[OrderResponse],
    summary="Cancel order"
)
async def cancel_order(
    order_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = OrderService(db)
    order = await service.cancel_order(order_id, user_id=uuid.UUID(current_user["id"]))
    return APIResponse(data=await service.to_response(order), message="Order cancelled")

@router.patch(
    "/{order_id}/status",
    response_model=APIResponse[OrderResponse],
    summary="Update order status (admin)"
)
async def update_order_status(
    order_id: uuid.UUID,
    payload: OrderStatusUpdate,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    service = OrderService(db)
    order = await service.update_order_status(order_id, payload.status)
    return APIResponse(data=await service.to_response(order))

@router.patch(
    "/{order_id}/payment-status",
    response_model=APIResponse[OrderResponse],
    summary="Update payment status (admin)"
)
async def update_payment_status(
    order_id: uuid.UUID,
    payload: PaymentStatusUpdate,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    service = OrderService(db)
    order = await service.update_payment_status(
        order_id, payload.payment_status, payload.payment_intent_id
    )
    return APIResponse(data=await service.to_response(order))
