"""
Coupon API routes
Shopper validation plus admin management
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import uuid

from storefront.core.database import get_db
from storefront.core.security import get_current_user, require_admin
from storefront.schemas.base import APIResponse
from storefront.api.v1.cart.services import CartService
from .schemas import (
    CouponCreate,
    CouponUpdate,
    CouponResponse,
    CouponValidateRequest,
    CouponValidateResponse,
)
from .services import CouponService

router = APIRouter()
admin_router = APIRouter()

@router.post(
    "/validate",
    response_model=APIResponse[CouponValidateResponse],
    summary="Validate coupon",
    description="Check a coupon against an order value (defaults to the caller's cart subtotal)"
)
async def validate_coupon(
    payload: CouponValidateRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    order_value = payload.order_value
    if order_value is None:
        cart = await CartService(db).get_cart(uuid.UUID(current_user["id"]))
        order_value = cart.subtotal

    service = CouponService(db)
    coupon, discount = await service.quote(payload.code, order_value)

    return APIResponse(data=CouponValidateResponse(
        code=coupon.code,
        discount_type=coupon.discount_type,
        discount_value=coupon.discount_value,
        discount=discount,
        min_order_value=coupon.min_order_value,
        max_discount=coupon.max_discount,
    ))

@admin_router.get("", response_model=APIResponse[List[CouponResponse]], summary="List coupons")
async def list_coupons(
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    service = CouponService(db)
    coupons, pagination = await service.list_coupons(page=page, limit=limit, is_active=is_active)
    return APIResponse(
        data=[CouponResponse.model_validate(c) for c in coupons],
        pagination=pagination
    )

@admin_router.post(
    "",
    response_model=APIResponse[CouponResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create coupon"
)
async def create_coupon(
    payload: CouponCreate,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    service = CouponService(db)
    coupon = await service.create_coupon(payload)
    return APIResponse(data=CouponResponse.model_validate(coupon), message="Coupon created")

@admin_router.get("/{coupon_id}", response_model=APIResponse[CouponResponse], summary="Get coupon")
async def get_coupon(
    coupon_id: uuid.UUID,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    service = CouponService(db)
    coupon = await service.get_coupon(coupon_id)
    return APIResponse(data=CouponResponse.model_validate(coupon))

@admin_router.patch("/{coupon_id}", response_model=APIResponse[CouponResponse], summary="Update coupon")
async def update_coupon(
    coupon_id: uuid.UUID,
    payload: CouponUpdate,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    service = CouponService(db)
    coupon = await service.update_coupon(coupon_id, payload)
    return APIResponse(data=CouponResponse.model_validate(coupon), message="Coupon updated")

@admin_router.delete("/{coupon_id}", response_model=APIResponse[None], summary="Delete coupon")
async def delete_coupon(
    coupon_id: uuid.UUID,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    service = CouponService(db)
    await service.delete_coupon(coupon_id)
    return APIResponse(message="Coupon deleted successfully")
