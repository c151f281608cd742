"""
Coupon service layer
Validation rules, discount computation and usage accounting
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Tuple
import uuid
import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError

from storefront.models import Coupon, DiscountType
from storefront.core.config import settings
from storefront.core.exceptions import (
    NotFoundException,
    BadRequestException,
    DuplicateResourceException,
)
from storefront.services.pricing import to_money, ZERO
from storefront.utils.helpers import ensure_aware, format_currency
from storefront.utils.pagination import paginate
from .schemas import CouponCreate, CouponUpdate

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class CouponValidation:
    valid: bool
    reason: Optional[str] = None

def check_coupon(coupon: Coupon, order_value: Decimal, now: Optional[datetime] = None) -> CouponValidation:
    """Apply the coupon rules in order; the first failing rule is reported"""
    now = now or datetime.now(timezone.utc)

    if not coupon.is_active:
        return CouponValidation(False, "Coupon is not active")

    starts_at = ensure_aware(coupon.starts_at)
    if starts_at and now < starts_at:
        return CouponValidation(False, "Coupon is not yet valid")

    expires_at = ensure_aware(coupon.expires_at)
    if expires_at and now > expires_at:
        return CouponValidation(False, "Coupon has expired")

    if coupon.usage_limit is not None and (coupon.used_count or 0) >= coupon.usage_limit:
        return CouponValidation(False, "Coupon usage limit reached")

    if coupon.min_order_value is not None and Decimal(order_value) < coupon.min_order_value:
        return CouponValidation(
            False,
            f"Minimum order value of {format_currency(coupon.min_order_value, settings.CURRENCY)} required"
        )

    return CouponValidation(True)

def compute_discount(coupon: Coupon, order_value: Decimal) -> Decimal:
    """Discount for ``order_value``, never more than the order itself"""
    order_value = Decimal(order_value)
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = order_value * Decimal(coupon.discount_value) / Decimal(100)
        if coupon.max_discount is not None:
            discount = min(discount, Decimal(coupon.max_discount))
    else:
        discount = Decimal(coupon.discount_value)
    return to_money(max(min(discount, order_value), ZERO))

class CouponService:
    """Coupon service for business logic"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        result = await self.db.execute(
            select(Coupon).where(Coupon.code == code.strip().upper())
        )
        return result.scalar_one_or_none()

    async def validate(self, code: str, order_value: Decimal) -> CouponValidation:
        coupon = await self.get_by_code(code)
        if not coupon:
            return CouponValidation(False, "Invalid coupon code")
        return check_coupon(coupon, order_value)

    async def calculate_discount(self, code: str, order_value: Decimal) -> Decimal:
        coupon = await self.get_by_code(code)
        if not coupon:
            return ZERO
        return compute_discount(coupon, order_value)

    async def quote(self, code: str, order_value: Decimal) -> Tuple[Coupon, Decimal]:
        """
        Strict check used by the validate endpoint

        Raises:
            NotFoundException: unknown code
            BadRequestException: coupon exists but does not apply
        """
        coupon = await self.get_by_code(code)
        if not coupon:
            raise NotFoundException("Invalid coupon code", "COUPON_NOT_FOUND")

        validation = check_coupon(coupon, order_value)
        if not validation.valid:
            raise BadRequestException(validation.reason or "Coupon is not valid", "COUPON_INVALID")

        return coupon, compute_discount(coupon, order_value)

    async def apply(self, code: Optional[str], order_value: Decimal) -> Tuple[Optional[Coupon], Decimal]:
        """
        Apply a coupon during checkout

        Unknown or inapplicable codes give no discount instead of failing the
        checkout. A successful application consumes one use; the increment is
        conditional so concurrent checkouts cannot exceed the usage limit.
        """
        if not code:
            return None, ZERO

        coupon = await self.get_by_code(code)
        if not coupon:
            logger.info(f"Coupon {code!r} not found, checkout continues without discount")
            return None, ZERO

        validation = check_coupon(coupon, order_value)
        if not validation.valid:
            logger.info(f"Coupon {coupon.code} rejected: {validation.reason}")
            return None, ZERO

        result = await self.db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon.id,
                Coupon.is_active.is_(True),
                or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
            )
            .values(used_count=Coupon.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.info(f"Coupon {coupon.code} ran out of uses during checkout")
            return None, ZERO

        return coupon, compute_discount(coupon, order_value)

    async def list_coupons(self, page: int = 1, limit: int = 10, is_active: Optional[bool] = None):
        query = select(Coupon).order_by(Coupon.created_at.desc())
        if is_active is not None:
            query = query.where(Coupon.is_active.is_(is_active))
        return await paginate(self.db, query, page, limit)

    async def get_coupon(self, coupon_id: uuid.UUID) -> Coupon:
        coupon = await self.db.get(Coupon, coupon_id)
        if not coupon:
            raise NotFoundException("Coupon not found", "COUPON_NOT_FOUND")
        return coupon

    async def create_coupon(self, data: CouponCreate) -> Coupon:
        if await self.get_by_code(data.code):
            raise DuplicateResourceException("Coupon", "code", data.code)

        coupon = Coupon(**data.model_dump(), used_count=0)
        self.db.add(coupon)
        try:
            await self.db.flush()
        except IntegrityError:
            raise DuplicateResourceException("Coupon", "code", data.code)

        logger.info(f"Coupon {coupon.code} created")
        return coupon

    async def update_coupon(self, coupon_id: uuid.UUID, data: CouponUpdate) -> Coupon:
        coupon = await self.get_coupon(coupon_id)
        changes = data.model_dump(exclude_unset=True)

        discount_type = changes.get("discount_type", coupon.discount_type)
        discount_value = changes.get("discount_value", coupon.discount_value)
        if discount_type == DiscountType.PERCENTAGE and discount_value > 100:
            raise BadRequestException("Percentage discount cannot exceed 100", "VALIDATION_ERROR")

        starts_at = ensure_aware(changes.get("starts_at", coupon.starts_at))
        expires_at = ensure_aware(changes.get("expires_at", coupon.expires_at))
        if starts_at and expires_at and expires_at < starts_at:
            raise BadRequestException("expires_at must be after starts_at", "VALIDATION_ERROR")

        for field, value in changes.items():
            setattr(coupon, field, value)

        await self.db.flush()
        await self.db.refresh(coupon)
        return coupon

    async def delete_coupon(self, coupon_id: uuid.UUID) -> None:
        coupon = await self.get_coupon(coupon_id)
        await self.db.delete(coupon)
        await self.db.flush()
        logger.info(f"Coupon {coupon.code} deleted")
