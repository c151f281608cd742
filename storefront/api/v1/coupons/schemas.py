"""
Coupon schemas for request/response validation
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal
import uuid

from storefront.models.coupon import DiscountType

class CouponBase(BaseModel):
    description: Optional[str] = Field(None, max_length=500)
    discount_type: DiscountType
    discount_value: Decimal = Field(..., gt=0)
    min_order_value: Optional[Decimal] = Field(None, gt=0)
    max_discount: Optional[Decimal] = Field(None, gt=0)
    usage_limit: Optional[int] = Field(None, gt=0)
    is_active: bool = True
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

class CouponCreate(CouponBase):
    """Schema for creating a coupon"""
    code: str = Field(..., min_length=3, max_length=50)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def check_rules(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        if self.starts_at and self.expires_at and self.expires_at < self.starts_at:
            raise ValueError("expires_at must be after starts_at")
        return self

class CouponUpdate(BaseModel):
    """Schema for updating a coupon; every field optional"""
    description: Optional[str] = Field(None, max_length=500)
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(None, gt=0)
    min_order_value: Optional[Decimal] = Field(None, gt=0)
    max_discount: Optional[Decimal] = Field(None, gt=0)
    usage_limit: Optional[int] = Field(None, gt=0)
    is_active: Optional[bool] = None
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

class CouponResponse(BaseModel):
    id: uuid.UUID
    code: str
    description: Optional[str]
    discount_type: DiscountType
    discount_value: Decimal
    min_order_value: Optional[Decimal]
    max_discount: Optional[Decimal]
    usage_limit: Optional[int]
    used_count: int
    is_active: bool
    starts_at: Optional[datetime]
    expires_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    order_value: Optional[Decimal] = Field(None, ge=0)

class CouponValidateResponse(BaseModel):
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    discount: Decimal
    min_order_value: Optional[Decimal] = None
    max_discount: Optional[Decimal] = None
