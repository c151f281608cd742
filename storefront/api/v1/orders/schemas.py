"""
Order schemas for request/response validation
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import uuid

from storefront.models.order import OrderStatus, PaymentStatus

class AddressInfo(BaseModel):
    """Address payload; also the shape of the snapshot stored on an order"""
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    company: Optional[str] = Field(None, max_length=255)
    address1: str = Field(..., min_length=1, max_length=500)
    address2: Optional[str] = Field(None, max_length=500)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field("India", max_length=100)
    phone: str = Field(..., min_length=1, max_length=20)

class AddressSnapshot(BaseModel):
    """Address copied onto an order"""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None

class OrderCreate(BaseModel):
    """Checkout request; the items come from the caller's cart"""
    shipping_address_id: Optional[uuid.UUID] = None
    shipping_address: Optional[AddressInfo] = None
    billing_address_id: Optional[uuid.UUID] = None
    billing_address: Optional[AddressInfo] = None
    same_as_shipping: bool = True
    payment_method: Optional[str] = Field(None, max_length=50)
    coupon_code: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("coupon_code")
    @classmethod
    def normalize_coupon(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().upper()
        return v or None

class OrderStatusUpdate(BaseModel):
    status: OrderStatus

class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus
    payment_intent_id: Optional[str] = Field(None, max_length=200)

class VariantSnapshot(BaseModel):
    id: uuid.UUID
    name: str
    sku: str
    size: Optional[str] = None
    color: Optional[str] = None

class ProductSummary(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    image: Optional[str] = None

class OrderItemResponse(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    product: Optional[ProductSummary] = None
    variant: VariantSnapshot
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    class Config:
        from_attributes = True

class OrderResponse(BaseModel):
    """Schema for order response"""
    id: uuid.UUID
    order_number: str
    user_id: uuid.UUID

    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: Optional[str] = None
    payment_intent_id: Optional[str] = None

    shipping_address: AddressSnapshot
    billing_address: AddressSnapshot

    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    coupon_code: Optional[str] = None
    notes: Optional[str] = None
    items: List[OrderItemResponse]
    can_cancel: bool = False

    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

