"""
Cart schemas for request/response validation
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from decimal import Decimal
import uuid

class CartItemCreate(BaseModel):
    product_id: uuid.UUID
    variant_id: uuid.UUID
    quantity: int = Field(1, ge=1, le=100)

class CartItemUpdate(BaseModel):
    """Quantity of zero or less removes the line"""
    quantity: int = Field(..., le=100)

class CartItemResponse(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    variant_id: uuid.UUID
    quantity: int
    product_name: Optional[str] = None
    product_slug: Optional[str] = None
    product_image: Optional[str] = None
    variant_name: Optional[str] = None
    variant_sku: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    unit_price: Optional[Decimal] = None
    line_total: Decimal = Decimal("0.00")
    available_stock: int = 0
    is_available: bool = False

class CartResponse(BaseModel):
    id: Optional[uuid.UUID] = None
    items: List[CartItemResponse] = []
    item_count: int = 0
    subtotal: Decimal = Decimal("0.00")
    tax: Decimal = Decimal("0.00")
    shipping: Decimal = Decimal("0.00")
    discount: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")
