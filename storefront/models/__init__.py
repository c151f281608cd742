"""Models package initialization"""

from .base import Base, utcnow
from .user import User, UserRole
from .address import Address, ADDRESS_SNAPSHOT_FIELDS
from .product import Product, ProductVariant
from .cart import Cart, CartItem
from .coupon import Coupon, DiscountType
from .order import Order, OrderItem, OrderStatus, PaymentStatus

__all__ = [
    "Base",
    "utcnow",
    "User",
    "UserRole",
    "Address",
    "ADDRESS_SNAPSHOT_FIELDS",
    "Product",
    "ProductVariant",
    "Cart",
    "CartItem",
    "Coupon",
    "DiscountType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
]
