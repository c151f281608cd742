"""
Coupon and discount models
"""

from sqlalchemy import Column, String, Integer, Numeric, Boolean, Index, CheckConstraint, Text, DateTime, Enum
import enum

from .base import Base, TimestampedModel, UUIDModel

class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"

class Coupon(Base, TimestampedModel, UUIDModel):
    """Discount coupons and promo codes"""

    __tablename__ = "coupons"

    code = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)

    # Discount details
    discount_type = Column(Enum(DiscountType, name="discount_type"), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)

    # Conditions
    min_order_value = Column(Numeric(10, 2), nullable=True)
    max_discount = Column(Numeric(10, 2), nullable=True)

    # Usage limits
    usage_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, default=0, nullable=False)

    # Validity
    starts_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("discount_value > 0", name="check_positive_discount"),
        CheckConstraint("usage_limit IS NULL OR usage_limit > 0", name="check_positive_usage_limit"),
        CheckConstraint("used_count >= 0", name="check_non_negative_used_count"),
        Index("idx_coupons_active_window", "is_active", "starts_at", "expires_at"),
    )
