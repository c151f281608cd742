"""Order models"""

from sqlalchemy import Column, String, Numeric, Integer, Enum, ForeignKey, Index, Text, JSON, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
import enum

from .base import Base, TimestampedModel, UUIDModel

class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"

class Order(Base, TimestampedModel, UUIDModel):
    """Placed order; a snapshot that never follows later catalog edits"""

    __tablename__ = "orders"

    order_number = Column(String(50), unique=True, nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)

    # Status
    status = Column(Enum(OrderStatus, name="order_status"), default=OrderStatus.PENDING, nullable=False, index=True)
    payment_status = Column(Enum(PaymentStatus, name="payment_status"), default=PaymentStatus.PENDING, nullable=False)

    # Payment
    payment_method = Column(String(50), nullable=True)
    payment_intent_id = Column(String(200), nullable=True, index=True)

    # Address snapshots
    shipping_address = Column(JSON, nullable=False)
    billing_address = Column(JSON, nullable=False)

    # Amounts
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False, default=0)
    shipping = Column(Numeric(10, 2), nullable=False, default=0)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)

    coupon_code = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )

    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="check_order_subtotal"),
        CheckConstraint("total >= 0", name="check_order_total"),
        Index("idx_orders_user_status", "user_id", "status"),
        Index("idx_orders_payment_status", "payment_status"),
    )

class OrderItem(Base, TimestampedModel, UUIDModel):
    """Line of an order with the variant frozen at purchase time"""

    __tablename__ = "order_items"

    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    # Display reference, not used for pricing
    product_id = Column(Uuid, nullable=False)

    # Variant snapshot
    variant_id = Column(Uuid, nullable=False)
    variant_name = Column(String(255), nullable=False)
    variant_sku = Column(String(100), nullable=False)
    variant_size = Column(String(50), nullable=True)
    variant_color = Column(String(50), nullable=True)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_positive_order_quantity"),
        Index("idx_order_items_order", "order_id"),
    )

    @property
    def variant(self) -> dict:
        return {
            "id": self.variant_id,
            "name": self.variant_name,
            "sku": self.variant_sku,
            "size": self.variant_size,
            "color": self.variant_color,
        }

    @property
    def line_total(self):
        return self.unit_price * self.quantity
