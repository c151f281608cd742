"""
Shopping cart models
One cart per user; items point at live variants by id
"""

from sqlalchemy import Column, Integer, ForeignKey, Index, UniqueConstraint, CheckConstraint, Uuid
from sqlalchemy.orm import relationship

from .base import Base, TimestampedModel, UUIDModel

class Cart(Base, TimestampedModel, UUIDModel):
    """A user's shopping cart"""

    __tablename__ = "carts"

    user_id = Column(Uuid, ForeignKey("users.id"), unique=True, nullable=False)

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.created_at",
    )

class CartItem(Base, TimestampedModel, UUIDModel):
    """Shopping cart line"""

    __tablename__ = "cart_items"

    cart_id = Column(Uuid, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False)

    # No foreign keys: catalog edits may leave a line pointing nowhere
    product_id = Column(Uuid, nullable=False)
    variant_id = Column(Uuid, nullable=False)

    quantity = Column(Integer, nullable=False, default=1)

    cart = relationship("Cart", back_populates="items")

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", "variant_id", name="uq_cart_product_variant"),
        CheckConstraint("quantity > 0", name="check_positive_cart_quantity"),
        Index("idx_cart_items_cart", "cart_id"),
    )
