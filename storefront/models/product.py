"""
Product catalog models
"""

from sqlalchemy import Column, String, Integer, Numeric, Boolean, ForeignKey, Index, CheckConstraint, Text, JSON, Uuid
from sqlalchemy.orm import relationship

from .base import Base, TimestampedModel, UUIDModel

class Product(Base, TimestampedModel, UUIDModel):
    """Catalog product"""

    __tablename__ = "products"

    name = Column(String(500), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    sku = Column(String(100), unique=True, nullable=True)
    images = Column(JSON, default=list, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariant.name",
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="check_product_non_negative_price"),
    )

    @property
    def thumbnail(self):
        return self.images[0] if self.images else None

class ProductVariant(Base, TimestampedModel, UUIDModel):
    """Purchasable variant (size, color) holding its own stock counter"""

    __tablename__ = "product_variants"

    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False)
    name = Column(String(255), nullable=False)
    sku = Column(String(100), unique=True, nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    stock = Column(Integer, default=0, nullable=False)
    size = Column(String(50), nullable=True)
    color = Column(String(50), nullable=True)

    product = relationship("Product", back_populates="variants")

    __table_args__ = (
        CheckConstraint("stock >= 0", name="check_variant_non_negative_stock"),
        CheckConstraint("price >= 0", name="check_variant_non_negative_price"),
        Index("idx_product_variants_product", "product_id"),
    )
