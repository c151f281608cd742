"""
Address model for shipping and billing
"""

from sqlalchemy import Column, String, Boolean, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from .base import Base, TimestampedModel, UUIDModel

# Fields copied verbatim into an order's address snapshot
ADDRESS_SNAPSHOT_FIELDS = (
    "first_name",
    "last_name",
    "company",
    "address1",
    "address2",
    "city",
    "state",
    "postal_code",
    "country",
    "phone",
)

class Address(Base, TimestampedModel, UUIDModel):
    """Saved user addresses"""

    __tablename__ = "addresses"

    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    company = Column(String(255), nullable=True)
    address1 = Column(String(500), nullable=False)
    address2 = Column(String(500), nullable=True)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    postal_code = Column(String(20), nullable=False)
    country = Column(String(100), default="India", nullable=False)
    phone = Column(String(20), nullable=True)

    is_default = Column(Boolean, default=False, nullable=False)

    user = relationship("User", back_populates="addresses")

    __table_args__ = (
        Index("idx_addresses_user_default", "user_id", "is_default"),
    )

    def to_snapshot(self) -> dict:
        """Detached copy stored on an order"""
        return {field: getattr(self, field) for field in ADDRESS_SNAPSHOT_FIELDS}
