"""User model (read-only from the storefront's point of view)"""

from sqlalchemy import Column, String, Boolean
from sqlalchemy.orm import relationship
import enum

from .base import Base, TimestampedModel, UUIDModel

class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"

class User(Base, TimestampedModel, UUIDModel):
    """Account holder; identities are issued by the auth service"""

    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.CUSTOMER.value)
    is_active = Column(Boolean, default=True, nullable=False)

    addresses = relationship("Address", back_populates="user", cascade="all, delete-orphan")
