"""Base models and mixins for database models"""

from sqlalchemy import Column, DateTime, Uuid
from sqlalchemy.orm import DeclarativeBase, declared_attr
from sqlalchemy.sql import func
from datetime import datetime, timezone
import uuid

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class Base(DeclarativeBase):
    pass

class TimestampedModel:
    """Mixin for adding created_at and updated_at timestamps"""

    @declared_attr
    def created_at(cls):
        return Column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            server_default=func.now(),
            index=True
        )

    @declared_attr
    def updated_at(cls):
        return Column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            server_default=func.now(),
            onupdate=utcnow
        )

class UUIDModel:
    """Mixin for adding UUID primary key"""

    @declared_attr
    def id(cls):
        return Column(
            Uuid,
            primary_key=True,
            default=uuid.uuid4,
            nullable=False
        )

__all__ = [
    'Base',
    'TimestampedModel',
    'UUIDModel',
    'utcnow',
]
