"""Response envelope shared by every endpoint"""

from pydantic import BaseModel
from typing import Any, Generic, Optional, TypeVar

from storefront.utils.pagination import PaginationMeta

T = TypeVar("T")

class BaseSchema(BaseModel):
    """Base schema with common configuration"""

    class Config:
        from_attributes = True

class APIResponse(BaseModel, Generic[T]):
    """{success, data?, message?, pagination?}"""
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None
    pagination: Optional[PaginationMeta] = None

class ErrorResponse(BaseModel):
    """{success: false, error, code?, details?}"""
    success: bool = False
    error: str
    code: Optional[str] = None
    details: Optional[Any] = None
