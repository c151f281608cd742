"""
Pagination utilities
"""

from typing import List, Any
from pydantic import BaseModel
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

class PaginationMeta(BaseModel):
    """Pagination block returned next to list data"""
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        total_pages = (total + limit - 1) // limit if limit else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )

async def paginate(
    db: AsyncSession,
    query: Select,
    page: int = 1,
    limit: int = 10
) -> tuple[List[Any], PaginationMeta]:
    """
    Paginate query results

    Args:
        db: Database session
        query: SQLAlchemy select, already ordered
        page: Page number, 1-based
        limit: Page size

    Returns:
        (items on the page, pagination metadata)
    """
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = await db.scalar(count_query) or 0

    result = await db.execute(query.offset((page - 1) * limit).limit(limit))
    items = list(result.scalars().unique().all())

    return items, PaginationMeta.build(page, limit, total)
