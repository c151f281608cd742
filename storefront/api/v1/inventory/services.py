"""
Inventory store
Variant stock counters with atomic reserve and release
"""

from typing import Iterable, Optional
import uuid
import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from storefront.models import ProductVariant
from storefront.core.exceptions import InsufficientStockException, NotFoundException

logger = logging.getLogger(__name__)

class InventoryStore:
    """Stock operations; every mutation is a single conditional UPDATE"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_stock(self, variant_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(ProductVariant.stock).where(ProductVariant.id == variant_id)
        )
        stock = result.scalar_one_or_none()
        if stock is None:
            raise NotFoundException("Variant not found", "VARIANT_NOT_FOUND")
        return stock

    async def reserve(
        self,
        variant_id: uuid.UUID,
        quantity: int,
        product_name: Optional[str] = None,
        variant_name: Optional[str] = None,
    ) -> None:
        """
        Decrement stock only if enough is left

        The check and the decrement happen in the same statement, so two
        transactions can never both take the last unit.

        Raises:
            InsufficientStockException: when fewer than ``quantity`` units remain
        """
        result = await self.db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id, ProductVariant.stock >= quantity)
            .values(stock=ProductVariant.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            available = await self._available(variant_id)
            logger.info(f"Reserve of {quantity} x {variant_id} refused, {available} left")
            raise InsufficientStockException(
                product_name or str(variant_id), available, variant_name
            )

    async def release(self, variant_id: uuid.UUID, quantity: int) -> None:
        """Return units to stock"""
        result = await self.db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id)
            .values(stock=ProductVariant.stock + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # Variant was deleted after purchase; nothing to give back to
            logger.warning(f"Release of {quantity} x {variant_id} skipped, variant no longer exists")

    async def reserve_many(self, lines: Iterable) -> None:
        """
        Reserve every line in order, stopping at the first failure

        Earlier decrements are not undone here; the caller's transaction
        rollback discards them.
        """
        for line in lines:
            await self.reserve(
                line.variant_id,
                line.quantity,
                product_name=line.product_name,
                variant_name=line.variant_name,
            )

    async def release_many(self, lines: Iterable) -> None:
        for line in lines:
            await self.release(line.variant_id, line.quantity)

    async def _available(self, variant_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(ProductVariant.stock).where(ProductVariant.id == variant_id)
        )
        return result.scalar_one_or_none() or 0
