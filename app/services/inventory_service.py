import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from ..exceptions import BadRequestException, NotFoundException
from ..models import ProductVariant


logger = logging.getLogger(__name__)


class InventoryService:
    """
    Stock ledger kept on ``ProductVariant.stock``.

    None of these methods commit: they always run inside the caller's
    transaction so the stock decision and the write that depends on it
    commit or roll back together.
    """

    async def get_variant_for_update(self, variant_id: int, db: AsyncSession) -> ProductVariant:
        """Re-read a variant inside the current transaction, locking the row where supported."""
        query = (
            select(ProductVariant)
            .where(ProductVariant.id == variant_id, ProductVariant.is_deleted.is_(False))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        variant = result.scalars().first()

        if not variant:
            raise NotFoundException(f"Product variant with ID {variant_id} not found")

        return variant

    async def reserve(self, variant_id: int, quantity: int, db: AsyncSession) -> None:
        """Take ``quantity`` units out of stock, refusing to go below zero."""
        result = await db.execute(
            update(ProductVariant)
            .where(
                ProductVariant.id == variant_id,
                ProductVariant.is_deleted.is_(False),
                ProductVariant.stock >= quantity,
            )
            .values(stock=ProductVariant.stock - quantity)
        )

        if result.rowcount == 0:
            variant = await self.get_variant_for_update(variant_id, db)
            logger.info(f"Stock reservation refused for variant {variant_id}: wanted {quantity}, have {variant.stock}")
            raise BadRequestException(
                f"Not enough stock for variant {variant_id}. Only {variant.stock} left"
            )

    async def release(self, variant_id: int, quantity: int, db: AsyncSession) -> None:
        """Put ``quantity`` units back into stock."""
        result = await db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id)
            .values(stock=ProductVariant.stock + quantity)
        )

        if result.rowcount == 0:
            raise NotFoundException(f"Product variant with ID {variant_id} not found")
