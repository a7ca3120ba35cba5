import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from ..exceptions import BadRequestException, NotFoundException, translate_db_error
from ..models import CartItem, FlashSaleCampaign, FlashSaleItem, Product, ProductVariant
from ..schemas.flash_sale import FlashSaleCampaignCreate, FlashSaleItemCreate
from ..utils import quantize_money, to_naive_utc, utcnow


logger = logging.getLogger(__name__)


class FlashSaleService:

    @staticmethod
    def calculate_flash_sale_price(base_price, discount_percent: float) -> Decimal:
        """Regular price with ``discount_percent`` taken off, rounded to cents."""
        percent = Decimal(str(discount_percent))
        return quantize_money(Decimal(base_price) * (Decimal(100) - percent) / Decimal(100))

    async def create_campaign(self, campaign_data: FlashSaleCampaignCreate, db: AsyncSession) -> FlashSaleCampaign:
        try:
            start_date = to_naive_utc(campaign_data.start_date)
            end_date = to_naive_utc(campaign_data.end_date)

            if end_date <= start_date:
                raise BadRequestException("Campaign end date must be after its start date")

            query = select(FlashSaleCampaign).where(FlashSaleCampaign.name == campaign_data.name)
            result = await db.execute(query)
            if result.scalars().first():
                raise BadRequestException(f"Flash sale campaign '{campaign_data.name}' already exists")

            campaign = FlashSaleCampaign(
                name=campaign_data.name,
                description=campaign_data.description,
                start_date=start_date,
                end_date=end_date,
            )
            db.add(campaign)
            await db.commit()
            await db.refresh(campaign)

            logger.info(f"Created flash sale campaign {campaign.id} ({campaign.start_date} -> {campaign.end_date})")
            return campaign

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "create flash sale campaign")

    async def get_campaign(self, campaign_id: int, db: AsyncSession) -> FlashSaleCampaign:
        campaign = await db.get(FlashSaleCampaign, campaign_id)
        if not campaign:
            raise NotFoundException(f"Flash sale campaign with ID {campaign_id} not found")
        return campaign

    async def create_campaign_item(
        self,
        campaign_id: int,
        item_data: FlashSaleItemCreate,
        db: AsyncSession
    ) -> FlashSaleItem:
        """Enroll a product, or one of its variants, in a campaign."""
        try:
            await self.get_campaign(campaign_id, db)

            product = await db.get(Product, item_data.product_id)
            if not product or product.is_deleted:
                raise NotFoundException(f"Product with ID {item_data.product_id} not found")

            if item_data.variant_id is not None:
                variant = await db.get(ProductVariant, item_data.variant_id)
                if not variant or variant.is_deleted or variant.product_id != product.id:
                    raise NotFoundException(f"Product variant with ID {item_data.variant_id} not found")
                variant_clause = FlashSaleItem.variant_id == item_data.variant_id
            else:
                # NULL never equals NULL in the unique constraint
                variant_clause = FlashSaleItem.variant_id.is_(None)

            query = select(FlashSaleItem).where(
                FlashSaleItem.campaign_id == campaign_id,
                FlashSaleItem.product_id == item_data.product_id,
                variant_clause,
            )
            result = await db.execute(query)
            if result.scalars().first():
                raise BadRequestException("This product is already enrolled in the campaign")

            item = FlashSaleItem(
                campaign_id=campaign_id,
                product_id=item_data.product_id,
                variant_id=item_data.variant_id,
                discount_percent=item_data.discount_percent,
                quantity=item_data.quantity,
            )
            db.add(item)
            await db.commit()
            await db.refresh(item)
            return item

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "add product to flash sale campaign")

    async def list_campaign_items(self, campaign_id: int, db: AsyncSession) -> List[FlashSaleItem]:
        await self.get_campaign(campaign_id, db)
        query = select(FlashSaleItem).where(FlashSaleItem.campaign_id == campaign_id).order_by(FlashSaleItem.id)
        result = await db.execute(query)
        return result.scalars().all()

    async def delete_campaign_item(self, campaign_id: int, item_id: int, db: AsyncSession) -> bool:
        try:
            query = select(FlashSaleItem).where(
                FlashSaleItem.id == item_id,
                FlashSaleItem.campaign_id == campaign_id,
            )
            result = await db.execute(query)
            item = result.scalars().first()

            if not item:
                raise NotFoundException(f"Flash sale item with ID {item_id} not found")

            # Cart lines keep their captured price
            await db.execute(
                update(CartItem)
                .where(CartItem.flash_sale_item_id == item_id)
                .values(flash_sale_item_id=None)
            )
            await db.delete(item)
            await db.commit()
            return True

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "remove product from flash sale campaign")

    async def handle_campaign_start(self, campaign_id: int, db: AsyncSession) -> int:
        """
        Stamp every enrolled product with the campaign's promotional price,
        quantity cap and window. A product enrolled both product-wide and per
        variant is stamped from its product-wide enrollment; checkout prices
        come from ``get_effective_price``.

        Applying it more than once leaves products in the same state. Does not
        commit; the caller owns the transaction.

        Returns:
            int: Number of products stamped.
        """
        campaign = await self.get_campaign(campaign_id, db)
        items = (await db.execute(
            select(FlashSaleItem).where(FlashSaleItem.campaign_id == campaign_id).order_by(FlashSaleItem.id)
        )).scalars().all()

        # One stamp per product; the product-wide enrollment wins over variant ones
        stamp_items: Dict[int, FlashSaleItem] = {}
        for item in items:
            chosen = stamp_items.get(item.product_id)
            if chosen is None or (item.variant_id is None and chosen.variant_id is not None):
                stamp_items[item.product_id] = item

        stamped = 0
        for item in stamp_items.values():
            product = await db.get(Product, item.product_id)
            if not product or product.is_deleted:
                logger.warning(f"Skipping flash sale item {item.id}: product {item.product_id} is missing")
                continue

            base_price = product.price
            if item.variant_id is not None:
                variant = await db.get(ProductVariant, item.variant_id)
                if variant and not variant.is_deleted:
                    base_price = variant.price

            product.is_in_flash_sale = True
            product.flash_sale_campaign_id = campaign.id
            product.flash_sale_price = self.calculate_flash_sale_price(base_price, item.discount_percent)
            product.flash_sale_discount_percent = item.discount_percent
            product.flash_sale_quantity = item.quantity
            product.flash_sale_start_date = campaign.start_date
            product.flash_sale_end_date = campaign.end_date
            stamped += 1

        await db.flush()
        logger.info(f"Flash sale campaign {campaign_id} started: {stamped} product(s) stamped")
        return stamped

    async def handle_campaign_end(self, campaign_id: int, db: AsyncSession) -> int:
        """
        Clear the promotional fields from every enrolled product still
        stamped by this campaign. Does not commit.

        Returns:
            int: Number of products cleared.
        """
        await self.get_campaign(campaign_id, db)
        items = (await db.execute(
            select(FlashSaleItem).where(FlashSaleItem.campaign_id == campaign_id)
        )).scalars().all()

        cleared = 0
        for product_id in {item.product_id for item in items}:
            product = await db.get(Product, product_id)
            # A later campaign may already own the product
            if not product or product.flash_sale_campaign_id != campaign_id:
                continue

            product.is_in_flash_sale = False
            product.flash_sale_campaign_id = None
            product.flash_sale_price = None
            product.flash_sale_discount_percent = None
            product.flash_sale_quantity = None
            product.flash_sale_start_date = None
            product.flash_sale_end_date = None
            cleared += 1

        await db.flush()
        logger.info(f"Flash sale campaign {campaign_id} ended: {cleared} product(s) cleared")
        return cleared

    async def get_active_enrollment(
        self,
        product: Product,
        variant_id: int,
        db: AsyncSession,
        now: Optional[datetime] = None
    ) -> Optional[FlashSaleItem]:
        """
        The enrollment whose promotional price applies to ``variant_id`` right
        now, read through the campaign currently stamped on the product.
        Variant-specific enrollments win over product-wide ones.
        """
        now = now or utcnow()

        if not product.is_in_flash_sale or product.flash_sale_campaign_id is None:
            return None
        if not (product.flash_sale_start_date <= now < product.flash_sale_end_date):
            return None

        query = (
            select(FlashSaleItem)
            .where(
                FlashSaleItem.campaign_id == product.flash_sale_campaign_id,
                FlashSaleItem.product_id == product.id,
                or_(FlashSaleItem.variant_id == variant_id, FlashSaleItem.variant_id.is_(None)),
            )
            .order_by(FlashSaleItem.variant_id.is_(None))
        )
        result = await db.execute(query)
        return result.scalars().first()

    async def get_effective_price(
        self,
        product: Product,
        variant: ProductVariant,
        db: AsyncSession,
        now: Optional[datetime] = None
    ) -> Tuple[Decimal, Optional[FlashSaleItem]]:
        """Unit price a buyer pays for ``variant`` now, and the enrollment behind it if any."""
        enrollment = await self.get_active_enrollment(product, variant.id, db, now)
        if enrollment is None:
            return quantize_money(variant.price), None
        return self.calculate_flash_sale_price(variant.price, enrollment.discount_percent), enrollment

    async def sweep(self, db: AsyncSession, now: Optional[datetime] = None, window_seconds: int = 60) -> Dict[str, int]:
        """
        Apply start/end handlers to campaigns whose boundary elapsed within
        the last ``window_seconds``. Each campaign is committed on its own.
        """
        now = now or utcnow()
        window_start = now - timedelta(seconds=window_seconds)
        summary = {"started": 0, "ended": 0}

        started = (await db.execute(
            select(FlashSaleCampaign.id).where(
                FlashSaleCampaign.start_date > window_start,
                FlashSaleCampaign.start_date <= now,
            )
        )).scalars().all()
        ended = (await db.execute(
            select(FlashSaleCampaign.id).where(
                FlashSaleCampaign.end_date > window_start,
                FlashSaleCampaign.end_date <= now,
            )
        )).scalars().all()

        for campaign_id in started:
            try:
                await self.handle_campaign_start(campaign_id, db)
                await db.commit()
                summary["started"] += 1
            except Exception as e:
                await db.rollback()
                logger.error(f"Sweep failed to start campaign {campaign_id}: {e}", exc_info=True)

        for campaign_id in ended:
            try:
                await self.handle_campaign_end(campaign_id, db)
                await db.commit()
                summary["ended"] += 1
            except Exception as e:
                await db.rollback()
                logger.error(f"Sweep failed to end campaign {campaign_id}: {e}", exc_info=True)

        if started or ended:
            logger.info(f"Flash sale sweep at {now}: {summary}")
        return summary

    async def daily_report(self, db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Count active, upcoming and ended campaigns."""
        now = now or utcnow()

        async def count(*criteria) -> int:
            result = await db.execute(select(func.count(FlashSaleCampaign.id)).where(and_(*criteria)))
            return result.scalar_one()

        report = {
            "date": now.date().isoformat(),
            "active": await count(FlashSaleCampaign.start_date <= now, FlashSaleCampaign.end_date > now),
            "upcoming": await count(FlashSaleCampaign.start_date > now),
            "ended": await count(FlashSaleCampaign.end_date <= now),
        }
        logger.info(f"Flash sale daily report: {report}")
        return report
