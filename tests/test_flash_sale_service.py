"""Unit tests for FlashSaleService."""

from datetime import timedelta
from decimal import Decimal

import pytest

from app.exceptions import BadRequestException, NotFoundException
from app.models import Product
from app.schemas.flash_sale import FlashSaleCampaignCreate, FlashSaleItemCreate
from app.services.flash_sale_service import FlashSaleService
from app.utils import utcnow


@pytest.fixture
def flash_sale_service():
    return FlashSaleService()


def _stamp(product):
    return (
        product.is_in_flash_sale,
        product.flash_sale_campaign_id,
        product.flash_sale_price,
        product.flash_sale_discount_percent,
        product.flash_sale_quantity,
        product.flash_sale_start_date,
        product.flash_sale_end_date,
    )


class TestCampaigns:

    async def test_create_campaign(self, db, flash_sale_service):
        now = utcnow()

        campaign = await flash_sale_service.create_campaign(
            FlashSaleCampaignCreate(name="Payday", start_date=now, end_date=now + timedelta(hours=2)), db
        )

        assert campaign.id is not None
        assert campaign.end_date - campaign.start_date == timedelta(hours=2)

    async def test_end_must_follow_start(self, db, flash_sale_service):
        now = utcnow()

        with pytest.raises(BadRequestException):
            await flash_sale_service.create_campaign(
                FlashSaleCampaignCreate(name="Backwards", start_date=now, end_date=now), db
            )

    async def test_name_collision(self, db, flash_sale_service, make_campaign):
        await make_campaign(name="Payday")
        now = utcnow()

        with pytest.raises(BadRequestException):
            await flash_sale_service.create_campaign(
                FlashSaleCampaignCreate(name="Payday", start_date=now, end_date=now + timedelta(hours=1)), db
            )

    async def test_missing_campaign(self, db, flash_sale_service):
        with pytest.raises(NotFoundException):
            await flash_sale_service.get_campaign(9999, db)


class TestEnrollment:

    async def test_enroll_product(self, db, flash_sale_service, make_campaign, product_and_variant):
        campaign = await make_campaign()
        product, _ = product_and_variant

        item = await flash_sale_service.create_campaign_item(
            campaign.id, FlashSaleItemCreate(product_id=product.id, discount_percent=30, quantity=5), db
        )

        assert item.campaign_id == campaign.id
        assert item.variant_id is None
        assert item.quantity == 5

    async def test_duplicate_product_wide_enrollment(self, db, flash_sale_service, make_campaign, product_and_variant):
        campaign = await make_campaign()
        product, _ = product_and_variant
        campaign_id, product_id = campaign.id, product.id
        await flash_sale_service.create_campaign_item(
            campaign_id, FlashSaleItemCreate(product_id=product_id, discount_percent=30), db
        )

        with pytest.raises(BadRequestException) as exc_info:
            await flash_sale_service.create_campaign_item(
                campaign_id, FlashSaleItemCreate(product_id=product_id, discount_percent=10), db
            )

        assert exc_info.value.detail == "This product is already enrolled in the campaign"

    async def test_variant_and_product_wide_can_coexist(
        self, db, flash_sale_service, make_campaign, product_and_variant
    ):
        campaign = await make_campaign()
        product, variant = product_and_variant

        await flash_sale_service.create_campaign_item(
            campaign.id, FlashSaleItemCreate(product_id=product.id, discount_percent=10), db
        )
        await flash_sale_service.create_campaign_item(
            campaign.id, FlashSaleItemCreate(product_id=product.id, variant_id=variant.id, discount_percent=40), db
        )

        assert len(await flash_sale_service.list_campaign_items(campaign.id, db)) == 2

    async def test_variant_of_another_product(self, db, flash_sale_service, make_campaign, make_product):
        campaign = await make_campaign()
        product, _ = await make_product()
        _, other_variant = await make_product()

        with pytest.raises(NotFoundException):
            await flash_sale_service.create_campaign_item(
                campaign.id, FlashSaleItemCreate(product_id=product.id, variant_id=other_variant.id, discount_percent=10), db
            )

    async def test_delete_enrollment(self, db, flash_sale_service, make_campaign, product_and_variant, enroll):
        campaign = await make_campaign()
        product, _ = product_and_variant
        item = await enroll(campaign, product)

        assert await flash_sale_service.delete_campaign_item(campaign.id, item.id, db) is True
        assert await flash_sale_service.list_campaign_items(campaign.id, db) == []


class TestCampaignHandlers:

    async def test_start_stamps_products(self, db, flash_sale_service, make_campaign, product_and_variant, enroll):
        campaign = await make_campaign()
        product, _ = product_and_variant
        await enroll(campaign, product, discount_percent=20, quantity=3)

        assert await flash_sale_service.handle_campaign_start(campaign.id, db) == 1
        await db.commit()

        assert product.is_in_flash_sale is True
        assert product.flash_sale_campaign_id == campaign.id
        assert product.flash_sale_price == Decimal("80000.00")
        assert product.flash_sale_quantity == 3
        assert product.flash_sale_start_date == campaign.start_date
        assert product.flash_sale_end_date == campaign.end_date

    async def test_start_twice_leaves_same_state(
        self, db, flash_sale_service, make_campaign, product_and_variant, enroll
    ):
        campaign = await make_campaign()
        product, _ = product_and_variant
        await enroll(campaign, product, discount_percent=20)

        await flash_sale_service.handle_campaign_start(campaign.id, db)
        await db.commit()
        first = _stamp(await db.get(Product, product.id, populate_existing=True))

        await flash_sale_service.handle_campaign_start(campaign.id, db)
        await db.commit()
        second = _stamp(await db.get(Product, product.id, populate_existing=True))

        assert first == second

    async def test_end_clears_products(self, db, flash_sale_service, make_campaign, product_and_variant, enroll):
        campaign = await make_campaign()
        product, _ = product_and_variant
        await enroll(campaign, product)
        await flash_sale_service.handle_campaign_start(campaign.id, db)
        await db.commit()

        assert await flash_sale_service.handle_campaign_end(campaign.id, db) == 1
        await db.commit()

        assert _stamp(product) == (False, None, None, None, None, None, None)

    async def test_end_leaves_products_owned_by_another_campaign(
        self, db, flash_sale_service, make_campaign, product_and_variant, enroll
    ):
        product, _ = product_and_variant
        earlier = await make_campaign(name="Earlier")
        later = await make_campaign(name="Later")
        await enroll(earlier, product, discount_percent=10)
        await enroll(later, product, discount_percent=30)
        await flash_sale_service.handle_campaign_start(earlier.id, db)
        await flash_sale_service.handle_campaign_start(later.id, db)
        await db.commit()

        assert await flash_sale_service.handle_campaign_end(earlier.id, db) == 0
        await db.commit()

        assert product.flash_sale_campaign_id == later.id
        assert product.flash_sale_discount_percent == 30

    async def test_product_wide_enrollment_is_stamped(
        self, db, flash_sale_service, make_campaign, product_and_variant, enroll
    ):
        campaign = await make_campaign()
        product, variant = product_and_variant
        await enroll(campaign, product, variant=variant, discount_percent=40, quantity=1)
        await enroll(campaign, product, discount_percent=10, quantity=5)

        assert await flash_sale_service.handle_campaign_start(campaign.id, db) == 1
        await db.commit()

        assert product.flash_sale_price == Decimal("90000.00")
        assert product.flash_sale_discount_percent == 10
        assert product.flash_sale_quantity == 5

    async def test_variant_enrollment_wins(self, db, flash_sale_service, make_campaign, product_and_variant, enroll):
        campaign = await make_campaign()
        product, variant = product_and_variant
        await enroll(campaign, product, discount_percent=10)
        variant_item = await enroll(campaign, product, variant=variant, discount_percent=40)
        await flash_sale_service.handle_campaign_start(campaign.id, db)
        await db.commit()

        price, enrollment = await flash_sale_service.get_effective_price(product, variant, db)

        assert enrollment.id == variant_item.id
        assert price == Decimal("60000.00")

    async def test_price_outside_window(self, db, flash_sale_service, make_campaign, product_and_variant, enroll):
        campaign = await make_campaign()
        product, variant = product_and_variant
        await enroll(campaign, product, discount_percent=10)
        await flash_sale_service.handle_campaign_start(campaign.id, db)
        await db.commit()

        price, enrollment = await flash_sale_service.get_effective_price(
            product, variant, db, now=campaign.end_date
        )

        assert enrollment is None
        assert price == Decimal("100000.00")

    def test_calculate_flash_sale_price(self):
        assert FlashSaleService.calculate_flash_sale_price(Decimal("99999"), 33) == Decimal("66999.33")


class TestSweep:

    async def test_sweep_applies_recent_boundaries(
        self, db, flash_sale_service, make_campaign, make_product, enroll
    ):
        starting_product, _ = await make_product()
        ending_product, _ = await make_product()
        starting = await make_campaign(name="Just started", start_offset=timedelta(seconds=-10))
        ending = await make_campaign(
            name="Just ended", start_offset=timedelta(hours=-3), end_offset=timedelta(seconds=-10)
        )
        await enroll(starting, starting_product)
        await enroll(ending, ending_product)
        await flash_sale_service.handle_campaign_start(ending.id, db)
        await db.commit()

        summary = await flash_sale_service.sweep(db, window_seconds=60)

        assert summary == {"started": 1, "ended": 1}
        starting_product = await db.get(Product, starting_product.id, populate_existing=True)
        ending_product = await db.get(Product, ending_product.id, populate_existing=True)
        assert starting_product.flash_sale_campaign_id == starting.id
        assert ending_product.is_in_flash_sale is False

    async def test_sweep_ignores_old_boundaries(self, db, flash_sale_service, make_campaign):
        await make_campaign(start_offset=timedelta(hours=-2), end_offset=timedelta(hours=2))

        assert await flash_sale_service.sweep(db, window_seconds=60) == {"started": 0, "ended": 0}

    async def test_daily_report(self, db, flash_sale_service, make_campaign):
        await make_campaign(name="Active")
        await make_campaign(name="Upcoming", start_offset=timedelta(hours=1), end_offset=timedelta(hours=2))
        await make_campaign(name="Over", start_offset=timedelta(hours=-3), end_offset=timedelta(hours=-2))

        report = await flash_sale_service.daily_report(db)

        assert report["active"] == 1
        assert report["upcoming"] == 1
        assert report["ended"] == 1
