"""
Pytest configuration and fixtures for tests.

The environment is filled in before ``app`` is imported so the settings
object and the mail configuration can be built without a real .env file.
"""

import os
from datetime import timedelta
from decimal import Decimal

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["MAIL_USERNAME"] = "test"
os.environ["MAIL_PASSWORD"] = "test"
os.environ["MAIL_FROM"] = "noreply@example.com"
os.environ["MAIL_PORT"] = "587"
os.environ["MAIL_SERVER"] = "localhost"
os.environ["MAIL_FROM_NAME"] = "Commerce Core"
os.environ["MAIL_STARTTLS"] = "false"
os.environ["MAIL_SSL_TLS"] = "false"
os.environ["USE_CREDENTIALS"] = "false"
os.environ["VALIDATE_CERTS"] = "false"
os.environ["MAIL_SUPPRESS_SEND"] = "true"
os.environ["SCHEDULER_ENABLED"] = "false"

import pytest
import pytest_asyncio
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.db.base import Base
from app.enums import DiscountType, UserRole
from app.models import (
    Address,
    Cart,
    Discount,
    FlashSaleCampaign,
    FlashSaleItem,
    Product,
    ProductVariant,
    User,
)
from app.services.scheduler_service import FlashSaleScheduler
from app.utils import utcnow


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """File-backed SQLite so scheduler sessions see committed data like a real database."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session


# ============================================================================
# Scheduler Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def aps_scheduler():
    """Running but paused APScheduler: timers are registered, never fired."""
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.start(paused=True)
    yield scheduler
    scheduler.shutdown(wait=False)


@pytest.fixture
def clock():
    """Mutable clock shared by the scheduler under test."""
    class Clock:
        def __init__(self):
            self.current = utcnow()

        def __call__(self):
            return self.current

        def advance(self, **kwargs):
            self.current = self.current + timedelta(**kwargs)

    return Clock()


@pytest.fixture
def flash_sale_scheduler(session_factory, aps_scheduler, clock):
    return FlashSaleScheduler(session_factory, now=clock, scheduler=aps_scheduler)


# ============================================================================
# Seed Data
# ============================================================================

@pytest_asyncio.fixture
async def customer(db):
    user = User(email="buyer@example.com", full_name="Test Buyer", role=UserRole.CUSTOMER)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def admin(db):
    user = User(email="admin@example.com", full_name="Store Admin", role=UserRole.ADMIN)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def address(db, customer):
    record = Address(
        user_id=customer.id,
        receiver_name="Test Buyer",
        receiver_phone="0900000000",
        province="Ho Chi Minh",
        district="District 1",
        ward="Ben Nghe",
        address="1 Le Loi",
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


@pytest_asyncio.fixture
async def make_product(db):
    """Factory creating a product with one variant."""
    counter = {"value": 0}

    async def _make(price="100000.00", stock=10, name=None):
        counter["value"] += 1
        product = Product(name=name or f"Product {counter['value']}", price=Decimal(price))
        db.add(product)
        await db.flush()

        variant = ProductVariant(
            product_id=product.id,
            sku=f"SKU-{counter['value']}",
            price=Decimal(price),
            stock=stock,
        )
        db.add(variant)
        await db.commit()
        await db.refresh(product)
        await db.refresh(variant)
        return product, variant

    return _make


@pytest_asyncio.fixture
async def product_and_variant(make_product):
    return await make_product()


@pytest_asyncio.fixture
async def cart(db, customer):
    record = Cart(user_id=customer.id)
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


@pytest_asyncio.fixture
async def make_discount(db):
    async def _make(code="SAVE10", **overrides):
        now = utcnow()
        values = {
            "code": code,
            "type": DiscountType.PERCENTAGE,
            "value": 10,
            "max_discount_amount": Decimal("50000.00"),
            "min_order_value": Decimal("0"),
            "usage_limit": 100,
            "usage_per_user": 1,
            "used_count": 0,
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=1),
        }
        values.update(overrides)
        discount = Discount(**values)
        db.add(discount)
        await db.commit()
        await db.refresh(discount)
        return discount

    return _make


@pytest_asyncio.fixture
async def make_campaign(db):
    async def _make(name="Midnight Sale", start_offset=timedelta(hours=-1), end_offset=timedelta(hours=1)):
        now = utcnow()
        campaign = FlashSaleCampaign(name=name, start_date=now + start_offset, end_date=now + end_offset)
        db.add(campaign)
        await db.commit()
        await db.refresh(campaign)
        return campaign

    return _make


@pytest_asyncio.fixture
async def enroll(db):
    async def _enroll(campaign, product, variant=None, discount_percent=20, quantity=None):
        item = FlashSaleItem(
            campaign_id=campaign.id,
            product_id=product.id,
            variant_id=variant.id if variant else None,
            discount_percent=discount_percent,
            quantity=quantity,
        )
        db.add(item)
        await db.commit()
        await db.refresh(item)
        return item

    return _enroll
