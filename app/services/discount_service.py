import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from ..enums import DiscountStatus, DiscountType
from ..exceptions import BadRequestException, ConflictException, NotFoundException, translate_db_error
from ..models import Discount, DiscountUsage, Order
from ..schemas.discount import DiscountCreate
from ..utils import quantize_money, to_naive_utc, utcnow


logger = logging.getLogger(__name__)


class DiscountService:

    async def create_discount(self, discount_data: DiscountCreate, db: AsyncSession) -> Discount:
        try:
            start_date = to_naive_utc(discount_data.start_date)
            end_date = to_naive_utc(discount_data.end_date)

            if end_date <= start_date:
                raise BadRequestException("Discount end date must be after its start date")

            if discount_data.type == DiscountType.PERCENTAGE:
                if not 0 < discount_data.value <= 100:
                    raise BadRequestException("Percentage discount value must be between 0 and 100")
                if discount_data.max_discount_amount is None:
                    raise BadRequestException("max_discount_amount is required for percentage discounts")
            elif discount_data.value <= 0:
                raise BadRequestException("Fixed discount value must be greater than 0")

            existing = await self.get_discount_by_code(discount_data.code, db, raise_if_missing=False)
            if existing:
                raise ConflictException(f"Discount code '{discount_data.code}' already exists")

            discount = Discount(
                code=discount_data.code,
                description=discount_data.description,
                type=discount_data.type,
                value=discount_data.value,
                max_discount_amount=discount_data.max_discount_amount,
                min_order_value=discount_data.min_order_value,
                usage_limit=discount_data.usage_limit,
                usage_per_user=discount_data.usage_per_user,
                used_count=0,
                start_date=start_date,
                end_date=end_date,
            )
            db.add(discount)
            await db.commit()
            await db.refresh(discount)
            return discount

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "create discount")

    def get_discount_status(self, discount: Discount, now: Optional[datetime] = None) -> DiscountStatus:
        return discount.status_at(now or utcnow())

    async def get_discount_by_code(self, code: str, db: AsyncSession, raise_if_missing: bool = True) -> Optional[Discount]:
        result = await db.execute(select(Discount).where(Discount.code == code))
        discount = result.scalars().first()

        if not discount and raise_if_missing:
            raise NotFoundException(f"Discount code '{code}' not found")

        return discount

    async def _check_usable(
        self,
        discount: Discount,
        order_value: Decimal,
        user_id: int,
        db: AsyncSession,
        now: Optional[datetime] = None
    ) -> Discount:
        status = self.get_discount_status(discount, now)
        if status == DiscountStatus.UPCOMING:
            raise BadRequestException("Discount code is not active yet")
        if status == DiscountStatus.ENDED:
            raise BadRequestException("Discount code has expired")

        if discount.used_count >= discount.usage_limit:
            raise BadRequestException("Discount code usage limit has been reached")

        # One usage per (user, discount), independent of the global limit
        query = select(DiscountUsage.id).where(
            DiscountUsage.user_id == user_id,
            DiscountUsage.discount_id == discount.id,
        )
        if (await db.execute(query)).first():
            raise BadRequestException("Discount code already used")

        if Decimal(order_value) < Decimal(discount.min_order_value or 0):
            raise BadRequestException(
                f"Order value must be at least {quantize_money(discount.min_order_value)} to use this discount"
            )

        return discount

    async def validate(
        self,
        code: str,
        order_value: Decimal,
        user_id: int,
        db: AsyncSession,
        now: Optional[datetime] = None
    ) -> Discount:
        discount = await self.get_discount_by_code(code, db)
        return await self._check_usable(discount, order_value, user_id, db, now)

    async def validate_by_id(
        self,
        discount_id: int,
        order_value: Decimal,
        user_id: int,
        db: AsyncSession,
        now: Optional[datetime] = None
    ) -> Discount:
        discount = await db.get(Discount, discount_id, populate_existing=True)
        if not discount:
            raise NotFoundException(f"Discount with ID {discount_id} not found")
        return await self._check_usable(discount, order_value, user_id, db, now)

    def compute_discount_amount(self, discount: Discount, order_value) -> Decimal:
        """
        Percentage: order_value * value / 100 capped at max_discount_amount.
        Fixed: value capped at order_value. Result is within [0, order_value].
        """
        order_value = Decimal(order_value)

        if discount.type == DiscountType.PERCENTAGE:
            amount = order_value * Decimal(str(discount.value)) / Decimal(100)
            if discount.max_discount_amount is not None:
                amount = min(amount, Decimal(discount.max_discount_amount))
        else:
            amount = min(Decimal(str(discount.value)), order_value)

        amount = max(Decimal("0"), min(amount, order_value))
        return quantize_money(amount)

    async def consume(self, discount: Discount, user_id: int, order_id: Optional[int], db: AsyncSession) -> DiscountUsage:
        """
        Record a usage inside the caller's transaction. Does not commit.
        """
        result = await db.execute(
            update(Discount)
            .where(Discount.id == discount.id, Discount.used_count < Discount.usage_limit)
            .values(used_count=Discount.used_count + 1)
        )
        if result.rowcount == 0:
            raise BadRequestException("Discount code usage limit has been reached")

        usage = DiscountUsage(user_id=user_id, discount_id=discount.id, order_id=order_id)
        db.add(usage)
        try:
            await db.flush()
        except IntegrityError:
            raise BadRequestException("Discount code already used")

        logger.info(f"Discount {discount.id} consumed by user {user_id} for order {order_id}")
        return usage

    async def apply(
        self,
        code: str,
        order_value: Decimal,
        user_id: int,
        db: AsyncSession,
        order_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Validate and price a discount code. When ``order_id`` is given the
        usage is recorded as well.
        """
        try:
            discount = await self.validate(code, order_value, user_id, db)
            discount_amount = self.compute_discount_amount(discount, order_value)

            if order_id is not None:
                order = await db.get(Order, order_id)
                if not order or order.user_id != user_id:
                    raise NotFoundException(f"Order with ID {order_id} not found")
                await self.consume(discount, user_id, order_id, db)
                await db.commit()

            return {
                "discount_amount": discount_amount,
                "final_amount": quantize_money(Decimal(order_value) - discount_amount),
                "discount_id": discount.id,
            }

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "apply discount")

    async def rollback(self, discount_id: int, order_id: int, db: AsyncSession) -> bool:
        """
        Give a consumed usage back: deletes the usage row recorded for
        ``order_id`` and returns one unit to the discount's remaining limit.
        """
        try:
            query = select(DiscountUsage).where(
                DiscountUsage.discount_id == discount_id,
                DiscountUsage.order_id == order_id,
            )
            usage = (await db.execute(query)).scalars().first()

            if not usage:
                raise NotFoundException(f"No usage of discount {discount_id} recorded for order {order_id}")

            await db.delete(usage)
            await db.execute(
                update(Discount)
                .where(Discount.id == discount_id, Discount.used_count > 0)
                .values(used_count=Discount.used_count - 1)
            )
            await db.commit()

            logger.info(f"Discount {discount_id} usage rolled back for order {order_id}")
            return True

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "roll back discount usage")

    async def get_user_usages(self, user_id: int, db: AsyncSession) -> List[DiscountUsage]:
        query = (
            select(DiscountUsage)
            .where(DiscountUsage.user_id == user_id)
            .order_by(DiscountUsage.used_at.desc())
        )
        result = await db.execute(query)
        return result.scalars().all()
