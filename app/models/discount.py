from sqlalchemy import CheckConstraint, Column, DateTime, Enum, Float, Integer, Numeric, String, Text

from ..db.base import Base
from ..enums import DiscountStatus, DiscountType
from ..models.base import TimeStampMixin
from ..utils import utcnow


class Discount(Base, TimeStampMixin):
    """
    Promotional code.

    ``usage_limit`` is the global cap and ``used_count`` the number of
    consumed usages; both counters are only changed through conditional
    UPDATE statements.
    """

    __tablename__ = "discounts"
    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_discounts_window"),
        CheckConstraint("used_count >= 0", name="ck_discounts_used_count_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    type = Column(Enum(DiscountType), nullable=False)
    value = Column(Float, nullable=False)
    max_discount_amount = Column(Numeric(12, 2), nullable=True)
    min_order_value = Column(Numeric(12, 2), nullable=False, default=0)
    usage_limit = Column(Integer, nullable=False, default=1)
    usage_per_user = Column(Integer, nullable=False, default=1)
    used_count = Column(Integer, nullable=False, default=0)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)

    def status_at(self, now) -> DiscountStatus:
        if now < self.start_date:
            return DiscountStatus.UPCOMING
        if now >= self.end_date:
            return DiscountStatus.ENDED
        return DiscountStatus.ONGOING

    @property
    def status(self) -> DiscountStatus:
        return self.status_at(utcnow())
