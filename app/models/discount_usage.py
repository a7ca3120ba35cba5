from sqlalchemy import Column, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from ..db.base import Base
from ..utils import utcnow


class DiscountUsage(Base):
    __tablename__ = "discount_usages"
    __table_args__ = (
        UniqueConstraint("user_id", "discount_id", name="uq_discount_usages_user_discount"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    discount_id = Column(Integer, ForeignKey("discounts.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    used_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    discount = relationship("Discount")
