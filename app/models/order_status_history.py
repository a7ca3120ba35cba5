from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.base import Base
from ..enums import OrderStatus
from ..utils import utcnow


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    previous_status = Column(Enum(OrderStatus), nullable=True)
    new_status = Column(Enum(OrderStatus), nullable=False)
    changed_at = Column(DateTime, default=utcnow, nullable=False)
    reason = Column(Text, nullable=True)

    # Relationships
    order = relationship("Order", back_populates="status_history")
