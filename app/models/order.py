from sqlalchemy import CheckConstraint, Column, Enum, ForeignKey, Integer, JSON, Numeric, Text
from sqlalchemy.orm import relationship

from ..db.base import Base
from ..enums import OrderStatus, PaymentMethod, PaymentStatus, ShippingMethod
from ..models.base import TimeStampMixin


class Order(Base, TimeStampMixin):
    """
    A placed order.

    ``shipping_address`` always holds a snapshot of the delivery address, even
    when the order was placed against a stored address (``address_id``).
    ``shipping`` is the carrier block: order_code, expected_delivery_time,
    status_code, status_name and fee.
    """

    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("total_price >= 0", name="ck_orders_total_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    address_id = Column(Integer, ForeignKey("addresses.id"), nullable=True)
    shipping_address = Column(JSON, nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    shipping_price = Column(Numeric(12, 2), nullable=False, default=0)
    discount_id = Column(Integer, ForeignKey("discounts.id"), nullable=True)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False)
    shipping_method = Column(Enum(ShippingMethod), default=ShippingMethod.STANDARD, nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.UNPAID, nullable=False)
    note = Column(Text, nullable=True)
    reason = Column(Text, nullable=True)
    shipping = Column(JSON, nullable=True)

    # Relationships
    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order")
    status_history = relationship("OrderStatusHistory", back_populates="order", order_by="OrderStatusHistory.id")
    discount = relationship("Discount")

    def __repr__(self):
        return f"<Order(id={self.id}, user_id={self.user_id}, status={self.status}, total_price={self.total_price})>"
