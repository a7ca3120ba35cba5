from sqlalchemy import Column, ForeignKey, Index, Integer, text
from sqlalchemy.orm import relationship

from ..db.base import Base
from ..models.base import SoftDeleteMixin, TimeStampMixin


class Cart(Base, TimeStampMixin, SoftDeleteMixin):
    __tablename__ = "carts"
    __table_args__ = (
        # At most one live cart per user
        Index(
            "uq_carts_user_active",
            "user_id",
            unique=True,
            sqlite_where=text("is_deleted = 0"),
            postgresql_where=text("is_deleted = false"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    # Relationships
    user = relationship("User")
    cart_items = relationship("CartItem", back_populates="cart", cascade="all, delete-orphan")
