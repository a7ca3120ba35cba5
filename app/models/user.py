from sqlalchemy import Column, Enum, Integer, String
from sqlalchemy.orm import relationship

from ..models.base import Base, SoftDeleteMixin, TimeStampMixin
from ..enums import UserRole


class User(Base, TimeStampMixin, SoftDeleteMixin):
    """Read model of a buyer; accounts are managed by the identity service."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=False)
    phone_number = Column(String, nullable=True)
    role = Column(Enum(UserRole), default=UserRole.CUSTOMER, nullable=False)

    # Relationships
    addresses = relationship("Address", back_populates="user")
    orders = relationship("Order", back_populates="user")
