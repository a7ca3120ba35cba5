from sqlalchemy import Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from ..db.base import Base
from ..models.base import SoftDeleteMixin, TimeStampMixin


class Address(Base, TimeStampMixin, SoftDeleteMixin):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    receiver_name = Column(String, nullable=False)
    receiver_phone = Column(String, nullable=False)
    province = Column(String, nullable=False)
    district = Column(String, nullable=False)
    ward = Column(String, nullable=False)
    address = Column(String, nullable=False)

    # Relationships
    user = relationship("User", back_populates="addresses")

    def to_snapshot(self) -> dict:
        """Denormalized copy stored on an order for the shipping carrier."""
        return {
            "receiver_name": self.receiver_name,
            "receiver_phone": self.receiver_phone,
            "province": self.province,
            "district": self.district,
            "ward": self.ward,
            "address": self.address,
        }
