from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from ..db.base import Base
from .base import TimeStampMixin


class FlashSaleCampaign(Base, TimeStampMixin):
    """
    Represents a time-bounded flash sale campaign.

    Attributes:
        id (int): Primary key identifier for the campaign.
        name (str): Unique name of the campaign.
        description (str): Optional description shown to buyers.
        start_date (datetime): When the promotional prices become active.
        end_date (datetime): When the promotional prices are withdrawn.
        items (List[FlashSaleItem]): Products enrolled in the campaign.
    """

    __tablename__ = "flash_sale_campaigns"
    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_flash_sale_campaigns_window"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)

    # Relationships
    items = relationship("FlashSaleItem", back_populates="campaign", cascade="all, delete-orphan")


    def __repr__(self):
        return (
            f'<FlashSaleCampaign(id={self.id}, name={self.name}, start_date={self.start_date},'
            f' end_date={self.end_date})>'
        )
