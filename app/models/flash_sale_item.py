from sqlalchemy import CheckConstraint, Column, Float, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from ..db.base import Base
from .base import TimeStampMixin


class FlashSaleItem(Base, TimeStampMixin):
    """
    Enrollment of a product (optionally one of its variants) in a campaign.

    Attributes:
        discount_percent (float): Percentage taken off the regular price.
        quantity (int): Promotional quantity cap, ``None`` for uncapped.
    """

    __tablename__ = "flash_sale_items"
    __table_args__ = (
        UniqueConstraint("campaign_id", "product_id", "variant_id", name="uq_flash_sale_items_enrollment"),
        CheckConstraint(
            "discount_percent > 0 AND discount_percent <= 100",
            name="ck_flash_sale_items_discount_percent",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    campaign_id = Column(Integer, ForeignKey("flash_sale_campaigns.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    discount_percent = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=True)

    # Relationships
    campaign = relationship("FlashSaleCampaign", back_populates="items")
    product = relationship("Product")
    variant = relationship("ProductVariant")
