from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, Numeric, String, Text, false
from sqlalchemy.orm import relationship

from ..db.base import Base
from ..models.base import SoftDeleteMixin, TimeStampMixin


class Product(Base, TimeStampMixin, SoftDeleteMixin):
    """
    Catalogue product.

    The flash_sale_* columns are a denormalized copy of the campaign that is
    currently running for the product. They are written by the campaign start
    handler and cleared by the end handler.
    """

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)

    is_in_flash_sale = Column(Boolean, default=False, server_default=false(), nullable=False)
    flash_sale_campaign_id = Column(Integer, ForeignKey("flash_sale_campaigns.id"), nullable=True)
    flash_sale_price = Column(Numeric(12, 2), nullable=True)
    flash_sale_discount_percent = Column(Float, nullable=True)
    flash_sale_quantity = Column(Integer, nullable=True)
    flash_sale_start_date = Column(DateTime, nullable=True)
    flash_sale_end_date = Column(DateTime, nullable=True)

    # Relationships
    variants = relationship("ProductVariant", back_populates="product")

    def __repr__(self):
        return f"<Product(id={self.id}, name={self.name}, is_in_flash_sale={self.is_in_flash_sale})>"
