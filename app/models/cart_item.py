from sqlalchemy import Boolean, CheckConstraint, Column, Float, ForeignKey, Integer, Numeric, String, UniqueConstraint, false
from sqlalchemy.orm import relationship

from ..db.base import Base
from ..models.base import TimeStampMixin


class CartItem(Base, TimeStampMixin):
    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", "variant_id", "attribute_value", name="uq_cart_items_line"),
        CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=False)
    attribute_value = Column(String, nullable=False, default="", server_default="")
    quantity = Column(Integer, default=1, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)

    # Flash-sale metadata captured when the line was priced
    is_flash_sale = Column(Boolean, default=False, server_default=false(), nullable=False)
    flash_sale_discount_percent = Column(Float, nullable=True)
    flash_sale_item_id = Column(Integer, ForeignKey("flash_sale_items.id"), nullable=True)

    # Relationships
    cart = relationship("Cart", back_populates="cart_items")
    product = relationship("Product")
    variant = relationship("ProductVariant")

    def __repr__(self):
        return f'<CartItem(cart_id={self.cart_id}, variant_id={self.variant_id}, quantity={self.quantity})>'
