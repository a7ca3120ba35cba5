from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal


class CartItemBase(BaseModel):
    """Base schema for cart items"""
    product_id: int
    variant_id: int
    quantity: int = Field(ge=1, default=1)
    attribute_value: str = ""

class CartItemCreate(CartItemBase):
    """Schema for adding a line to a cart"""
    pass

class CartItemQuantityUpdate(BaseModel):
    """A quantity of zero or less removes the line"""
    quantity: int

class CartItemResponse(BaseModel):
    """Schema for cart item responses"""
    id: int
    cart_id: int
    product_id: int
    variant_id: int
    attribute_value: str
    quantity: int
    price: Decimal
    is_flash_sale: bool = False
    flash_sale_discount_percent: Optional[float] = None
    flash_sale_item_id: Optional[int] = None

    class Config:
        from_attributes = True

class CartItemDetail(CartItemResponse):
    product_name: str
    line_total: Decimal

class CartResponse(BaseModel):
    """Schema for cart responses"""
    id: int
    user_id: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class CartDetail(CartResponse):
    items: List[CartItemDetail] = []
    total_items: int
    subtotal: Decimal

class CartClearResponse(BaseModel):
    removed: int
