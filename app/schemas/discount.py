from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

from ..enums import DiscountStatus, DiscountType


class DiscountBase(BaseModel):
    """Base schema for discount codes"""
    code: str = Field(min_length=1, max_length=50)
    description: Optional[str] = None
    type: DiscountType
    value: float = Field(gt=0, description="Percentage or fixed amount")
    max_discount_amount: Optional[Decimal] = Field(None, gt=0, description="Required for percentage discounts")
    min_order_value: Decimal = Field(Decimal("0"), ge=0)
    usage_limit: int = Field(1, ge=1, description="Total number of times the code can be used")
    usage_per_user: int = Field(1, ge=1)
    start_date: datetime
    end_date: datetime

class DiscountCreate(DiscountBase):
    """Schema for creating discounts"""
    pass

class DiscountResponse(DiscountBase):
    """Schema for discount responses"""
    id: int
    used_count: int = 0
    status: Optional[DiscountStatus] = None
    created_at: datetime

    class Config:
        from_attributes = True

class DiscountApplyRequest(BaseModel):
    code: str
    order_value: Decimal = Field(ge=0)
    order_id: Optional[int] = None

class DiscountApplyResponse(BaseModel):
    discount_amount: Decimal
    final_amount: Decimal
    discount_id: int

class DiscountRollbackRequest(BaseModel):
    order_id: int

class DiscountUsageResponse(BaseModel):
    id: int
    user_id: int
    discount_id: int
    order_id: Optional[int] = None
    used_at: datetime

    class Config:
        from_attributes = True
