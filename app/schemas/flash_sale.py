from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class FlashSaleCampaignBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime


class FlashSaleCampaignCreate(FlashSaleCampaignBase):
    pass


class FlashSaleCampaignResponse(FlashSaleCampaignBase):
    id: int
    created_at: datetime

    class Config:
        from_attributes = True


class FlashSaleItemCreate(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    discount_percent: float = Field(gt=0, le=100)
    quantity: Optional[int] = Field(None, ge=1, description="Promotional quantity cap")


class FlashSaleItemResponse(FlashSaleItemCreate):
    id: int
    campaign_id: int

    class Config:
        from_attributes = True
