from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from ..core.dependencies import get_db, get_current_user, get_current_admin
from ..models import User
from ..schemas.discount import (
    DiscountApplyRequest,
    DiscountApplyResponse,
    DiscountCreate,
    DiscountResponse,
    DiscountRollbackRequest,
    DiscountUsageResponse,
)
from ..services.discount_service import DiscountService

router = APIRouter()
discount_service = DiscountService()

@router.post("/", response_model=DiscountResponse, status_code=status.HTTP_201_CREATED)
async def create_discount(
    discount_data: DiscountCreate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a discount code (Admin)"""
    return await discount_service.create_discount(discount_data, db)

@router.post("/apply", response_model=DiscountApplyResponse)
async def apply_discount(
    request: DiscountApplyRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    **Apply Discount**

    Returns the discount amount and the final amount for ``order_value``.
    When ``order_id`` is given the code is consumed for that order.
    """
    return await discount_service.apply(request.code, request.order_value, current_user.id, db, request.order_id)

@router.get("/usages/me", response_model=List[DiscountUsageResponse])
async def get_my_discount_usages(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Discount codes the current user has already used"""
    return await discount_service.get_user_usages(current_user.id, db)

@router.post("/{discount_id}/rollback")
async def rollback_discount_usage(
    discount_id: int,
    request: DiscountRollbackRequest,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Give back the usage recorded for an order (Admin)"""
    await discount_service.rollback(discount_id, request.order_id, db)
    return {"message": "Discount usage rolled back"}
