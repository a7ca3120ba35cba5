from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from ..core.dependencies import get_db, get_current_user
from ..models import User
from ..schemas.cart import (
    CartClearResponse,
    CartDetail,
    CartItemCreate,
    CartItemQuantityUpdate,
    CartItemResponse,
    CartResponse,
)
from ..services.cart_service import CartService

router = APIRouter()
cart_service = CartService()

@router.post("/", response_model=CartResponse, status_code=status.HTTP_201_CREATED)
async def create_cart(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Create the current user's cart. A user can only have one."""
    return await cart_service.create_cart(current_user.id, db)

@router.get("/", response_model=CartDetail)
async def get_cart(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get current user's cart with details"""
    cart = await cart_service.get_cart_for_user(current_user.id, db)
    return await cart_service.get_cart_with_details(cart.id, db)

@router.post("/items", response_model=CartItemResponse)
async def add_item_to_cart(
    item: CartItemCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    **Add Item to Cart**

    Adds a product variant to the cart, or increases the quantity of an
    existing line. The resulting quantity may not exceed the variant's stock.
    Flash sale prices apply while the product's campaign is running.
    """
    cart = await cart_service.get_cart_for_user(current_user.id, db)
    return await cart_service.add_item(cart.id, item, db)

@router.put("/items/{item_id}", response_model=Optional[CartItemResponse])
async def update_cart_item_quantity(
    item_id: int,
    update: CartItemQuantityUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Update quantity of a cart item. A quantity of zero removes the item."""
    cart = await cart_service.get_cart_for_user(current_user.id, db)
    return await cart_service.update_item_quantity(cart.id, item_id, update.quantity, db)

@router.delete("/items/{item_id}")
async def remove_cart_item(
    item_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Remove an item from the cart"""
    cart = await cart_service.get_cart_for_user(current_user.id, db)
    return await cart_service.remove_item(cart.id, item_id, db)

@router.delete("/", response_model=CartClearResponse)
async def clear_cart(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Remove all items from the cart"""
    cart = await cart_service.get_cart_for_user(current_user.id, db)
    removed = await cart_service.clear_cart(cart.id, db)
    return {"removed": removed}
