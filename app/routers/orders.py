from fastapi import APIRouter, Depends, status, BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from ..core.dependencies import get_db, get_current_user, get_current_admin
from ..models import User
from ..schemas.order import (
    OrderCancellationRequest,
    OrderCreate,
    OrderItemResponse,
    OrderResponse,
    OrderStatusUpdate,
    PaymentResult,
    ShipmentAttach,
    ShippingStatusSync,
)
from ..services.order_service import OrderService

router = APIRouter()
order_service = OrderService()

@router.post("/", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    order_data: OrderCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    **Create New Order**

    **Request Body:**
    - **address_id** or **address_free**: exactly one delivery address
    - **items**: product, variant, quantity and the unit price shown to the buyer
    - **shipping_price**: shipping quote
    - **discount_id**: optional discount, re-validated server-side
    - **total_price**: must equal items + shipping - discount exactly
    - **payment_method**: cash, vnpay or momo

    **Process:**
    1. Validates the buyer, address, items and discount
    2. Recomputes the total and rejects any mismatch
    3. Creates the order, reserves stock and records discount usage atomically
    4. Removes ordered lines from the cart
    5. Sends order confirmation email
    """
    return await order_service.create_order(current_user.id, order_data, db, background_tasks)

@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get one of the current user's orders"""
    return await order_service.get_order(order_id, db, current_user.id)

@router.get("/{order_id}/items", response_model=List[OrderItemResponse])
async def get_order_items(
    order_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the line items of one of the current user's orders"""
    return await order_service.get_order_items(order_id, db, current_user.id)

@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: int,
    cancellation: OrderCancellationRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    **Cancel Order**

    Only pending orders can be cancelled. Stock for every item is restored.
    """
    return await order_service.cancel_order(
        order_id, cancellation.reason, db, user_id=current_user.id, background_tasks=background_tasks
    )

@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: int,
    status_update: OrderStatusUpdate,
    background_tasks: BackgroundTasks,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    **Update Order Status (Admin)**

    Allowed transitions:
    - pending -> confirmed, cancelled
    - confirmed -> processing
    - processing -> shipped
    - shipped -> delivered
    - delivered -> completed, refunded
    - completed -> refunded

    A reason is required for cancelled and refunded and rejected otherwise.
    """
    return await order_service.update_status(
        order_id, status_update.status, db, reason=status_update.reason, background_tasks=background_tasks
    )

@router.post("/{order_id}/shipment", response_model=OrderResponse)
async def attach_shipment(
    order_id: int,
    shipment: ShipmentAttach,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Attach the carrier order created for a confirmed order"""
    return await order_service.attach_shipment(order_id, shipment, db)

@router.post("/{order_id}/shipping-status", response_model=OrderResponse)
async def sync_shipping_status(
    order_id: int,
    sync: ShippingStatusSync,
    background_tasks: BackgroundTasks,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Record a carrier status update for an order"""
    return await order_service.sync_shipping_status(order_id, sync.status_code, db, background_tasks)

@router.post("/{order_id}/payment-result", response_model=OrderResponse)
async def record_payment_result(
    order_id: int,
    payment: PaymentResult,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Record the verified outcome returned by the payment gateway"""
    return await order_service.record_payment_result(order_id, payment.verified, db)
