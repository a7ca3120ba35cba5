from pydantic import BaseModel, Field, computed_field
from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal

from ..enums import OrderStatus, PaymentMethod, PaymentStatus, ShippingMethod


ORDER_STATUS_LABELS = {
    OrderStatus.PENDING: "Awaiting confirmation",
    OrderStatus.CONFIRMED: "Confirmed",
    OrderStatus.PROCESSING: "Preparing for shipment",
    OrderStatus.SHIPPED: "Shipped",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.COMPLETED: "Completed",
    OrderStatus.CANCELLED: "Cancelled",
    OrderStatus.REFUNDED: "Refunded",
}


class AddressFree(BaseModel):
    """Free-form delivery address used instead of a stored address"""
    receiver_name: str = Field(min_length=1)
    receiver_phone: str = Field(min_length=1)
    province: str = Field(min_length=1)
    district: str = Field(min_length=1)
    ward: str = Field(min_length=1)
    address: str = Field(min_length=1)

class OrderItemCreate(BaseModel):
    product_id: int
    variant_id: int
    quantity: int
    price: Decimal

class OrderCreate(BaseModel):
    """Schema for creating orders. Exactly one of address_id and address_free is required."""
    address_id: Optional[int] = None
    address_free: Optional[AddressFree] = None
    items: List[OrderItemCreate]
    shipping_price: Decimal = Field(Decimal("0"), ge=0)
    discount_id: Optional[int] = None
    total_price: Decimal
    shipping_method: ShippingMethod = ShippingMethod.STANDARD
    payment_method: PaymentMethod
    note: Optional[str] = None

class OrderItemResponse(BaseModel):
    """Schema for order item responses"""
    id: int
    product_id: int
    variant_id: int
    quantity: int
    price: Decimal

    class Config:
        from_attributes = True

class OrderResponse(BaseModel):
    id: int
    user_id: int
    address_id: Optional[int] = None
    shipping_address: Dict[str, Any]
    total_price: Decimal
    shipping_price: Decimal
    discount_id: Optional[int] = None
    discount_amount: Decimal
    status: OrderStatus
    shipping_method: ShippingMethod
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    note: Optional[str] = None
    reason: Optional[str] = None
    shipping: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def status_label(self) -> str:
        return ORDER_STATUS_LABELS.get(self.status, self.status.value)

    class Config:
        from_attributes = True

class OrderStatusUpdate(BaseModel):
    """Schema for updating order status"""
    status: OrderStatus
    reason: Optional[str] = None

class OrderCancellationRequest(BaseModel):
    """Schema for requesting order cancellation"""
    reason: str = Field(..., min_length=1)

class ShipmentAttach(BaseModel):
    """Carrier order created by the shipping integration"""
    order_code: str
    expected_delivery_time: Optional[datetime] = None
    fee: Decimal = Field(Decimal("0"), ge=0)

class ShippingStatusSync(BaseModel):
    status_code: str

class PaymentResult(BaseModel):
    """Outcome reported by the payment gateway return handler"""
    verified: bool
