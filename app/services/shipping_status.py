from typing import Optional

from ..enums import OrderStatus


# Carrier (GHN) status code -> internal order status
CARRIER_STATUS_MAP = {
    "ready_to_pick": OrderStatus.PROCESSING,
    "picking": OrderStatus.PROCESSING,
    "picked": OrderStatus.SHIPPED,
    "delivering": OrderStatus.SHIPPED,
    "delivered": OrderStatus.DELIVERED,
    "delivery_fail": OrderStatus.CANCELLED,
    "waiting_to_return": OrderStatus.CANCELLED,
    "return": OrderStatus.CANCELLED,
    "returned": OrderStatus.CANCELLED,
    "cancel": OrderStatus.CANCELLED,
    "exception": OrderStatus.CANCELLED,
}

CARRIER_STATUS_NAMES = {
    "ready_to_pick": "Ready to pick",
    "picking": "Picking",
    "picked": "Picked",
    "delivering": "Delivering",
    "delivered": "Delivered",
    "delivery_fail": "Delivery failed",
    "waiting_to_return": "Waiting to return",
    "return": "Returning",
    "returned": "Returned",
    "cancel": "Cancelled",
    "exception": "Exception",
}


def map_carrier_status(status_code: str) -> Optional[OrderStatus]:
    return CARRIER_STATUS_MAP.get(status_code)
