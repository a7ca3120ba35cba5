"""
Order status state machine.

Valid status transitions:
- PENDING -> CONFIRMED, CANCELLED
- CONFIRMED -> PROCESSING
- PROCESSING -> SHIPPED
- SHIPPED -> DELIVERED
- DELIVERED -> COMPLETED, REFUNDED
- COMPLETED -> REFUNDED

CANCELLED and REFUNDED are final. Moving an order to the status it already
has is accepted and changes nothing.
"""

import logging
from typing import Dict, List, Optional, Set

from ..enums import OrderStatus, PaymentMethod, PaymentStatus
from ..exceptions import BadRequestException


logger = logging.getLogger(__name__)


ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.COMPLETED, OrderStatus.REFUNDED},
    OrderStatus.COMPLETED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}

REASON_REQUIRED_STATUSES = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}


class OrderStateMachine:

    @classmethod
    def is_valid_transition(cls, current_status: OrderStatus, new_status: OrderStatus) -> bool:
        if current_status == new_status:
            return True
        return new_status in ORDER_STATUS_TRANSITIONS.get(current_status, set())

    @classmethod
    def get_valid_transitions(cls, current_status: OrderStatus) -> List[OrderStatus]:
        return sorted(ORDER_STATUS_TRANSITIONS.get(current_status, set()), key=lambda s: s.value)

    @classmethod
    def is_final_status(cls, status: OrderStatus) -> bool:
        return not ORDER_STATUS_TRANSITIONS.get(status)

    @classmethod
    def requires_reason(cls, status: OrderStatus) -> bool:
        return status in REASON_REQUIRED_STATUSES

    @classmethod
    def validate_reason(cls, new_status: OrderStatus, reason: Optional[str]) -> None:
        """Reason is mandatory for cancelled/refunded and not accepted for any other status."""
        has_reason = bool(reason and reason.strip())

        if cls.requires_reason(new_status) and not has_reason:
            raise BadRequestException(f"A reason is required to move an order to '{new_status.value}'")

        if not cls.requires_reason(new_status) and has_reason:
            raise BadRequestException("A reason is only accepted when cancelling or refunding an order")

    @classmethod
    def validate_transition(cls, current_status: OrderStatus, new_status: OrderStatus) -> None:
        if not cls.is_valid_transition(current_status, new_status):
            allowed = ", ".join(s.value for s in cls.get_valid_transitions(current_status)) or "none"
            logger.warning(f"Rejected order status transition {current_status.value} -> {new_status.value}")
            raise BadRequestException(
                f"Cannot change order status from '{current_status.value}' to '{new_status.value}'. "
                f"Allowed: {allowed}"
            )

    @classmethod
    def payment_status_after(
        cls,
        payment_method: PaymentMethod,
        new_status: OrderStatus,
        payment_status: PaymentStatus,
    ) -> PaymentStatus:
        """Payment status an order ends up with once it enters ``new_status``."""
        if new_status == OrderStatus.DELIVERED and payment_method == PaymentMethod.CASH:
            return PaymentStatus.PAID

        if new_status == OrderStatus.CANCELLED:
            return PaymentStatus.CANCELLED

        if new_status == OrderStatus.COMPLETED and payment_method != PaymentMethod.CASH:
            return PaymentStatus.PAID

        return payment_status
