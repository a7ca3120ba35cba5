import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks
from sqlalchemy import delete, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from ..enums import OrderStatus, PaymentMethod, PaymentStatus
from ..exceptions import BadRequestException, NotFoundException, translate_db_error
from ..models import Address, Cart, CartItem, FlashSaleItem, Order, OrderItem, OrderStatusHistory, Product, ProductVariant, User
from ..schemas.order import ORDER_STATUS_LABELS, OrderCreate, ShipmentAttach
from ..services.discount_service import DiscountService
from ..services.email_service import EmailService
from ..services.flash_sale_service import FlashSaleService
from ..services.inventory_service import InventoryService
from ..services.order_state_machine import OrderStateMachine
from ..services.shipping_status import CARRIER_STATUS_NAMES, map_carrier_status
from ..utils import quantize_money, to_naive_utc, utcnow


logger = logging.getLogger(__name__)


class OrderService:
    def __init__(
        self,
        inventory_service: Optional[InventoryService] = None,
        discount_service: Optional[DiscountService] = None,
        flash_sale_service: Optional[FlashSaleService] = None,
        email_service: Optional[EmailService] = None
    ):
        self.inventory_service = inventory_service or InventoryService()
        self.discount_service = discount_service or DiscountService()
        self.flash_sale_service = flash_sale_service or FlashSaleService()
        self.email_service = email_service or EmailService()
        self._notification_tasks = set()

    async def _get_user_by_id(self, user_id: int, db: AsyncSession) -> User:
        """Get user by ID"""
        user = await db.get(User, user_id)
        if not user or user.is_deleted:
            raise NotFoundException(f"User with ID {user_id} not found")
        return user

    async def _resolve_shipping_address(self, user_id: int, order_data: OrderCreate, db: AsyncSession) -> Dict[str, Any]:
        """Snapshot of the delivery address; exactly one representation must be given."""
        if (order_data.address_id is None) == (order_data.address_free is None):
            raise BadRequestException("Provide exactly one of address_id or address_free")

        if order_data.address_free is not None:
            return order_data.address_free.model_dump()

        address = await db.get(Address, order_data.address_id)
        if not address or address.is_deleted or address.user_id != user_id:
            raise NotFoundException(f"Address with ID {order_data.address_id} not found")

        return address.to_snapshot()

    async def create_order(
        self,
        user_id: int,
        order_data: OrderCreate,
        db: AsyncSession,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> Order:
        """
        Place an order.

        Prices, discount and total are recomputed server-side and the submitted
        total must match exactly. The order, its items, the stock decrements,
        the discount usage and the cart cleanup commit as one transaction.
        """
        try:
            user = await self._get_user_by_id(user_id, db)
            shipping_address = await self._resolve_shipping_address(user_id, order_data, db)

            if not order_data.items:
                raise BadRequestException("An order must contain at least one item")

            now = utcnow()
            subtotal = Decimal("0")
            flash_sale_quantities: Dict[int, int] = {}
            flash_sale_caps: Dict[int, FlashSaleItem] = {}

            for item in order_data.items:
                if item.quantity < 1:
                    raise BadRequestException(f"Quantity for variant {item.variant_id} must be at least 1")
                if item.price < 0:
                    raise BadRequestException(f"Price for variant {item.variant_id} cannot be negative")

                product = await db.get(Product, item.product_id)
                if not product or product.is_deleted:
                    raise NotFoundException(f"Product with ID {item.product_id} not found")

                variant = await db.get(ProductVariant, item.variant_id)
                if not variant or variant.is_deleted or variant.product_id != product.id:
                    raise NotFoundException(f"Product variant with ID {item.variant_id} not found")

                current_price, enrollment = await self.flash_sale_service.get_effective_price(product, variant, db, now)
                if quantize_money(item.price) != current_price:
                    raise BadRequestException(
                        f"Price of variant {item.variant_id} has changed. Current price is {current_price}"
                    )

                subtotal += current_price * item.quantity

                if enrollment is not None and enrollment.quantity is not None:
                    flash_sale_quantities[variant.id] = flash_sale_quantities.get(variant.id, 0) + item.quantity
                    flash_sale_caps[variant.id] = enrollment

            # Lines for the same variant share one cap
            for variant_id, quantity in flash_sale_quantities.items():
                enrollment = flash_sale_caps[variant_id]
                if quantity > enrollment.quantity:
                    raise BadRequestException(
                        f"Flash sale limit exceeded. At most {enrollment.quantity} can be bought at the sale price"
                    )

            discount = None
            discount_amount = Decimal("0")
            if order_data.discount_id is not None:
                discount = await self.discount_service.validate_by_id(order_data.discount_id, subtotal, user_id, db, now)
                discount_amount = self.discount_service.compute_discount_amount(discount, subtotal)

            expected_total = quantize_money(subtotal + order_data.shipping_price - discount_amount)
            if expected_total != quantize_money(order_data.total_price):
                raise BadRequestException(
                    f"Order total mismatch: expected {expected_total}, received {quantize_money(order_data.total_price)}"
                )

            new_order = Order(
                user_id=user.id,
                address_id=order_data.address_id,
                shipping_address=shipping_address,
                total_price=expected_total,
                shipping_price=quantize_money(order_data.shipping_price),
                discount_id=discount.id if discount else None,
                discount_amount=discount_amount,
                status=OrderStatus.PENDING,
                shipping_method=order_data.shipping_method,
                payment_method=order_data.payment_method,
                payment_status=PaymentStatus.UNPAID if order_data.payment_method == PaymentMethod.CASH else PaymentStatus.PENDING,
                note=order_data.note,
            )
            db.add(new_order)
            await db.flush()  # Get the order ID without committing

            for item in order_data.items:
                db.add(OrderItem(
                    order_id=new_order.id,
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    quantity=item.quantity,
                    price=quantize_money(item.price),
                ))
                await self.inventory_service.reserve(item.variant_id, item.quantity, db)

            if discount is not None:
                await self.discount_service.consume(discount, user_id, new_order.id, db)

            db.add(OrderStatusHistory(order_id=new_order.id, previous_status=None, new_status=OrderStatus.PENDING))
            await self._remove_ordered_cart_lines(user_id, order_data, db)

            await db.commit()
            await db.refresh(new_order)

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "create order")

        logger.info(f"Order {new_order.id} created for user {user_id}, total {new_order.total_price}")
        self._notify(
            background_tasks,
            self.email_service.send_order_confirmation,
            user.email,
            self._order_payload(new_order, subtotal=quantize_money(subtotal)),
            user.full_name,
        )
        return new_order

    async def _remove_ordered_cart_lines(self, user_id: int, order_data: OrderCreate, db: AsyncSession) -> None:
        cart = (await db.execute(
            select(Cart).where(Cart.user_id == user_id, Cart.is_deleted.is_(False))
        )).scalars().first()
        if not cart:
            return

        line_filters = [
            and_(CartItem.product_id == item.product_id, CartItem.variant_id == item.variant_id)
            for item in order_data.items
        ]
        await db.execute(delete(CartItem).where(CartItem.cart_id == cart.id, or_(*line_filters)))

    async def get_order(self, order_id: int, db: AsyncSession, user_id: Optional[int] = None) -> Order:
        """
        Get order by ID
        If user_id is provided, ensure the order belongs to that user
        """
        query = select(Order).where(Order.id == order_id)

        if user_id is not None:
            query = query.where(Order.user_id == user_id)

        result = await db.execute(query)
        order = result.scalars().first()

        if not order:
            raise NotFoundException(f"Order with ID {order_id} not found")

        return order

    async def get_order_items(self, order_id: int, db: AsyncSession, user_id: Optional[int] = None) -> List[OrderItem]:
        await self.get_order(order_id, db, user_id)
        result = await db.execute(select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id))
        return result.scalars().all()

    async def _restore_stock(self, order: Order, db: AsyncSession) -> None:
        items = (await db.execute(select(OrderItem).where(OrderItem.order_id == order.id))).scalars().all()
        for item in items:
            await self.inventory_service.release(item.variant_id, item.quantity, db)

    def _record_transition(
        self,
        order: Order,
        new_status: OrderStatus,
        db: AsyncSession,
        reason: Optional[str] = None
    ) -> OrderStatus:
        """Apply a validated transition and its payment side effect in memory."""
        previous_status = order.status
        order.status = new_status
        order.payment_status = OrderStateMachine.payment_status_after(
            order.payment_method, new_status, order.payment_status
        )
        if reason:
            order.reason = reason

        db.add(OrderStatusHistory(
            order_id=order.id,
            previous_status=previous_status,
            new_status=new_status,
            reason=reason,
        ))
        return previous_status

    async def cancel_order(
        self,
        order_id: int,
        reason: str,
        db: AsyncSession,
        user_id: Optional[int] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> Order:
        """Cancel a pending order and put its stock back. Items are kept."""
        try:
            order = await self.get_order(order_id, db, user_id)

            if order.status != OrderStatus.PENDING:
                raise BadRequestException(
                    f"Only pending orders can be cancelled. This order is '{order.status.value}'"
                )
            OrderStateMachine.validate_reason(OrderStatus.CANCELLED, reason)

            self._record_transition(order, OrderStatus.CANCELLED, db, reason)
            await self._restore_stock(order, db)

            await db.commit()
            await db.refresh(order)

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "cancel order")

        logger.info(f"Order {order_id} cancelled: {reason}")
        await self._notify_status_change(order, db, background_tasks, reason)
        return order

    async def update_status(
        self,
        order_id: int,
        new_status: OrderStatus,
        db: AsyncSession,
        reason: Optional[str] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> Order:
        """Move an order through the status state machine."""
        try:
            order = await self.get_order(order_id, db)

            OrderStateMachine.validate_reason(new_status, reason)

            if order.status == new_status:
                return order

            OrderStateMachine.validate_transition(order.status, new_status)

            previous_status = self._record_transition(order, new_status, db, reason)
            if new_status == OrderStatus.CANCELLED:
                await self._restore_stock(order, db)

            await db.commit()
            await db.refresh(order)

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "update order status")

        logger.info(f"Order {order_id} status {previous_status.value} -> {new_status.value}")
        await self._notify_status_change(order, db, background_tasks, reason)
        return order

    async def attach_shipment(self, order_id: int, shipment: ShipmentAttach, db: AsyncSession) -> Order:
        """Store the carrier order and move a confirmed order into processing."""
        try:
            order = await self.get_order(order_id, db)

            if order.status not in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING):
                raise BadRequestException("A shipment can only be created for a confirmed order")

            order.shipping = {
                "order_code": shipment.order_code,
                "expected_delivery_time": (
                    to_naive_utc(shipment.expected_delivery_time).isoformat()
                    if shipment.expected_delivery_time else None
                ),
                "status_code": "ready_to_pick",
                "status_name": CARRIER_STATUS_NAMES["ready_to_pick"],
                "fee": str(quantize_money(shipment.fee)),
            }

            if order.status == OrderStatus.CONFIRMED:
                self._record_transition(order, OrderStatus.PROCESSING, db)

            await db.commit()
            await db.refresh(order)
            return order

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "attach shipment")

    async def sync_shipping_status(
        self,
        order_id: int,
        status_code: str,
        db: AsyncSession,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> Order:
        """
        Record a carrier status update. The mapped order status is applied only
        when the state machine allows it; otherwise only the shipping block changes.
        """
        transitioned = False
        try:
            order = await self.get_order(order_id, db)

            if not order.shipping:
                raise BadRequestException("Order has no shipment")

            order.shipping = {
                **order.shipping,
                "status_code": status_code,
                "status_name": CARRIER_STATUS_NAMES.get(status_code, status_code),
            }

            mapped_status = map_carrier_status(status_code)
            if mapped_status is None:
                logger.warning(f"Unknown carrier status '{status_code}' for order {order_id}")
            elif mapped_status != order.status and OrderStateMachine.is_valid_transition(order.status, mapped_status):
                reason = f"Carrier reported '{status_code}'" if OrderStateMachine.requires_reason(mapped_status) else None
                self._record_transition(order, mapped_status, db, reason)
                if mapped_status == OrderStatus.CANCELLED:
                    await self._restore_stock(order, db)
                transitioned = True

            await db.commit()
            await db.refresh(order)

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "sync shipping status")

        if transitioned:
            await self._notify_status_change(order, db, background_tasks, order.reason)
        return order

    async def record_payment_result(self, order_id: int, verified: bool, db: AsyncSession) -> Order:
        """Store the outcome reported by the payment gateway."""
        try:
            order = await self.get_order(order_id, db)

            if order.payment_method == PaymentMethod.CASH:
                raise BadRequestException("Cash orders are paid on delivery")

            if order.payment_status in (PaymentStatus.PAID, PaymentStatus.CANCELLED):
                return order

            order.payment_status = PaymentStatus.PAID if verified else PaymentStatus.FAILED
            await db.commit()
            await db.refresh(order)

            logger.info(f"Payment for order {order_id} recorded as {order.payment_status.value}")
            return order

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "record payment result")

    def _order_payload(self, order: Order, **extra) -> Dict[str, Any]:
        payload = {
            "id": order.id,
            "status": order.status.value,
            "status_label": ORDER_STATUS_LABELS[order.status],
            "payment_method": order.payment_method.value,
            "payment_status": order.payment_status.value,
            "shipping_price": str(order.shipping_price),
            "discount_amount": str(order.discount_amount),
            "total_price": str(order.total_price),
        }
        payload.update({key: str(value) for key, value in extra.items()})
        return payload

    async def _notify_status_change(
        self,
        order: Order,
        db: AsyncSession,
        background_tasks: Optional[BackgroundTasks],
        reason: Optional[str] = None
    ) -> None:
        user = await db.get(User, order.user_id)
        if not user:
            return

        self._notify(
            background_tasks,
            self.email_service.send_order_status_update,
            user.email,
            self._order_payload(order),
            reason,
            user.full_name,
        )

    def _notify(self, background_tasks: Optional[BackgroundTasks], func, *args) -> None:
        """Fire-and-forget; delivery failures are logged by the email service."""
        if background_tasks is not None:
            background_tasks.add_task(func, *args)
            return

        task = asyncio.create_task(func(*args))
        self._notification_tasks.add(task)
        task.add_done_callback(self._notification_tasks.discard)
