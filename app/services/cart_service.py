import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from ..exceptions import BadRequestException, ConflictException, NotFoundException, translate_db_error
from ..models import Cart, CartItem, FlashSaleItem, Product, ProductVariant, User
from ..schemas.cart import CartItemCreate
from ..services.flash_sale_service import FlashSaleService
from ..services.inventory_service import InventoryService
from ..utils import quantize_money, utcnow


logger = logging.getLogger(__name__)


class CartService:
    def __init__(
        self,
        inventory_service: Optional[InventoryService] = None,
        flash_sale_service: Optional[FlashSaleService] = None
    ):
        self.inventory_service = inventory_service or InventoryService()
        self.flash_sale_service = flash_sale_service or FlashSaleService()

    async def _get_active_cart(self, user_id: int, db: AsyncSession) -> Optional[Cart]:
        query = select(Cart).where(Cart.user_id == user_id, Cart.is_deleted.is_(False))
        result = await db.execute(query)
        return result.scalars().first()

    async def get_cart(self, cart_id: int, db: AsyncSession) -> Cart:
        query = select(Cart).where(Cart.id == cart_id, Cart.is_deleted.is_(False))
        result = await db.execute(query)
        cart = result.scalars().first()

        if not cart:
            raise NotFoundException(f"Cart with ID {cart_id} not found")

        return cart

    async def get_cart_for_user(self, user_id: int, db: AsyncSession) -> Cart:
        cart = await self._get_active_cart(user_id, db)
        if not cart:
            raise NotFoundException("Cart not found")
        return cart

    async def _get_cart_item(self, cart_id: int, item_id: int, db: AsyncSession) -> CartItem:
        query = select(CartItem).where(CartItem.id == item_id, CartItem.cart_id == cart_id)
        result = await db.execute(query)
        item = result.scalars().first()

        if not item:
            raise NotFoundException(f"Cart item with ID {item_id} not found")

        return item

    async def create_cart(self, user_id: int, db: AsyncSession) -> Cart:
        """Create an empty cart; a user may only have one."""
        try:
            user = await db.get(User, user_id)
            if not user or user.is_deleted:
                raise NotFoundException(f"User with ID {user_id} not found")

            if await self._get_active_cart(user_id, db):
                raise ConflictException("A cart already exists for this user")

            cart = Cart(user_id=user_id)
            db.add(cart)
            await db.commit()
            await db.refresh(cart)
            return cart

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "create cart")

    async def add_item(self, cart_id: int, item_data: CartItemCreate, db: AsyncSession) -> CartItem:
        """
        Add ``quantity`` units of a variant to the cart.

        The line quantity is incremented atomically first, then checked
        against the variant's stock re-read in the same transaction. If the
        result exceeds stock the whole transaction is rolled back.
        """
        try:
            cart = await self.get_cart(cart_id, db)

            product = await db.get(Product, item_data.product_id)
            if not product or product.is_deleted:
                raise NotFoundException(f"Product with ID {item_data.product_id} not found")

            variant = await db.get(ProductVariant, item_data.variant_id)
            if not variant or variant.is_deleted or variant.product_id != product.id:
                raise NotFoundException(f"Product variant with ID {item_data.variant_id} not found")

            if variant.price <= 0:
                raise BadRequestException("This product variant is not available for sale")

            price, enrollment = await self.flash_sale_service.get_effective_price(product, variant, db)
            flash_sale_fields = {
                "price": price,
                "is_flash_sale": enrollment is not None,
                "flash_sale_discount_percent": enrollment.discount_percent if enrollment else None,
                "flash_sale_item_id": enrollment.id if enrollment else None,
            }

            query = select(CartItem).where(
                CartItem.cart_id == cart.id,
                CartItem.product_id == item_data.product_id,
                CartItem.variant_id == item_data.variant_id,
                CartItem.attribute_value == item_data.attribute_value,
            )
            existing_item = (await db.execute(query)).scalars().first()

            if existing_item:
                await db.execute(
                    update(CartItem)
                    .where(CartItem.id == existing_item.id)
                    .values(quantity=CartItem.quantity + item_data.quantity, **flash_sale_fields)
                )
                item_id = existing_item.id
            else:
                new_item = CartItem(
                    cart_id=cart.id,
                    product_id=item_data.product_id,
                    variant_id=item_data.variant_id,
                    attribute_value=item_data.attribute_value,
                    quantity=item_data.quantity,
                    **flash_sale_fields,
                )
                db.add(new_item)
                await db.flush()
                item_id = new_item.id

            # Re-read both sides after the increment
            item = (await db.execute(
                select(CartItem).where(CartItem.id == item_id).execution_options(populate_existing=True)
            )).scalars().one()
            variant = await self.inventory_service.get_variant_for_update(item_data.variant_id, db)

            if item.quantity > variant.stock:
                raise BadRequestException(
                    f"Not enough stock available. Only {variant.stock} left"
                )

            if enrollment is not None and enrollment.quantity is not None and item.quantity > enrollment.quantity:
                raise BadRequestException(
                    f"Flash sale limit exceeded. At most {enrollment.quantity} can be bought at the sale price"
                )

            cart.updated_at = utcnow()
            await db.commit()
            await db.refresh(item)
            return item

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "add item to cart")

    async def update_item_quantity(self, cart_id: int, item_id: int, quantity: int, db: AsyncSession) -> Optional[CartItem]:
        """Set a line's quantity. Zero or less removes the line and returns None."""
        try:
            await self.get_cart(cart_id, db)
            item = await self._get_cart_item(cart_id, item_id, db)

            if quantity <= 0:
                await db.delete(item)
                await db.commit()
                return None

            variant = await self.inventory_service.get_variant_for_update(item.variant_id, db)
            if quantity > variant.stock:
                raise BadRequestException(f"Not enough stock available. Only {variant.stock} left")

            if item.flash_sale_item_id is not None:
                enrollment = await db.get(FlashSaleItem, item.flash_sale_item_id)
                if enrollment is not None and enrollment.quantity is not None and quantity > enrollment.quantity:
                    raise BadRequestException(
                        f"Flash sale limit exceeded. At most {enrollment.quantity} can be bought at the sale price"
                    )

            item.quantity = quantity
            await db.commit()
            await db.refresh(item)
            return item

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "update cart item")

    async def remove_item(self, cart_id: int, item_id: int, db: AsyncSession) -> bool:
        try:
            await self.get_cart(cart_id, db)
            item = await self._get_cart_item(cart_id, item_id, db)

            await db.delete(item)
            await db.commit()
            return True

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "remove cart item")

    async def clear_cart(self, cart_id: int, db: AsyncSession) -> int:
        """Remove every line from the cart and return how many were removed."""
        try:
            await self.get_cart(cart_id, db)

            result = await db.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
            await db.commit()
            return result.rowcount

        except Exception as e:
            await db.rollback()
            raise translate_db_error(e, "clear cart")

    async def get_cart_with_details(self, cart_id: int, db: AsyncSession) -> Dict[str, Any]:
        cart = await self.get_cart(cart_id, db)

        query = (
            select(CartItem, Product)
            .join(Product, Product.id == CartItem.product_id)
            .where(CartItem.cart_id == cart.id)
            .order_by(CartItem.id)
        )
        rows = (await db.execute(query)).all()

        items = []
        subtotal = Decimal("0")
        for item, product in rows:
            line_total = quantize_money(Decimal(item.price) * item.quantity)
            subtotal += line_total
            items.append({
                "id": item.id,
                "cart_id": item.cart_id,
                "product_id": item.product_id,
                "variant_id": item.variant_id,
                "attribute_value": item.attribute_value,
                "product_name": product.name,
                "quantity": item.quantity,
                "price": item.price,
                "is_flash_sale": item.is_flash_sale,
                "flash_sale_discount_percent": item.flash_sale_discount_percent,
                "flash_sale_item_id": item.flash_sale_item_id,
                "line_total": line_total,
            })

        return {
            "id": cart.id,
            "user_id": cart.user_id,
            "created_at": cart.created_at,
            "updated_at": cart.updated_at,
            "items": items,
            "total_items": sum(item["quantity"] for item in items),
            "subtotal": quantize_money(subtotal),
        }
