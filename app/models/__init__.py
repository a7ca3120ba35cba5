from .address import Address
from .cart import Cart
from .cart_item import CartItem
from .discount import Discount
from .discount_usage import DiscountUsage
from .flash_sale_campaign import FlashSaleCampaign
from .flash_sale_item import FlashSaleItem
from .order import Order
from .order_item import OrderItem
from .order_status_history import OrderStatusHistory
from .product import Product
from .product_variant import ProductVariant
from .scheduled_job import ScheduledJob
from .user import User


__all__ = [
    "Address",
    "Cart",
    "CartItem",
    "Discount",
    "DiscountUsage",
    "FlashSaleCampaign",
    "FlashSaleItem",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "Product",
    "ProductVariant",
    "ScheduledJob",
    "User",
]
