from .user import User, RoleEnum
from .side import Side
from .product import Product, product_sides
from .order import Order, OrderStatusEnum
from .order_item import OrderItem
from .checkout import Checkout, CheckoutItem, CheckoutStatusEnum

__all__ = [
    "User",
    "RoleEnum",
    "Side",
    "Product",
    "product_sides",
    "Order",
    "OrderStatusEnum",
    "OrderItem",
    "Checkout",
    "CheckoutItem",
    "CheckoutStatusEnum",
]
