from butik.models.user import User, ADMIN_ROLES
from butik.models.product import Product
from butik.models.cart import Cart, CartItem
from butik.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    ORDER_STATUSES,
    TERMINAL_STATUSES,
    VALID_ORDER_TRANSITIONS,
    can_transition,
)

__all__ = [
    "User",
    "ADMIN_ROLES",
    "Product",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "ORDER_STATUSES",
    "TERMINAL_STATUSES",
    "VALID_ORDER_TRANSITIONS",
    "can_transition",
]
