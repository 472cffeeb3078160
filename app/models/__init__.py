"""
Exportar todos los modelos
"""
from app.models.user import User
from app.models.menu_item import MenuItem
from app.models.order import Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus

__all__ = [
    "User",
    "MenuItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
]
