"""Order domain package."""
from .entity import Order, OrderStatus, CheckoutGroup, PaymentMethod

__all__ = ["Order", "OrderStatus", "CheckoutGroup", "PaymentMethod"]
