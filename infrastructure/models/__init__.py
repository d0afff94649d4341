"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderModel
from .cart import BuyerCartModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "BuyerCartModel",
]
