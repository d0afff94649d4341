"""Buyer cart domain package."""
from .entity import BuyerCart

__all__ = ["BuyerCart"]
