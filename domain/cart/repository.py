"""
购物车仓储接口
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import BuyerCart


class CartRepository(ABC):
    """购物车仓储抽象接口"""

    @abstractmethod
    async def get(self, buyer_id: str) -> Optional[BuyerCart]:
        """获取买家购物车"""
        pass

    @abstractmethod
    async def save(self, cart: BuyerCart) -> BuyerCart:
        """保存购物车（不存在则创建）"""
        pass

    @abstractmethod
    async def clear(self, buyer_id: str) -> bool:
        """清空购物车，返回是否有商品被移除；空购物车或不存在时为 no-op"""
        pass
