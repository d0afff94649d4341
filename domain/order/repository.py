"""
订单仓储接口 - 定义订单数据访问的抽象接口

支付状态的转换规则由条件写入保证：
- mark_paid_if_unpaid 只在 is_paid 为 False 时生效（比较并设置）
- delete_if_unpaid 只删除未支付订单
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Order, CheckoutGroup


class OrderRepository(ABC):
    """订单仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create_group(self, group: CheckoutGroup) -> List[Order]:
        """持久化一个已校验的结账组"""
        pass

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """根据本地订单ID获取订单"""
        pass

    @abstractmethod
    async def list_by_processor_order_id(
        self,
        processor_order_id: str,
        unpaid_only: bool = False
    ) -> List[Order]:
        """根据渠道订单号获取订单（零个或多个）"""
        pass

    @abstractmethod
    async def list_paid_by_buyer(
        self,
        buyer_id: str,
        skip: int = 0,
        limit: int = 100
    ) -> List[Order]:
        """获取买家已支付订单，按创建时间倒序"""
        pass

    @abstractmethod
    async def mark_paid_if_unpaid(
        self,
        order_id: str,
        payment_id: Optional[str],
        processor_order_id: Optional[str] = None
    ) -> bool:
        """
        条件更新：仅当订单未支付时标记为已支付并记录支付ID

        Returns:
            True 表示本次调用完成了转换；False 表示已支付、不存在或渠道订单号不匹配
        """
        pass

    @abstractmethod
    async def delete_if_unpaid(
        self,
        order_id: str,
        processor_order_id: Optional[str] = None
    ) -> bool:
        """条件删除：仅删除未支付订单，返回是否实际删除"""
        pass

    @abstractmethod
    async def mark_group_paid_if_unpaid(
        self,
        processor_order_id: str,
        payment_id: Optional[str] = None
    ) -> List[Order]:
        """批量条件更新同一渠道订单号下的未支付订单，返回本次完成转换的订单"""
        pass

    @abstractmethod
    async def claim_cart_clear(self, processor_order_id: str) -> List[Order]:
        """
        认领购物车清空：为已支付且未标记的订单写入清空时间

        Returns:
            本次调用打上标记的订单；为空表示无需再清空
        """
        pass
