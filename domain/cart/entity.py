"""
买家购物车实体
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from domain.common.exceptions import DomainValidationException


@dataclass
class BuyerCart:
    """
    买家购物车 - 商品ID到数量的映射

    每个买家只有一个购物车，与订单独立持久化。
    """

    buyer_id: str
    items: dict[str, int] = field(default_factory=dict)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.buyer_id:
            raise DomainValidationException("买家ID不能为空", field="buyer_id")
        if self.items is None:
            self.items = {}
        for product_id, quantity in self.items.items():
            if int(quantity) < 0:
                raise DomainValidationException(
                    f"商品数量不能为负数: {product_id}",
                    field="items"
                )

    def is_empty(self) -> bool:
        return not any(q > 0 for q in self.items.values())

    def clear(self) -> bool:
        """清空购物车，返回是否有商品被移除（幂等）"""
        if not self.items:
            return False
        had_items = not self.is_empty()
        self.items = {}
        self.updated_at = datetime.now(timezone.utc)
        return had_items
