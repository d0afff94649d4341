"""
订单领域实体 - 订单与结账组
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from domain.common.exceptions import (
    CheckoutGroupInvalidException,
    DomainValidationException,
)


class OrderStatus(str, Enum):
    """履约状态枚举（与支付状态相互独立）"""
    ORDER_PLACED = "ORDER_PLACED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"


class PaymentMethod(str, Enum):
    RAZORPAY = "RAZORPAY"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Order:
    """
    订单实体 - 一次结账中某个店铺对应的部分

    业务规则：
    1. is_paid 单调：只能 False -> True，永不回退
    2. 已支付订单不可删除
    3. 每个订单最多记录一个渠道支付ID
    """

    id: str
    processor_order_id: Optional[str]
    buyer_id: str
    store_id: str
    total: Decimal
    subtotal: Decimal = field(default_factory=lambda: Decimal("0"))
    gst_amount: Decimal = field(default_factory=lambda: Decimal("0"))
    shipping_charge: Decimal = field(default_factory=lambda: Decimal("0"))
    payment_method: PaymentMethod = PaymentMethod.RAZORPAY
    status: OrderStatus = OrderStatus.ORDER_PLACED
    is_paid: bool = False
    payment_id: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    # 买家购物车已为该订单清空的时间，与清空操作同一事务写入
    cart_cleared_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.id:
            raise DomainValidationException("订单ID不能为空", field="id")
        if not self.buyer_id:
            raise DomainValidationException("买家ID不能为空", field="buyer_id")
        if self.total <= 0:
            raise DomainValidationException(
                f"订单金额必须大于0: {self.total}",
                field="total"
            )
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.paid_at = _ensure_utc(self.paid_at)
        self.cart_cleared_at = _ensure_utc(self.cart_cleared_at)

    def mark_paid(self, payment_id: Optional[str] = None) -> bool:
        """
        标记为已支付（幂等）

        已支付时直接返回 False，不覆盖已记录的支付ID。
        返回 True 表示本次调用完成了状态转换。
        """
        if self.is_paid:
            return False
        self.is_paid = True
        if payment_id:
            self.payment_id = payment_id
        self.paid_at = datetime.now(timezone.utc)
        self.updated_at = self.paid_at
        return True

    def belongs_to(self, processor_order_id: Optional[str]) -> bool:
        return processor_order_id is not None and self.processor_order_id == processor_order_id


@dataclass
class CheckoutGroup:
    """
    结账组 - 同一次购物车提交拆分出的订单集合

    不单独持久化，通过渠道订单号重建。创建时强制：
    1. 至少一个订单
    2. 所有订单属于同一买家
    3. 所有订单共享同一个渠道订单号
    4. 订单ID不重复
    """

    processor_order_id: str
    buyer_id: str
    orders: list[Order]

    def __post_init__(self):
        self.validate()

    @classmethod
    def from_orders(cls, orders: Iterable[Order]) -> "CheckoutGroup":
        items = list(orders)
        if not items:
            raise CheckoutGroupInvalidException("Checkout group must contain at least one order")
        first = items[0]
        return cls(
            processor_order_id=first.processor_order_id or "",
            buyer_id=first.buyer_id,
            orders=items,
        )

    def validate(self) -> None:
        if not self.orders:
            raise CheckoutGroupInvalidException("Checkout group must contain at least one order")
        if not self.processor_order_id:
            raise CheckoutGroupInvalidException("Checkout group requires a processor order id")

        buyers = {o.buyer_id for o in self.orders}
        if buyers != {self.buyer_id}:
            raise CheckoutGroupInvalidException(
                "All orders in a checkout group must share one buyer",
                details={"buyer_ids": sorted(buyers)},
            )
        processor_ids = {o.processor_order_id for o in self.orders}
        if processor_ids != {self.processor_order_id}:
            raise CheckoutGroupInvalidException(
                "All orders in a checkout group must share one processor order id",
                details={"processor_order_ids": sorted(str(p) for p in processor_ids)},
            )
        ids = [o.id for o in self.orders]
        if len(ids) != len(set(ids)):
            raise CheckoutGroupInvalidException("Duplicate order ids in checkout group")
        if any(o.is_paid for o in self.orders):
            raise CheckoutGroupInvalidException("New checkout group cannot contain paid orders")

    @property
    def order_ids(self) -> list[str]:
        return [o.id for o in self.orders]

    @property
    def grand_total(self) -> Decimal:
        return sum((o.total for o in self.orders), Decimal("0"))

    def is_settled(self) -> bool:
        """全部订单已支付"""
        return all(o.is_paid for o in self.orders)
