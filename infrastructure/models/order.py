"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, String, Numeric, DateTime, Boolean, Index,
)
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    订单数据库模型

    这是数据库表的映射，不包含业务逻辑
    支付状态的单调性由仓储的条件写入保证（WHERE is_paid = false）
    """
    __tablename__ = "orders"

    # 主键（本地订单ID，不可变）
    id = Column(String(64), primary_key=True, comment="本地订单ID")

    # 结账组 / 渠道信息
    processor_order_id = Column(String(100), nullable=True, index=True, comment="渠道订单号（结账组共享）")
    payment_id = Column(String(100), nullable=True, comment="渠道支付ID，仅在确认支付时写入")
    payment_method = Column(String(20), nullable=False, default="RAZORPAY", comment="支付方式")

    # 归属
    buyer_id = Column(String(64), nullable=False, index=True, comment="买家ID")
    store_id = Column(String(64), nullable=False, index=True, comment="店铺ID")

    # 金额信息（使用 Numeric 存储精确金额）
    subtotal = Column(Numeric(precision=15, scale=2), nullable=False, default=0, comment="小计")
    gst_amount = Column(Numeric(precision=15, scale=2), nullable=False, default=0, comment="税额")
    shipping_charge = Column(Numeric(precision=15, scale=2), nullable=False, default=0, comment="运费")
    total = Column(Numeric(precision=15, scale=2), nullable=False, comment="订单总额")

    # 状态
    is_paid = Column(Boolean, nullable=False, default=False, index=True, comment="是否已支付（单调）")
    status = Column(String(30), nullable=False, default="ORDER_PLACED", comment="履约状态")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付确认时间")
    cart_cleared_at = Column(DateTime(timezone=True), nullable=True, comment="购物车清空时间（每个订单只清空一次）")

    __table_args__ = (
        Index("ix_orders_processor_paid", "processor_order_id", "is_paid"),
        Index("ix_orders_buyer_paid", "buyer_id", "is_paid"),
    )

    def __repr__(self):
        return (
            f"<OrderModel(id='{self.id}', processor_order_id='{self.processor_order_id}', "
            f"buyer_id='{self.buyer_id}', is_paid={self.is_paid})>"
        )
