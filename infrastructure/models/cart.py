"""
买家购物车数据库模型
"""
from sqlalchemy import Column, String, DateTime, JSON
from datetime import datetime, timezone

from .base import Base


class BuyerCartModel(Base):
    """买家购物车：product_id -> quantity，每个买家一行"""
    __tablename__ = "buyer_carts"

    buyer_id = Column(String(64), primary_key=True, comment="买家ID")
    items = Column(JSON, nullable=False, default=dict, comment="购物车内容")
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    def __repr__(self):
        return f"<BuyerCartModel(buyer_id='{self.buyer_id}', items={len(self.items or {})})>"
