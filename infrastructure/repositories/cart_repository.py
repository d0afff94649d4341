"""
购物车仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from domain.cart.entity import BuyerCart
from domain.cart.repository import CartRepository
from infrastructure.models.cart import BuyerCartModel


class SQLAlchemyCartRepository(CartRepository):
    """购物车仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: BuyerCartModel) -> BuyerCart:
        return BuyerCart(
            buyer_id=model.buyer_id,
            items={k: int(v) for k, v in (model.items or {}).items()},
            updated_at=model.updated_at,
        )

    async def get(self, buyer_id: str) -> Optional[BuyerCart]:
        result = await self.session.execute(
            select(BuyerCartModel).where(BuyerCartModel.buyer_id == buyer_id)
        )
        db_cart = result.scalar_one_or_none()
        return self._to_entity(db_cart) if db_cart else None

    async def save(self, cart: BuyerCart) -> BuyerCart:
        db_cart = await self.session.get(BuyerCartModel, cart.buyer_id)
        if db_cart is None:
            db_cart = BuyerCartModel(buyer_id=cart.buyer_id, items=dict(cart.items))
            self.session.add(db_cart)
        else:
            db_cart.items = dict(cart.items)
            db_cart.updated_at = datetime.now(timezone.utc)
        await self.session.flush()
        return self._to_entity(db_cart)

    async def clear(self, buyer_id: str) -> bool:
        cart = await self.get(buyer_id)
        if cart is None or not cart.clear():
            return False
        await self.session.execute(
            update(BuyerCartModel)
            .where(BuyerCartModel.buyer_id == buyer_id)
            .values(items={}, updated_at=cart.updated_at)
            .execution_options(synchronize_session=False)
        )
        return True
