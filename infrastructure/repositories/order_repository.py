"""
订单仓储实现 - 使用SQLAlchemy实现数据访问

支付状态转换全部使用单条条件语句（UPDATE/DELETE ... WHERE is_paid = false），
通过 rowcount 判断本次调用是否真正完成了转换。
"""
from typing import Optional, List
from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError

from domain.order.entity import Order, OrderStatus, PaymentMethod, CheckoutGroup
from domain.order.repository import OrderRepository
from domain.common.exceptions import CheckoutGroupInvalidException
from infrastructure.models.order import OrderModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            processor_order_id=model.processor_order_id,
            buyer_id=model.buyer_id,
            store_id=model.store_id,
            total=Decimal(str(model.total)),
            subtotal=Decimal(str(model.subtotal)),
            gst_amount=Decimal(str(model.gst_amount)),
            shipping_charge=Decimal(str(model.shipping_charge)),
            payment_method=PaymentMethod(model.payment_method),
            status=OrderStatus(model.status),
            is_paid=bool(model.is_paid),
            payment_id=model.payment_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
            paid_at=model.paid_at,
            cart_cleared_at=model.cart_cleared_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        """将领域实体转换为数据库模型"""
        now = datetime.now(timezone.utc)
        return OrderModel(
            id=entity.id,
            processor_order_id=entity.processor_order_id,
            buyer_id=entity.buyer_id,
            store_id=entity.store_id,
            total=entity.total,
            subtotal=entity.subtotal,
            gst_amount=entity.gst_amount,
            shipping_charge=entity.shipping_charge,
            payment_method=entity.payment_method.value,
            status=entity.status.value,
            is_paid=entity.is_paid,
            payment_id=entity.payment_id,
            created_at=entity.created_at or now,
            updated_at=entity.updated_at or now,
            paid_at=entity.paid_at,
            cart_cleared_at=entity.cart_cleared_at,
        )

    async def create_group(self, group: CheckoutGroup) -> List[Order]:
        """持久化结账组（调用方的事务内一次性写入）"""
        group.validate()
        try:
            models = [self._to_model(o) for o in group.orders]
            self.session.add_all(models)
            await self.session.flush()
            logger.info(
                "checkout_group_created",
                processor_order_id=group.processor_order_id,
                buyer_id=group.buyer_id,
                order_ids=group.order_ids,
            )
            return [self._to_entity(m) for m in models]
        except IntegrityError:
            logger.warning(
                "checkout_group_conflict",
                processor_order_id=group.processor_order_id,
                order_ids=group.order_ids,
            )
            raise CheckoutGroupInvalidException(
                "Order id already exists",
                details={"order_ids": group.order_ids},
            )

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """根据本地订单ID获取订单"""
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.id == order_id)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def list_by_processor_order_id(
        self,
        processor_order_id: str,
        unpaid_only: bool = False
    ) -> List[Order]:
        """根据渠道订单号获取订单"""
        query = select(OrderModel).where(OrderModel.processor_order_id == processor_order_id)
        if unpaid_only:
            query = query.where(OrderModel.is_paid.is_(False))
        query = query.order_by(OrderModel.created_at.asc(), OrderModel.id.asc())

        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_paid_by_buyer(
        self,
        buyer_id: str,
        skip: int = 0,
        limit: int = 100
    ) -> List[Order]:
        """获取买家已支付订单"""
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.buyer_id == buyer_id, OrderModel.is_paid.is_(True))
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def mark_paid_if_unpaid(
        self,
        order_id: str,
        payment_id: Optional[str],
        processor_order_id: Optional[str] = None
    ) -> bool:
        """比较并设置：仅在 is_paid = false 时生效"""
        now = datetime.now(timezone.utc)
        values = {"is_paid": True, "paid_at": now, "updated_at": now}
        if payment_id:
            values["payment_id"] = payment_id

        stmt = (
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.is_paid.is_(False))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if processor_order_id is not None:
            stmt = stmt.where(OrderModel.processor_order_id == processor_order_id)

        result = await self.session.execute(stmt)
        transitioned = result.rowcount == 1
        logger.debug(
            "order_mark_paid_attempt",
            order_id=order_id,
            transitioned=transitioned,
        )
        return transitioned

    async def delete_if_unpaid(
        self,
        order_id: str,
        processor_order_id: Optional[str] = None
    ) -> bool:
        """条件删除：已支付订单永不删除"""
        stmt = (
            delete(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.is_paid.is_(False))
            .execution_options(synchronize_session=False)
        )
        if processor_order_id is not None:
            stmt = stmt.where(OrderModel.processor_order_id == processor_order_id)

        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def mark_group_paid_if_unpaid(
        self,
        processor_order_id: str,
        payment_id: Optional[str] = None
    ) -> List[Order]:
        """批量条件更新：逐条比较并设置，只返回本次完成转换的订单"""
        candidates = await self.list_by_processor_order_id(processor_order_id, unpaid_only=True)
        confirmed: List[Order] = []
        for order in candidates:
            if await self.mark_paid_if_unpaid(order.id, payment_id, processor_order_id):
                order.mark_paid(payment_id)
                confirmed.append(order)
        return confirmed

    async def claim_cart_clear(self, processor_order_id: str) -> List[Order]:
        """
        为已支付且尚未清空购物车的订单写入 cart_cleared_at

        与购物车清空处于同一事务：清空失败则标记随之回滚，重投时会再次认领。
        并发认领时同一订单只有一个事务的 UPDATE 命中。
        """
        result = await self.session.execute(
            select(OrderModel).where(
                OrderModel.processor_order_id == processor_order_id,
                OrderModel.is_paid.is_(True),
                OrderModel.cart_cleared_at.is_(None),
            )
        )
        candidates = [self._to_entity(m) for m in result.scalars().all()]

        now = datetime.now(timezone.utc)
        claimed: List[Order] = []
        for order in candidates:
            stmt = (
                update(OrderModel)
                .where(
                    OrderModel.id == order.id,
                    OrderModel.is_paid.is_(True),
                    OrderModel.cart_cleared_at.is_(None),
                )
                .values(cart_cleared_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if (await self.session.execute(stmt)).rowcount == 1:
                order.cart_cleared_at = now
                claimed.append(order)
        return claimed
