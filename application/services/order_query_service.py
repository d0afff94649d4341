"""
订单查询服务（只读）
"""
from typing import Callable, List

from application.dtos.payments import OrderResponseDTO
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order


def to_order_dto(order: Order) -> OrderResponseDTO:
    return OrderResponseDTO(
        id=order.id,
        processor_order_id=order.processor_order_id,
        store_id=order.store_id,
        total=order.total,
        subtotal=order.subtotal,
        gst_amount=order.gst_amount,
        shipping_charge=order.shipping_charge,
        status=order.status.value,
        is_paid=order.is_paid,
        payment_id=order.payment_id,
        created_at=order.created_at,
        paid_at=order.paid_at,
    )


class OrderQueryService:
    """买家订单查询"""

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def list_paid_orders(self, buyer_id: str, skip: int = 0, limit: int = 100) -> List[OrderResponseDTO]:
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.order_repository.list_paid_by_buyer(buyer_id, skip=skip, limit=limit)
        return [to_order_dto(o) for o in orders]
