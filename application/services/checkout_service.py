"""
Checkout group creation.

Opens one processor order for the whole cart submission and persists one
local Order per store, all sharing the processor order id.
"""
from __future__ import annotations

import uuid
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable

from application.dtos.payments import CheckoutResult, OrderDraft
from application.ports.payment_gateway import PaymentGateway
from domain.common.exceptions import CheckoutGroupInvalidException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import CheckoutGroup, Order
from core.logging_config import get_logger


logger = get_logger(__name__)

RECEIPT_MAX_LENGTH = 40


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_receipt(order_ids: list[str], max_length: int = RECEIPT_MAX_LENGTH) -> str:
    return "_".join(order_ids)[:max_length]


class CheckoutService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        *,
        receipt_max_length: int = RECEIPT_MAX_LENGTH,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._receipt_max_length = receipt_max_length

    async def open_checkout(self, buyer_id: str, drafts: list[OrderDraft]) -> CheckoutResult:
        if not buyer_id:
            raise CheckoutGroupInvalidException("Checkout requires a buyer")
        if not drafts:
            raise CheckoutGroupInvalidException("Checkout group must contain at least one order")

        order_ids = [d.order_id or uuid.uuid4().hex for d in drafts]
        # A processor order is payable as soon as it exists, so local ids are checked first
        await self._ensure_ids_available(order_ids)
        grand_total = sum((Decimal(d.total) for d in drafts), Decimal("0"))
        amount = to_minor_units(grand_total)

        processor_order = await self._gateway.create_order(
            amount=amount,
            receipt=build_receipt(order_ids, self._receipt_max_length),
            notes={"orderIds": ",".join(order_ids), "buyer_id": buyer_id},
        )

        group = CheckoutGroup(
            processor_order_id=processor_order.id,
            buyer_id=buyer_id,
            orders=[
                Order(
                    id=oid,
                    processor_order_id=processor_order.id,
                    buyer_id=buyer_id,
                    store_id=draft.store_id,
                    total=Decimal(draft.total),
                    subtotal=Decimal(draft.subtotal),
                    gst_amount=Decimal(draft.gst_amount),
                    shipping_charge=Decimal(draft.shipping_charge),
                )
                for oid, draft in zip(order_ids, drafts)
            ],
        )
        async with self._uow_factory() as uow:
            await uow.order_repository.create_group(group)

        logger.info(
            "checkout_opened",
            buyer_id=buyer_id,
            processor_order_id=processor_order.id,
            order_ids=order_ids,
            amount=amount,
        )
        return CheckoutResult(
            processor_order_id=processor_order.id,
            amount=processor_order.amount,
            currency=processor_order.currency,
            order_ids=order_ids,
            grand_total=grand_total,
        )

    async def _ensure_ids_available(self, order_ids: list[str]) -> None:
        duplicates = sorted({oid for oid in order_ids if order_ids.count(oid) > 1})
        if duplicates:
            raise CheckoutGroupInvalidException(
                "Duplicate order ids in checkout group",
                details={"order_ids": duplicates},
            )
        async with self._uow_factory(readonly=True) as uow:
            taken = [oid for oid in order_ids if await uow.order_repository.get_by_id(oid) is not None]
        if taken:
            raise CheckoutGroupInvalidException("Order id already exists", details={"order_ids": taken})
