"""
Cart clearing service.

Only the reconciliation service calls this, and only for checkout groups
with paid Orders. The clear is recorded on the Orders themselves
(``cart_cleared_at``) in the same transaction as the cart update, so a
failed clear is retried by the next delivery and a successful one is
never repeated.
"""
from __future__ import annotations

from typing import Callable, Optional

from domain.common.unit_of_work import AbstractUnitOfWork
from core.logging_config import get_logger


logger = get_logger(__name__)


class CartClearingService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]) -> None:
        self._uow_factory = uow_factory

    async def clear(self, buyer_id: str) -> bool:
        """Empty the buyer's cart. Clearing an empty or missing cart is a no-op."""
        async with self._uow_factory() as uow:
            return await self._clear_in(uow, buyer_id)

    async def clear_for_group(self, processor_order_id: str, buyer_id: Optional[str] = None) -> list[str]:
        """Clear the owning cart for paid Orders not yet covered by a clear.

        Returns the buyers whose carts were cleared; empty when every paid
        Order of the group was already handled.
        """
        async with self._uow_factory() as uow:
            claimed = await uow.order_repository.claim_cart_clear(processor_order_id)
            if not claimed:
                return []

            buyers = [buyer_id] if buyer_id else list(dict.fromkeys(o.buyer_id for o in claimed))
            if len(buyers) > 1:
                logger.warning(
                    "checkout_group_multiple_buyers",
                    processor_order_id=processor_order_id,
                    buyer_ids=buyers,
                )
            for buyer in buyers:
                await self._clear_in(uow, buyer)
        return buyers

    async def resolve_buyer_for_order(self, order_id: str) -> Optional[str]:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
        return order.buyer_id if order else None

    @staticmethod
    async def _clear_in(uow: AbstractUnitOfWork, buyer_id: str) -> bool:
        cleared = await uow.cart_repository.clear(buyer_id)
        logger.info("buyer_cart_cleared" if cleared else "buyer_cart_already_empty", buyer_id=buyer_id)
        return cleared
