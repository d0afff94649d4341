"""
Payment reconciliation service.

Converges Orders to PAID or REMOVED from two unordered confirmation channels:
the buyer's browser (client channel) and processor webhooks. Every transition
is a per-Order conditional write in its own unit of work, so any interleaving
or duplication of calls settles on the same final state:

- ``is_paid`` only ever moves false -> true, and only the call that performed
  the move sees ``CONFIRMED``;
- deletions only match unpaid Orders, so a late failure signal can never undo
  a captured payment;
- a paid Order clears its buyer's cart once; the clear and its marker commit
  together, so a failed clear is repeated by the next delivery.

Per-Order failures are collected, logged and raised after the whole fan-out
as ``ReconciliationIncompleteException`` so the caller retries.
"""
from __future__ import annotations

import asyncio
from dataclasses import asdict
from typing import Awaitable, Callable, Optional, Union

from application.dtos.payments import (
    ClientConfirmationResult,
    ClientPaymentConfirmation,
    OrderOutcome,
    OrderOutcomeDTO,
    WebhookEventKind,
    WebhookOutcome,
)
from application.ports.payment_gateway import PaymentGateway
from application.services.cart_service import CartClearingService
from domain.common.exceptions import ReconciliationIncompleteException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order
from domain.order.events import CartCleared, OrderPaid, OrderRemoved
from core.logging_config import get_logger


logger = get_logger(__name__)

AuditEvent = Union[OrderPaid, OrderRemoved, CartCleared]

CLIENT_CHANNEL = "client"
WEBHOOK_CHANNEL = "webhook"


class PaymentReconciliationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        carts: Optional[CartClearingService] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._carts = carts or CartClearingService(uow_factory)
        self.events: list[AuditEvent] = []

        self._webhook_handlers: dict[
            WebhookEventKind,
            Callable[[str, Optional[str]], Awaitable[WebhookOutcome]],
        ] = {
            WebhookEventKind.CAPTURED: self._on_captured,
            WebhookEventKind.FAILED: self._on_failed,
            WebhookEventKind.SETTLED: self._on_settled,
        }

    # ------------------------------------------------------------------
    # Client channel
    # ------------------------------------------------------------------
    async def confirm_by_client(
        self,
        req: ClientPaymentConfirmation,
        *,
        buyer_id: Optional[str] = None,
    ) -> ClientConfirmationResult:
        pid = req.processor_order_id
        verified = self._gateway.verify_client_signature(pid, req.payment_id, req.signature)
        logger.info(
            "client_confirmation_received",
            processor_order_id=pid,
            order_ids=req.order_ids,
            verified=verified,
        )

        if not verified:
            outcomes = await self._fan_out(
                req.order_ids,
                lambda oid: self._remove_unpaid(oid, pid, CLIENT_CHANNEL, reason="client_signature_invalid"),
            )
            self._raise_if_incomplete(outcomes, pid)
            return ClientConfirmationResult(
                verified=False,
                processor_order_id=pid,
                order_ids=req.order_ids,
                outcomes=outcomes,
                buyer_id=buyer_id,
            )

        outcomes = await self._fan_out(
            req.order_ids,
            lambda oid: self._confirm_one(oid, req.payment_id, pid, CLIENT_CHANNEL),
        )

        newly = [o.order_id for o in outcomes if o.outcome == OrderOutcome.CONFIRMED]
        paid = newly + [o.order_id for o in outcomes if o.outcome == OrderOutcome.ALREADY_PAID]
        buyer = buyer_id
        if buyer is None and paid:
            buyer = await self._carts.resolve_buyer_for_order(paid[0])
        cart_cleared = bool(paid) and bool(await self._clear_group_cart(pid, buyer))
        if not newly:
            logger.info("client_confirmation_nothing_new", processor_order_id=pid, order_ids=req.order_ids)

        self._raise_if_incomplete(outcomes, pid)
        return ClientConfirmationResult(
            verified=True,
            processor_order_id=pid,
            order_ids=req.order_ids,
            outcomes=outcomes,
            buyer_id=buyer,
            cart_cleared=cart_cleared,
        )

    # ------------------------------------------------------------------
    # Webhook channel
    # ------------------------------------------------------------------
    async def handle_webhook_event(
        self,
        kind: WebhookEventKind,
        processor_order_id: str,
        payment_id: Optional[str] = None,
    ) -> WebhookOutcome:
        handler = self._webhook_handlers.get(kind)
        if handler is None:
            logger.info("webhook_event_ignored", kind=kind.value, processor_order_id=processor_order_id)
            return WebhookOutcome(kind=kind, processor_order_id=processor_order_id)
        return await handler(processor_order_id, payment_id)

    async def _on_captured(self, pid: str, payment_id: Optional[str]) -> WebhookOutcome:
        orders = await self._load_group(pid)
        if not orders:
            logger.warning("webhook_group_not_found", kind="captured", processor_order_id=pid)
            return WebhookOutcome(kind=WebhookEventKind.CAPTURED, processor_order_id=pid)

        outcomes = await self._fan_out(
            [o.id for o in orders],
            lambda oid: self._confirm_one(oid, payment_id, pid, WEBHOOK_CHANNEL),
        )
        newly = [o.order_id for o in outcomes if o.outcome == OrderOutcome.CONFIRMED]
        cleared_for = await self._clear_group_cart(pid)
        if not newly:
            logger.info("webhook_captured_duplicate", processor_order_id=pid)

        self._raise_if_incomplete(outcomes, pid)
        return WebhookOutcome(
            kind=WebhookEventKind.CAPTURED,
            processor_order_id=pid,
            outcomes=outcomes,
            cart_cleared_for=cleared_for,
        )

    async def _on_failed(self, pid: str, payment_id: Optional[str]) -> WebhookOutcome:
        orders = await self._load_group(pid)
        paid = [o for o in orders if o.is_paid]
        unpaid = [o for o in orders if not o.is_paid]
        for order in paid:
            # Captured state is sticky: a failure notice never undoes it
            logger.info(
                "webhook_failed_conflict_ignored",
                order_id=order.id,
                processor_order_id=pid,
            )

        outcomes = [OrderOutcomeDTO(order_id=o.id, outcome=OrderOutcome.KEPT_PAID) for o in paid]
        outcomes += await self._fan_out(
            [o.id for o in unpaid],
            lambda oid: self._remove_unpaid(oid, pid, WEBHOOK_CHANNEL, reason="payment_failed"),
        )
        self._raise_if_incomplete(outcomes, pid)
        return WebhookOutcome(kind=WebhookEventKind.FAILED, processor_order_id=pid, outcomes=outcomes)

    async def _on_settled(self, pid: str, payment_id: Optional[str]) -> WebhookOutcome:
        # Backstop for a missed capture notice; one transaction for the group
        async with self._uow_factory() as uow:
            newly = await uow.order_repository.mark_group_paid_if_unpaid(pid, payment_id)

        outcomes = []
        for order in newly:
            self._record_paid(order.id, pid, payment_id, WEBHOOK_CHANNEL)
            outcomes.append(OrderOutcomeDTO(order_id=order.id, outcome=OrderOutcome.CONFIRMED))
        if newly:
            logger.warning(
                "webhook_settled_recovered_orders",
                processor_order_id=pid,
                order_ids=[o.id for o in newly],
            )
        cleared_for = await self._clear_group_cart(pid)
        return WebhookOutcome(
            kind=WebhookEventKind.SETTLED,
            processor_order_id=pid,
            outcomes=outcomes,
            cart_cleared_for=cleared_for,
        )

    # ------------------------------------------------------------------
    # Per-Order operations
    # ------------------------------------------------------------------
    async def _confirm_one(
        self,
        order_id: str,
        payment_id: Optional[str],
        pid: str,
        channel: str,
    ) -> OrderOutcomeDTO:
        async with self._uow_factory() as uow:
            repo = uow.order_repository
            if await repo.mark_paid_if_unpaid(order_id, payment_id, processor_order_id=pid):
                outcome = OrderOutcome.CONFIRMED
            else:
                outcome = self._classify(await repo.get_by_id(order_id), pid, paid=OrderOutcome.ALREADY_PAID)

        if outcome == OrderOutcome.CONFIRMED:
            self._record_paid(order_id, pid, payment_id, channel)
        logger.info(
            "order_reconciled",
            order_id=order_id,
            processor_order_id=pid,
            channel=channel,
            outcome=outcome.value,
        )
        return OrderOutcomeDTO(order_id=order_id, outcome=outcome)

    async def _remove_unpaid(self, order_id: str, pid: str, channel: str, *, reason: str) -> OrderOutcomeDTO:
        async with self._uow_factory() as uow:
            repo = uow.order_repository
            if await repo.delete_if_unpaid(order_id, processor_order_id=pid):
                outcome = OrderOutcome.REMOVED
            else:
                outcome = self._classify(await repo.get_by_id(order_id), pid, paid=OrderOutcome.KEPT_PAID)

        if outcome == OrderOutcome.REMOVED:
            self._record(OrderRemoved(order_id=order_id, processor_order_id=pid, channel=channel, reason=reason))
        logger.info(
            "order_reconciled",
            order_id=order_id,
            processor_order_id=pid,
            channel=channel,
            outcome=outcome.value,
            reason=reason,
        )
        return OrderOutcomeDTO(order_id=order_id, outcome=outcome)

    @staticmethod
    def _classify(order: Optional[Order], pid: str, *, paid: OrderOutcome) -> OrderOutcome:
        """Explain why a conditional write matched no row."""
        if order is None:
            return OrderOutcome.NOT_FOUND
        if not order.belongs_to(pid):
            return OrderOutcome.MISMATCH
        if order.is_paid:
            return paid
        # Row is unpaid and matching yet the write missed: it changed concurrently
        return OrderOutcome.NOT_FOUND

    async def _fan_out(
        self,
        order_ids: list[str],
        op: Callable[[str], Awaitable[OrderOutcomeDTO]],
    ) -> list[OrderOutcomeDTO]:
        results = await asyncio.gather(*(op(oid) for oid in order_ids), return_exceptions=True)
        outcomes: list[OrderOutcomeDTO] = []
        for order_id, res in zip(order_ids, results):
            if isinstance(res, Exception):
                logger.error(
                    "order_reconciliation_failed",
                    order_id=order_id,
                    error=str(res),
                    error_type=type(res).__name__,
                    exc_info=res,
                )
                outcomes.append(
                    OrderOutcomeDTO(order_id=order_id, outcome=OrderOutcome.FAILED, error=type(res).__name__)
                )
            elif isinstance(res, BaseException):
                raise res
            else:
                outcomes.append(res)
        return outcomes

    @staticmethod
    def _raise_if_incomplete(outcomes: list[OrderOutcomeDTO], pid: str) -> None:
        failed = [o.order_id for o in outcomes if o.outcome == OrderOutcome.FAILED]
        if failed:
            raise ReconciliationIncompleteException(
                failed_order_ids=failed,
                details={
                    "processor_order_id": pid,
                    "outcomes": [o.model_dump(mode="json") for o in outcomes],
                },
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _load_group(self, pid: str) -> list[Order]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.order_repository.list_by_processor_order_id(pid)

    async def _clear_group_cart(self, pid: str, buyer_id: Optional[str] = None) -> list[str]:
        cleared = await self._carts.clear_for_group(pid, buyer_id)
        for buyer in cleared:
            self._record(CartCleared(buyer_id=buyer, processor_order_id=pid))
        return cleared

    def _record_paid(self, order_id: str, pid: str, payment_id: Optional[str], channel: str) -> None:
        self._record(OrderPaid(order_id=order_id, processor_order_id=pid, channel=channel, payment_id=payment_id))

    def _record(self, event: AuditEvent) -> None:
        self.events.append(event)
        logger.info("audit_event_recorded", event_type=type(event).__name__, **asdict(event))
