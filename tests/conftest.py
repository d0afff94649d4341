"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings, and provide
in-memory doubles for the unit of work and the payment gateway.
"""
import asyncio
import dataclasses
import os
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

# Mandatory secrets for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RAZORPAY__KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY__KEY_SECRET", "test-client-secret")
os.environ.setdefault("RAZORPAY__WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DEBUG", "false")

import pytest

from application.dtos.payments import ProcessorOrder
from application.services.cart_service import CartClearingService
from application.services.reconciliation_service import PaymentReconciliationService
from domain.cart.entity import BuyerCart
from domain.cart.repository import CartRepository
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import CheckoutGroup, Order
from domain.order.repository import OrderRepository
from infrastructure.external.payments.exceptions import PaymentSignatureError
from infrastructure.external.payments.signature import SignatureAuthenticator


CLIENT_SECRET = os.environ["RAZORPAY__KEY_SECRET"]
WEBHOOK_SECRET = os.environ["RAZORPAY__WEBHOOK_SECRET"]


class StoreUnavailable(ConnectionError):
    pass


class InMemoryStore:
    """Shared state behind every fake unit of work of one test."""

    def __init__(self) -> None:
        self.orders: dict[str, Order] = {}
        self.carts: dict[str, BuyerCart] = {}
        self.fail_on: set[str] = set()
        self.cart_clears: list[str] = []
        self.cart_failures = 0

    def add_group(self, processor_order_id: str, buyer_id: str, *order_ids: str, total: str = "100.00") -> list[Order]:
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        orders = [
            Order(
                id=oid,
                processor_order_id=processor_order_id,
                buyer_id=buyer_id,
                store_id=f"store_{oid}",
                total=Decimal(total),
                subtotal=Decimal(total),
                created_at=created,
            )
            for oid in order_ids
        ]
        for o in orders:
            self.orders[o.id] = o
        return orders

    def settle(self, order_id: str, payment_id: str) -> None:
        """Paid with the cart already cleared, as after a completed delivery."""
        order = self.orders[order_id]
        order.mark_paid(payment_id)
        order.cart_cleared_at = order.paid_at

    def put_cart(self, buyer_id: str, **items: int) -> None:
        self.carts[buyer_id] = BuyerCart(buyer_id=buyer_id, items=dict(items))


class FakeOrderRepository(OrderRepository):
    def __init__(self, store: InMemoryStore, undo: Optional[list] = None) -> None:
        self.store = store
        self.undo = undo if undo is not None else []

    def _check(self, order_id: str) -> None:
        if order_id in self.store.fail_on:
            raise StoreUnavailable(f"store unavailable for {order_id}")

    async def create_group(self, group: CheckoutGroup) -> list[Order]:
        group.validate()
        for o in group.orders:
            self.store.orders[o.id] = dataclasses.replace(o)
        return list(group.orders)

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        self._check(order_id)
        order = self.store.orders.get(order_id)
        return dataclasses.replace(order) if order else None

    async def list_by_processor_order_id(self, processor_order_id: str, unpaid_only: bool = False) -> list[Order]:
        return [
            dataclasses.replace(o)
            for o in self.store.orders.values()
            if o.processor_order_id == processor_order_id and not (unpaid_only and o.is_paid)
        ]

    async def list_paid_by_buyer(self, buyer_id: str, skip: int = 0, limit: int = 100) -> list[Order]:
        paid = [o for o in self.store.orders.values() if o.buyer_id == buyer_id and o.is_paid]
        return [dataclasses.replace(o) for o in paid][skip:skip + limit]

    async def mark_paid_if_unpaid(self, order_id, payment_id, processor_order_id=None) -> bool:
        # Yield first so concurrent callers interleave before the write
        await asyncio.sleep(0)
        self._check(order_id)
        order = self.store.orders.get(order_id)
        if order is None or order.is_paid:
            return False
        if processor_order_id is not None and order.processor_order_id != processor_order_id:
            return False
        return order.mark_paid(payment_id)

    async def delete_if_unpaid(self, order_id, processor_order_id=None) -> bool:
        await asyncio.sleep(0)
        self._check(order_id)
        order = self.store.orders.get(order_id)
        if order is None or order.is_paid:
            return False
        if processor_order_id is not None and order.processor_order_id != processor_order_id:
            return False
        del self.store.orders[order_id]
        return True

    async def mark_group_paid_if_unpaid(self, processor_order_id, payment_id=None) -> list[Order]:
        confirmed = []
        for order in await self.list_by_processor_order_id(processor_order_id, unpaid_only=True):
            if await self.mark_paid_if_unpaid(order.id, payment_id, processor_order_id):
                confirmed.append(dataclasses.replace(self.store.orders[order.id]))
        return confirmed

    async def claim_cart_clear(self, processor_order_id) -> list[Order]:
        await asyncio.sleep(0)
        now = datetime.now(timezone.utc)
        claimed = []
        for order in self.store.orders.values():
            if order.processor_order_id == processor_order_id and order.is_paid and order.cart_cleared_at is None:
                order.cart_cleared_at = now
                self.undo.append(lambda o=order: setattr(o, "cart_cleared_at", None))
                claimed.append(dataclasses.replace(order))
        return claimed


class FakeCartRepository(CartRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def get(self, buyer_id: str) -> Optional[BuyerCart]:
        return self.store.carts.get(buyer_id)

    async def save(self, cart: BuyerCart) -> BuyerCart:
        self.store.carts[cart.buyer_id] = cart
        return cart

    async def clear(self, buyer_id: str) -> bool:
        if self.store.cart_failures:
            self.store.cart_failures -= 1
            raise StoreUnavailable(f"cart store unavailable for {buyer_id}")
        self.store.cart_clears.append(buyer_id)
        cart = self.store.carts.get(buyer_id)
        return bool(cart and cart.clear())


class FakeUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: InMemoryStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        # Only the cart-clear marker is undone on rollback
        self._undo: list = []
        self.order_repository = FakeOrderRepository(store, self._undo)
        self.cart_repository = FakeCartRepository(store)

    async def commit(self) -> None:
        self._undo.clear()
        self._committed = True

    async def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()
        self._committed = False


class FakeGateway:
    """Gateway double using the real HMAC checks with the test secrets."""

    provider = "razorpay"
    signature_header = "X-Razorpay-Signature"

    def __init__(self) -> None:
        self.authenticator = SignatureAuthenticator(client_secret=CLIENT_SECRET, webhook_secret=WEBHOOK_SECRET)
        self.created: list[dict] = []
        self.next_order_id = "order_P1"

    async def create_order(self, *, amount: int, receipt: str, notes=None) -> ProcessorOrder:
        self.created.append({"amount": amount, "receipt": receipt, "notes": notes})
        return ProcessorOrder(id=self.next_order_id, amount=amount, currency="INR", receipt=receipt, status="created")

    def verify_client_signature(self, processor_order_id, payment_id, signature) -> bool:
        return self.authenticator.verify_client(processor_order_id, payment_id, signature)

    def verify_webhook(self, headers, body) -> None:
        signature = next((v for k, v in headers.items() if k.lower() == "x-razorpay-signature"), None)
        if not self.authenticator.verify_webhook(body, signature):
            raise PaymentSignatureError(provider=self.provider)

    async def aclose(self) -> None:
        return None


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    def _factory(*, readonly: bool = False) -> FakeUnitOfWork:
        return FakeUnitOfWork(store, readonly=readonly)
    return _factory


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def authenticator(gateway) -> SignatureAuthenticator:
    return gateway.authenticator


@pytest.fixture
def service(uow_factory, gateway) -> PaymentReconciliationService:
    return PaymentReconciliationService(
        uow_factory=uow_factory,
        gateway=gateway,
        carts=CartClearingService(uow_factory),
    )
