from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from application.services.cart_service import CartClearingService
from domain.cart.entity import BuyerCart
from domain.common.exceptions import CheckoutGroupInvalidException
from domain.order.entity import CheckoutGroup, Order
from infrastructure.models import Base
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@pytest.fixture
async def sqlite_uow_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    def _factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=readonly)

    yield _factory
    await engine.dispose()


def _group(pid="order_P1", buyer="b1", ids=("o1", "o2")) -> CheckoutGroup:
    return CheckoutGroup(
        processor_order_id=pid,
        buyer_id=buyer,
        orders=[
            Order(id=oid, processor_order_id=pid, buyer_id=buyer, store_id=f"s_{oid}",
                  total=Decimal("99.99"), subtotal=Decimal("84.74"), gst_amount=Decimal("15.25"))
            for oid in ids
        ],
    )


@pytest.mark.asyncio
async def test_create_group_and_load_by_processor_order_id(sqlite_uow_factory):
    async with sqlite_uow_factory() as uow:
        await uow.order_repository.create_group(_group())

    async with sqlite_uow_factory(readonly=True) as uow:
        orders = await uow.order_repository.list_by_processor_order_id("order_P1")
        missing = await uow.order_repository.list_by_processor_order_id("order_NONE")

    assert sorted(o.id for o in orders) == ["o1", "o2"]
    assert orders[0].total == Decimal("99.99")
    assert not any(o.is_paid for o in orders)
    assert missing == []


@pytest.mark.asyncio
async def test_duplicate_order_id_is_rejected(sqlite_uow_factory):
    async with sqlite_uow_factory() as uow:
        await uow.order_repository.create_group(_group())

    with pytest.raises(CheckoutGroupInvalidException):
        async with sqlite_uow_factory() as uow:
            await uow.order_repository.create_group(_group(pid="order_P2", ids=("o1",)))


@pytest.mark.asyncio
async def test_mark_paid_is_compare_and_set(sqlite_uow_factory):
    async with sqlite_uow_factory() as uow:
        await uow.order_repository.create_group(_group())

    async with sqlite_uow_factory() as uow:
        assert await uow.order_repository.mark_paid_if_unpaid("o1", "pay_X", processor_order_id="order_P1")
    async with sqlite_uow_factory() as uow:
        assert not await uow.order_repository.mark_paid_if_unpaid("o1", "pay_Y", processor_order_id="order_P1")
        # Wrong group never matches
        assert not await uow.order_repository.mark_paid_if_unpaid("o2", "pay_X", processor_order_id="order_P9")
        assert not await uow.order_repository.mark_paid_if_unpaid("ghost", "pay_X")

    async with sqlite_uow_factory(readonly=True) as uow:
        o1 = await uow.order_repository.get_by_id("o1")
        o2 = await uow.order_repository.get_by_id("o2")

    assert o1.is_paid and o1.payment_id == "pay_X" and o1.paid_at is not None
    assert not o2.is_paid


@pytest.mark.asyncio
async def test_delete_only_matches_unpaid_orders(sqlite_uow_factory):
    async with sqlite_uow_factory() as uow:
        await uow.order_repository.create_group(_group())
        await uow.order_repository.mark_paid_if_unpaid("o1", "pay_X")

    async with sqlite_uow_factory() as uow:
        assert not await uow.order_repository.delete_if_unpaid("o1")
        assert not await uow.order_repository.delete_if_unpaid("o2", processor_order_id="order_P9")
        assert await uow.order_repository.delete_if_unpaid("o2", processor_order_id="order_P1")

    async with sqlite_uow_factory(readonly=True) as uow:
        assert await uow.order_repository.get_by_id("o1") is not None
        assert await uow.order_repository.get_by_id("o2") is None


@pytest.mark.asyncio
async def test_group_update_returns_only_new_transitions(sqlite_uow_factory):
    async with sqlite_uow_factory() as uow:
        await uow.order_repository.create_group(_group(ids=("o1", "o2", "o3")))
        await uow.order_repository.mark_paid_if_unpaid("o2", "pay_X")

    async with sqlite_uow_factory() as uow:
        newly = await uow.order_repository.mark_group_paid_if_unpaid("order_P1", "pay_X")
    async with sqlite_uow_factory() as uow:
        again = await uow.order_repository.mark_group_paid_if_unpaid("order_P1", "pay_X")

    assert sorted(o.id for o in newly) == ["o1", "o3"]
    assert again == []


@pytest.mark.asyncio
async def test_rollback_discards_writes(sqlite_uow_factory):
    async with sqlite_uow_factory() as uow:
        await uow.order_repository.create_group(_group())

    with pytest.raises(RuntimeError):
        async with sqlite_uow_factory() as uow:
            await uow.order_repository.mark_paid_if_unpaid("o1", "pay_X")
            raise RuntimeError("boom")

    async with sqlite_uow_factory(readonly=True) as uow:
        assert not (await uow.order_repository.get_by_id("o1")).is_paid


@pytest.mark.asyncio
async def test_paid_orders_listed_for_buyer(sqlite_uow_factory):
    async with sqlite_uow_factory() as uow:
        await uow.order_repository.create_group(_group())
        await uow.order_repository.create_group(_group(pid="order_P2", buyer="b2", ids=("o3",)))
        await uow.order_repository.mark_paid_if_unpaid("o1", "pay_X")
        await uow.order_repository.mark_paid_if_unpaid("o3", "pay_Z")

    async with sqlite_uow_factory(readonly=True) as uow:
        paid = await uow.order_repository.list_paid_by_buyer("b1")

    assert [o.id for o in paid] == ["o1"]


@pytest.mark.asyncio
async def test_cart_clear_is_idempotent(sqlite_uow_factory):
    async with sqlite_uow_factory() as uow:
        await uow.cart_repository.save(BuyerCart(buyer_id="b1", items={"sku_1": 2}))

    carts = CartClearingService(sqlite_uow_factory)
    assert await carts.clear("b1") is True
    assert await carts.clear("b1") is False
    assert await carts.clear("nobody") is False

    async with sqlite_uow_factory(readonly=True) as uow:
        cart = await uow.cart_repository.get("b1")
    assert cart.is_empty()


@pytest.mark.asyncio
async def test_cart_clear_claim_covers_each_paid_order_once(sqlite_uow_factory):
    async with sqlite_uow_factory() as uow:
        await uow.order_repository.create_group(_group(ids=("o1", "o2")))
        await uow.order_repository.mark_paid_if_unpaid("o1", "pay_X")

    async with sqlite_uow_factory() as uow:
        claimed = await uow.order_repository.claim_cart_clear("order_P1")
    assert [o.id for o in claimed] == ["o1"]
    assert claimed[0].cart_cleared_at is not None

    async with sqlite_uow_factory() as uow:
        assert await uow.order_repository.claim_cart_clear("order_P1") == []
        await uow.order_repository.mark_paid_if_unpaid("o2", "pay_X")
        assert [o.id for o in await uow.order_repository.claim_cart_clear("order_P1")] == ["o2"]


@pytest.mark.asyncio
async def test_failed_cart_clear_releases_the_claim(sqlite_uow_factory):
    async with sqlite_uow_factory() as uow:
        await uow.order_repository.create_group(_group(ids=("o1",)))
        await uow.order_repository.mark_paid_if_unpaid("o1", "pay_X")
        await uow.cart_repository.save(BuyerCart(buyer_id="b1", items={"sku": 2}))

    with pytest.raises(RuntimeError):
        async with sqlite_uow_factory() as uow:
            assert await uow.order_repository.claim_cart_clear("order_P1")
            await uow.cart_repository.clear("b1")
            raise RuntimeError("cart write lost")

    carts = CartClearingService(sqlite_uow_factory)
    assert await carts.clear_for_group("order_P1") == ["b1"]
    assert await carts.clear_for_group("order_P1") == []

    async with sqlite_uow_factory(readonly=True) as uow:
        cart = await uow.cart_repository.get("b1")
        order = await uow.order_repository.get_by_id("o1")
    assert cart.is_empty()
    assert order.cart_cleared_at is not None
