import asyncio

import pytest

from application.dtos.payments import ClientPaymentConfirmation, OrderOutcome, WebhookEventKind
from domain.common.exceptions import ReconciliationIncompleteException


def _confirmation(authenticator, pid="order_P1", payment_id="pay_X", order_ids=("o1", "o2"), signature=None):
    return ClientPaymentConfirmation.model_validate({
        "razorpay_order_id": pid,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": signature if signature is not None else authenticator.sign_client(pid, payment_id),
        "orderIds": list(order_ids),
    })


@pytest.mark.asyncio
async def test_client_then_webhook_worked_example(service, store, authenticator):
    store.add_group("order_P1", "b1", "o1", "o2")
    store.put_cart("b1", sku_1=2)

    result = await service.confirm_by_client(_confirmation(authenticator))

    assert result.verified
    assert result.ids_with(OrderOutcome.CONFIRMED) == ["o1", "o2"]
    assert result.buyer_id == "b1"
    assert result.cart_cleared
    assert all(store.orders[o].is_paid and store.orders[o].payment_id == "pay_X" for o in ("o1", "o2"))
    assert store.carts["b1"].is_empty()

    # Late webhook for the same payment changes nothing
    outcome = await service.handle_webhook_event(WebhookEventKind.CAPTURED, "order_P1", "pay_X")
    assert outcome.ids_with(OrderOutcome.CONFIRMED) == []
    assert outcome.cart_cleared_for == []
    assert store.cart_clears == ["b1"]


@pytest.mark.asyncio
async def test_repeated_client_confirmation_is_idempotent(service, store, authenticator):
    store.add_group("order_P1", "b1", "o1", "o2")
    store.put_cart("b1", sku_1=1)
    req = _confirmation(authenticator)

    await service.confirm_by_client(req)
    first_paid_at = store.orders["o1"].paid_at
    # Buyer starts a new cart before the browser retries
    store.put_cart("b1", sku_2=3)

    again = await service.confirm_by_client(req)

    assert again.verified
    assert again.ids_with(OrderOutcome.ALREADY_PAID) == ["o1", "o2"]
    assert not again.cart_cleared
    assert store.orders["o1"].paid_at == first_paid_at
    assert store.carts["b1"].items == {"sku_2": 3}


@pytest.mark.asyncio
async def test_forged_signature_removes_unpaid_and_keeps_paid(service, store, authenticator):
    store.add_group("order_P1", "b1", "o1", "o2")
    store.orders["o2"].mark_paid("pay_earlier")
    store.put_cart("b1", sku_1=1)

    result = await service.confirm_by_client(_confirmation(authenticator, signature="0" * 64))

    assert not result.verified
    assert result.ids_with(OrderOutcome.REMOVED) == ["o1"]
    assert result.ids_with(OrderOutcome.KEPT_PAID) == ["o2"]
    assert "o1" not in store.orders
    assert store.orders["o2"].payment_id == "pay_earlier"
    assert store.cart_clears == []


@pytest.mark.asyncio
async def test_forged_signature_never_touches_orders_of_another_group(service, store, authenticator):
    store.add_group("order_P1", "b1", "o1")
    store.add_group("order_P2", "b2", "o9")

    result = await service.confirm_by_client(
        _confirmation(authenticator, order_ids=("o1", "o9"), signature="bad")
    )

    assert result.ids_with(OrderOutcome.REMOVED) == ["o1"]
    assert result.ids_with(OrderOutcome.MISMATCH) == ["o9"]
    assert "o9" in store.orders


@pytest.mark.asyncio
async def test_signature_for_other_payment_is_rejected(service, store, authenticator):
    store.add_group("order_P1", "b1", "o1")
    sig = authenticator.sign_client("order_P1", "pay_OTHER")

    result = await service.confirm_by_client(_confirmation(authenticator, signature=sig, order_ids=("o1",)))

    assert not result.verified
    assert "o1" not in store.orders


@pytest.mark.asyncio
async def test_valid_signature_reports_mismatch_and_missing_orders(service, store, authenticator):
    store.add_group("order_P1", "b1", "o1")
    store.add_group("order_P2", "b1", "o9")

    result = await service.confirm_by_client(_confirmation(authenticator, order_ids=("o1", "o9", "ghost")))

    assert result.ids_with(OrderOutcome.CONFIRMED) == ["o1"]
    assert result.ids_with(OrderOutcome.MISMATCH) == ["o9"]
    assert result.ids_with(OrderOutcome.NOT_FOUND) == ["ghost"]
    assert not store.orders["o9"].is_paid


@pytest.mark.asyncio
async def test_authenticated_buyer_takes_precedence(service, store, authenticator):
    store.add_group("order_P1", "b1", "o1")
    store.put_cart("session_buyer", sku=1)

    result = await service.confirm_by_client(_confirmation(authenticator, order_ids=("o1",)), buyer_id="session_buyer")

    assert result.buyer_id == "session_buyer"
    assert store.cart_clears == ["session_buyer"]


@pytest.mark.asyncio
async def test_store_failure_is_collected_and_raised_after_fan_out(service, store, authenticator):
    store.add_group("order_P1", "b1", "o1", "o2")
    store.put_cart("b1", sku=1)
    store.fail_on.add("o2")

    with pytest.raises(ReconciliationIncompleteException) as exc_info:
        await service.confirm_by_client(_confirmation(authenticator))

    assert exc_info.value.details["failed_order_ids"] == ["o2"]
    assert store.orders["o1"].is_paid
    assert not store.orders["o2"].is_paid
    assert store.cart_clears == ["b1"]

    # Retry once the store recovers
    store.fail_on.clear()
    result = await service.confirm_by_client(_confirmation(authenticator))
    assert result.ids_with(OrderOutcome.CONFIRMED) == ["o2"]
    assert result.ids_with(OrderOutcome.ALREADY_PAID) == ["o1"]


@pytest.mark.asyncio
async def test_concurrent_client_and_webhook_converge(service, store, authenticator):
    store.add_group("order_P1", "b1", "o1", "o2", "o3")
    store.put_cart("b1", sku=1)

    client, webhook = await asyncio.gather(
        service.confirm_by_client(_confirmation(authenticator, order_ids=("o1", "o2", "o3"))),
        service.handle_webhook_event(WebhookEventKind.CAPTURED, "order_P1", "pay_X"),
    )

    confirmed = client.ids_with(OrderOutcome.CONFIRMED) + webhook.ids_with(OrderOutcome.CONFIRMED)
    assert sorted(confirmed) == ["o1", "o2", "o3"]
    assert all(o.is_paid and o.payment_id == "pay_X" for o in store.orders.values())
    assert store.carts["b1"].is_empty()


@pytest.mark.asyncio
async def test_duplicate_concurrent_client_calls_confirm_each_order_once(service, store, authenticator):
    store.add_group("order_P1", "b1", "o1", "o2")
    req = _confirmation(authenticator)

    results = await asyncio.gather(*(service.confirm_by_client(req) for _ in range(5)))

    confirmed = [oid for r in results for oid in r.ids_with(OrderOutcome.CONFIRMED)]
    assert sorted(confirmed) == ["o1", "o2"]
    paid_events = [e for e in service.events if type(e).__name__ == "OrderPaid"]
    assert len(paid_events) == 2


@pytest.mark.asyncio
async def test_client_retry_clears_cart_after_failed_clear(service, store, authenticator):
    store.add_group("order_P1", "b1", "o1", "o2")
    store.put_cart("b1", sku=1)
    store.cart_failures = 1
    req = _confirmation(authenticator)

    with pytest.raises(ConnectionError):
        await service.confirm_by_client(req)
    assert store.orders["o1"].is_paid and store.orders["o2"].is_paid
    assert not store.carts["b1"].is_empty()

    retried = await service.confirm_by_client(req)

    assert retried.ids_with(OrderOutcome.ALREADY_PAID) == ["o1", "o2"]
    assert retried.cart_cleared
    assert store.carts["b1"].is_empty()
    assert [type(e).__name__ for e in service.events].count("CartCleared") == 1


@pytest.mark.asyncio
async def test_signature_is_not_normalized_before_comparison(service, store, authenticator):
    store.add_group("order_P1", "b1", "o1")
    padded = " " + authenticator.sign_client("order_P1", "pay_X").upper()

    result = await service.confirm_by_client(_confirmation(authenticator, order_ids=("o1",), signature=padded))

    assert not result.verified
    assert "o1" not in store.orders
