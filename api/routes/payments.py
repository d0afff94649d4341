"""
Payments API routes.

Exposes checkout creation, the client confirmation callback and the
processor webhook. Keep this thin: verification and reconciliation live in
the application services.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request

from application.dtos.payments import (
    CheckoutRequest,
    CheckoutResult,
    ClientPaymentConfirmation,
    OrderOutcome,
    WebhookAck,
)
from application.services.checkout_service import CheckoutService
from application.services.reconciliation_service import PaymentReconciliationService
from application.services.webhook_router import WebhookEventRouter
from api.dependencies import (
    get_checkout_service,
    get_current_buyer_id,
    get_optional_buyer_id,
    get_reconciliation_service,
    get_webhook_router,
)
from core.response import Response as ApiResponse, success_response
from domain.common.exceptions import PaymentVerificationFailedException


router = APIRouter(prefix="/payments/razorpay", tags=["Payments"])


@router.post("/create-order", summary="Open checkout", response_model=ApiResponse[CheckoutResult])
async def create_order(
    payload: CheckoutRequest,
    buyer_id: str = Depends(get_current_buyer_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    """Create one processor order and one local Order per store draft."""
    result = await service.open_checkout(buyer_id, payload.orders)
    return success_response(data=result, message="Checkout opened")


@router.post("/verify", summary="Confirm payment from the client")
async def verify_payment(
    payload: ClientPaymentConfirmation,
    buyer_id: Optional[str] = Depends(get_optional_buyer_id),
    service: PaymentReconciliationService = Depends(get_reconciliation_service),
):
    """
    Buyer's browser reports a completed payment.

    A forged signature removes the still-unpaid Orders it references and
    answers 400; an authentic one marks the Orders paid and clears the cart.
    """
    result = await service.confirm_by_client(payload, buyer_id=buyer_id)
    if not result.verified:
        raise PaymentVerificationFailedException(removed_order_ids=result.ids_with(OrderOutcome.REMOVED))

    return success_response(
        data={
            "verified": True,
            "processor_order_id": result.processor_order_id,
            "order_ids": result.order_ids,
            "confirmed": result.ids_with(OrderOutcome.CONFIRMED),
            "already_paid": result.ids_with(OrderOutcome.ALREADY_PAID),
            "mismatched": result.ids_with(OrderOutcome.MISMATCH),
            "not_found": result.ids_with(OrderOutcome.NOT_FOUND),
            "cart_cleared": result.cart_cleared,
        },
        message="Payment verified successfully",
    )


@router.post("/webhook", summary="Processor webhook", response_model=ApiResponse[WebhookAck])
async def payments_webhook(
    request: Request,
    router_: WebhookEventRouter = Depends(get_webhook_router),
):
    # Signature covers the exact bytes received, so read before any parsing
    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    ack = await router_.dispatch(headers, raw_body)
    return success_response(data=ack, message="Webhook received")
