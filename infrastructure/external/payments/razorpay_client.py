"""
Razorpay adapter: Orders API over httpx plus both signature contracts.

Orders are created with basic auth (key_id:key_secret) against
`POST /v1/orders`; amounts are in minor units (paise).
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from application.dtos.payments import ProcessorOrder
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.signature import SignatureAuthenticator
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
)
from core.logging_config import get_logger


logger = get_logger(__name__)


class RazorpayClient(BasePaymentClient):
    provider = "razorpay"

    def __init__(
        self,
        *,
        key_id: Optional[str],
        key_secret: str,
        webhook_secret: str,
        api_base: str = "https://api.razorpay.com",
        currency: str = "INR",
        signature_header: str = "X-Razorpay-Signature",
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(
            timeouts=timeouts,
            retry=retry,
            auth=httpx.BasicAuth(key_id, key_secret) if key_id else None,
            transport=transport,
        )
        self.authenticator = SignatureAuthenticator(
            client_secret=key_secret,
            webhook_secret=webhook_secret,
        )
        self._key_id = key_id
        self._api_base = api_base.rstrip("/")
        self.currency = currency
        self.signature_header = signature_header

    async def create_order(
        self,
        *,
        amount: int,
        receipt: str,
        notes: Optional[dict[str, str]] = None,
    ) -> ProcessorOrder:
        if not self._key_id:
            raise PaymentProviderError("RAZORPAY__KEY_ID not configured", provider=self.provider)
        if amount <= 0:
            raise PaymentProviderError("Order amount must be positive", provider=self.provider)

        payload = {
            "amount": amount,
            "currency": self.currency,
            "receipt": receipt,
            "notes": notes or {},
        }

        async def _call():
            async with self.client() as c:
                resp = await c.post(f"{self._api_base}/v1/orders", json=payload)
                if resp.status_code >= 500:
                    raise PaymentRecoverableError(
                        "Processor unavailable",
                        provider=self.provider,
                        provider_code=str(resp.status_code),
                    )
                if resp.status_code >= 400:
                    try:
                        error = (resp.json() or {}).get("error") or {}
                    except ValueError:
                        error = {}
                    raise PaymentProviderError(
                        error.get("description") or "Processor rejected order creation",
                        provider=self.provider,
                        provider_code=error.get("code") or str(resp.status_code),
                    )
                return resp.json()

        try:
            data = await self._retry(_call)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            logger.error("razorpay_create_order_transport_error", error=str(exc))
            raise PaymentRecoverableError("Processor unreachable", provider=self.provider) from exc

        order = ProcessorOrder(
            id=str(data["id"]),
            amount=int(data.get("amount", amount)),
            currency=str(data.get("currency", self.currency)),
            receipt=data.get("receipt"),
            status=data.get("status"),
        )
        self._log("processor_order_created", processor_order_id=order.id, amount=order.amount)
        return order

    def verify_client_signature(self, processor_order_id: str, payment_id: str, signature: str) -> bool:
        return self.authenticator.verify_client(processor_order_id, payment_id, signature)

    def verify_webhook(self, headers: dict[str, Any], body: bytes) -> None:
        """Authenticate the raw body against the header signature or raise."""
        wanted = self.signature_header.lower()
        signature = next((str(v) for k, v in headers.items() if k.lower() == wanted), None)
        if not self.authenticator.verify_webhook(body or b"", signature):
            logger.warning(
                "webhook_signature_invalid",
                provider=self.provider,
                has_signature=bool(signature),
                body_size=len(body or b""),
            )
            raise PaymentSignatureError(provider=self.provider)
