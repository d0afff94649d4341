"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

from core.settings import payment_settings
from application.ports.payment_gateway import PaymentGateway


def get_payment_gateway(provider: Optional[str] = None) -> PaymentGateway:
    name = (provider or payment_settings.default_provider).lower()
    if name in {"razorpay", "rzp"}:
        from .razorpay_client import RazorpayClient
        cfg = payment_settings.razorpay
        return RazorpayClient(
            key_id=cfg.key_id,
            key_secret=cfg.key_secret,
            webhook_secret=cfg.webhook_secret,
            api_base=cfg.api_base,
            currency=cfg.currency,
            signature_header=payment_settings.webhook.signature_header,
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
        )
    raise ValueError(f"Unsupported payment provider: {name}")
