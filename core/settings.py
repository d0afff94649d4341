"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Signing secrets are mandatory: a missing secret fails settings construction,
so the service refuses to start instead of skipping signature checks.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, model_validator


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    signature_header: str = "X-Razorpay-Signature"


class RazorpaySettings(BaseModel):
    key_id: Optional[str] = None
    # Client-channel secret: signs "<order_id>|<payment_id>"
    key_secret: Optional[str] = None
    # Webhook-channel secret: signs the raw request body
    webhook_secret: Optional[str] = None
    api_base: str = "https://api.razorpay.com"
    currency: str = "INR"
    receipt_max_length: int = 40


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="razorpay")
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    razorpay: RazorpaySettings = Field(default_factory=RazorpaySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    @model_validator(mode="after")
    def _validate_signing_secrets(self):
        missing = [
            name
            for name, value in (
                ("RAZORPAY__KEY_SECRET", self.razorpay.key_secret),
                ("RAZORPAY__WEBHOOK_SECRET", self.razorpay.webhook_secret),
            )
            if not value
        ]
        if missing:
            raise ValueError(
                f"Payment signing secrets not configured: {', '.join(missing)}"
            )
        return self

    @property
    def secrets_are_distinct(self) -> bool:
        return self.razorpay.key_secret != self.razorpay.webhook_secret


payment_settings = PaymentSettings()
