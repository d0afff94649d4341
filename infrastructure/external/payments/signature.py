"""
HMAC-SHA256 signature checks for both confirmation channels.

Client channel: HMAC(key_secret, "<processor_order_id>|<payment_id>").
Webhook channel: HMAC(webhook_secret, raw request body bytes).

Secrets are injected at construction; an empty secret is a configuration
error raised immediately, never a per-request failure.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Optional


class SignatureAuthenticator:
    def __init__(self, *, client_secret: str, webhook_secret: str) -> None:
        if not client_secret:
            raise ValueError("client-channel signing secret is required")
        if not webhook_secret:
            raise ValueError("webhook-channel signing secret is required")
        self._client_key = client_secret.encode("utf-8")
        self._webhook_key = webhook_secret.encode("utf-8")

    @staticmethod
    def _hexdigest(key: bytes, payload: bytes) -> str:
        return hmac.new(key, payload, hashlib.sha256).hexdigest()

    @staticmethod
    def _matches(expected: str, supplied: Optional[str]) -> bool:
        if not supplied:
            return False
        # compare_digest rejects non-ASCII str; treat such input as forged
        try:
            return hmac.compare_digest(expected, supplied)
        except TypeError:
            return False

    @staticmethod
    def client_payload(processor_order_id: str, payment_id: str) -> bytes:
        return f"{processor_order_id}|{payment_id}".encode("utf-8")

    def sign_client(self, processor_order_id: str, payment_id: str) -> str:
        return self._hexdigest(self._client_key, self.client_payload(processor_order_id, payment_id))

    def sign_webhook(self, raw_body: bytes) -> str:
        return self._hexdigest(self._webhook_key, raw_body)

    def verify_client(self, processor_order_id: str, payment_id: str, signature: Optional[str]) -> bool:
        return self._matches(self.sign_client(processor_order_id, payment_id), signature)

    def verify_webhook(self, raw_body: bytes, signature: Optional[str]) -> bool:
        """Verify over the unparsed body; callers must not re-serialize JSON first."""
        return self._matches(self.sign_webhook(raw_body), signature)
