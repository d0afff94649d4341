"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from application.dtos.payments import ProcessorOrder


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the third-party payment processor.

    Signature checks are pure and synchronous; order creation is async IO.
    """

    provider: str

    async def create_order(
        self,
        *,
        amount: int,
        receipt: str,
        notes: Optional[dict[str, str]] = None,
    ) -> ProcessorOrder: ...

    def verify_client_signature(self, processor_order_id: str, payment_id: str, signature: str) -> bool: ...

    def verify_webhook(self, headers: dict[str, Any], body: bytes) -> None: ...

    async def aclose(self) -> None: ...
