"""
Processor-facing errors, raised as BusinessException variants so the global
handlers map them onto the unified envelope.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class _ProcessorError(BusinessException):
    code: PaymentCode = PaymentCode.PROVIDER_ERROR

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        super().__init__(
            code=type(self).code,
            message=message,
            error_type=type(self).__name__,
            details={"provider": provider, "provider_code": provider_code, **(details or {})},
        )


class PaymentProviderError(_ProcessorError):
    """Processor rejected the request; retrying the same call will not help."""

    code = PaymentCode.PROVIDER_ERROR


class PaymentRecoverableError(_ProcessorError):
    """Processor unreachable or failing server-side; safe to retry later."""

    code = PaymentCode.PROVIDER_RECOVERABLE


class PaymentSignatureError(_ProcessorError):
    """Forged or missing webhook signature; the event is rejected untouched."""

    code = PaymentCode.SIGNATURE_ERROR

    def __init__(self, message: str = "Invalid signature", *, provider: str) -> None:
        super().__init__(message, provider=provider)
