"""
Payment reconciliation codes and the processor event vocabulary.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Processor calls (60xxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002

    # Reconciliation (61xxx)
    VERIFICATION_FAILED = 61000
    RECONCILIATION_INCOMPLETE = 61001  # retryable, some Orders untouched


# Processor webhook event tag -> WebhookEventKind value
PROCESSOR_EVENT_TO_KIND = {
    "razorpay": {
        "payment.captured": "captured",
        "payment.failed": "failed",
        "order.paid": "settled",
    },
}
