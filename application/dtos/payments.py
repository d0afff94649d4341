"""
Payment reconciliation DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.types import condecimal


class ClientPaymentConfirmation(BaseModel):
    """Completion asserted by the buyer's browser right after checkout."""

    processor_order_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("razorpay_order_id", "processor_order_id"),
    )
    payment_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("razorpay_payment_id", "payment_id"),
    )
    signature: str = Field(
        min_length=1,
        validation_alias=AliasChoices("razorpay_signature", "signature"),
        repr=False,
    )
    order_ids: list[str] = Field(
        min_length=1,
        validation_alias=AliasChoices("orderIds", "order_ids"),
    )

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("processor_order_id", "payment_id")
    @classmethod
    def _strip_ids(cls, v: str) -> str:
        # Only ids are trimmed; the signature is compared as sent
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @field_validator("order_ids")
    @classmethod
    def _dedupe_order_ids(cls, v: list[str]) -> list[str]:
        cleaned = [oid.strip() for oid in v]
        if any(not oid for oid in cleaned):
            raise ValueError("order ids must be non-empty strings")
        # Keep first-seen order: the first id drives buyer resolution
        return list(dict.fromkeys(cleaned))


class WebhookEventKind(str, Enum):
    """Closed set of processor events the marketplace acts on."""

    CAPTURED = "captured"
    FAILED = "failed"
    SETTLED = "settled"
    UNRECOGNIZED = "unrecognized"


class WebhookEvent(BaseModel):
    id: str
    type: str
    provider: str
    data: dict[str, Any]


class OrderOutcome(str, Enum):
    CONFIRMED = "confirmed"          # this call performed false -> true
    ALREADY_PAID = "already_paid"    # found paid, left untouched
    REMOVED = "removed"              # unpaid order deleted
    KEPT_PAID = "kept_paid"          # removal requested but order is paid
    NOT_FOUND = "not_found"
    MISMATCH = "mismatch"            # order belongs to another checkout group
    FAILED = "failed"                # store error, caller must retry


class OrderOutcomeDTO(BaseModel):
    order_id: str
    outcome: OrderOutcome
    error: Optional[str] = None


class ClientConfirmationResult(BaseModel):
    verified: bool
    processor_order_id: str
    order_ids: list[str]
    outcomes: list[OrderOutcomeDTO] = Field(default_factory=list)
    buyer_id: Optional[str] = None
    cart_cleared: bool = False

    def ids_with(self, outcome: OrderOutcome) -> list[str]:
        return [o.order_id for o in self.outcomes if o.outcome == outcome]


class WebhookOutcome(BaseModel):
    kind: WebhookEventKind
    processor_order_id: Optional[str] = None
    outcomes: list[OrderOutcomeDTO] = Field(default_factory=list)
    cart_cleared_for: list[str] = Field(default_factory=list)

    def ids_with(self, outcome: OrderOutcome) -> list[str]:
        return [o.order_id for o in self.outcomes if o.outcome == outcome]


class WebhookAck(BaseModel):
    """Acknowledgement returned to the processor for every authenticated event."""

    received: bool = True
    handled: bool
    event_type: Optional[str] = None
    kind: WebhookEventKind = WebhookEventKind.UNRECOGNIZED
    reason: Optional[str] = None
    outcome: Optional[WebhookOutcome] = None


class OrderDraft(BaseModel):
    """Pre-priced, seller-scoped slice of a cart submission."""

    store_id: str = Field(min_length=1)
    subtotal: condecimal(ge=0)  # type: ignore[valid-type]
    gst_amount: condecimal(ge=0) = Decimal("0")  # type: ignore[valid-type]
    shipping_charge: condecimal(ge=0) = Decimal("0")  # type: ignore[valid-type]
    total: condecimal(gt=0)  # type: ignore[valid-type]
    order_id: Optional[str] = None

    @model_validator(mode="after")
    def total_matches_parts(self) -> "OrderDraft":
        expected = self.subtotal + self.gst_amount + self.shipping_charge
        if self.total != expected:
            raise ValueError(f"total must equal subtotal + gst_amount + shipping_charge ({expected})")
        return self


class ProcessorOrder(BaseModel):
    id: str
    amount: int  # minor units
    currency: str
    receipt: Optional[str] = None
    status: Optional[str] = None


class CheckoutResult(BaseModel):
    processor_order_id: str
    amount: int
    currency: str
    order_ids: list[str]
    grand_total: Decimal


class OrderResponseDTO(BaseModel):
    id: str
    processor_order_id: Optional[str] = None
    store_id: str
    total: Decimal
    subtotal: Decimal
    gst_amount: Decimal
    shipping_charge: Decimal
    status: str
    is_paid: bool
    payment_id: Optional[str] = None
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CheckoutRequest(BaseModel):
    orders: list[OrderDraft] = Field(min_length=1)
