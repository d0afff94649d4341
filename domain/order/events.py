"""
Order payment domain events.

Dataclass events record reconciliation facts for the audit trail and
downstream handling. Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class OrderPaymentEvent:
    order_id: str
    processor_order_id: Optional[str]
    channel: str  # client | webhook
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class OrderPaid(OrderPaymentEvent):
    payment_id: Optional[str] = None


@dataclass
class OrderRemoved(OrderPaymentEvent):
    reason: Optional[str] = None


@dataclass
class CartCleared:
    buyer_id: str
    processor_order_id: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
