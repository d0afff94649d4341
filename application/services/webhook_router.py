"""
Webhook event router.

Authenticates the raw notification body, classifies the event into
``WebhookEventKind`` and hands it to the reconciliation service. Anything
that authenticates but cannot be acted on is acknowledged, so the processor
stops redelivering it; only signature failures and store errors surface as
non-success to the caller.
"""
from __future__ import annotations

import json
from typing import Any, Optional

from application.dtos.payments import WebhookAck, WebhookEvent, WebhookEventKind
from application.ports.payment_gateway import PaymentGateway
from application.services.reconciliation_service import PaymentReconciliationService
from shared.codes.payment_codes import PROCESSOR_EVENT_TO_KIND
from core.logging_config import get_logger


logger = get_logger(__name__)

EVENT_ID_HEADER = "x-razorpay-event-id"


def classify_event(provider: str, event_type: Optional[str]) -> WebhookEventKind:
    """Map a processor event name onto the closed set of kinds we act on."""
    mapping = PROCESSOR_EVENT_TO_KIND.get(provider, {})
    kind = mapping.get(event_type or "")
    return WebhookEventKind(kind) if kind else WebhookEventKind.UNRECOGNIZED


def _entity(payload: dict[str, Any], name: str) -> dict[str, Any]:
    section = payload.get(name)
    if not isinstance(section, dict):
        return {}
    entity = section.get("entity")
    return entity if isinstance(entity, dict) else {}


def extract_identifiers(kind: WebhookEventKind, data: dict[str, Any]) -> tuple[Optional[str], Optional[str]]:
    """Return ``(processor_order_id, payment_id)`` carried by the event payload."""
    payload = data.get("payload")
    if not isinstance(payload, dict):
        return None, None
    payment = _entity(payload, "payment")
    if kind == WebhookEventKind.SETTLED:
        order = _entity(payload, "order")
        return order.get("id") or payment.get("order_id"), payment.get("id")
    return payment.get("order_id"), payment.get("id")


class WebhookEventRouter:
    def __init__(self, gateway: PaymentGateway, reconciliation: PaymentReconciliationService) -> None:
        self._gateway = gateway
        self._reconciliation = reconciliation

    async def dispatch(self, headers: dict[str, Any], raw_body: bytes) -> WebhookAck:
        # Raises PaymentSignatureError before anything is parsed or touched
        self._gateway.verify_webhook(headers, raw_body)

        event = self._parse(headers, raw_body)
        if event is None:
            return WebhookAck(handled=False, reason="malformed_payload")

        kind = classify_event(event.provider, event.type)
        log = logger.bind(event_id=event.id, event_type=event.type, kind=kind.value)
        if kind == WebhookEventKind.UNRECOGNIZED:
            log.info("webhook_event_unrecognized")
            return WebhookAck(handled=False, event_type=event.type, kind=kind, reason="unrecognized_event")

        processor_order_id, payment_id = extract_identifiers(kind, event.data)
        if not processor_order_id or (kind == WebhookEventKind.CAPTURED and not payment_id):
            log.warning("webhook_event_missing_identifiers", processor_order_id=processor_order_id)
            return WebhookAck(handled=False, event_type=event.type, kind=kind, reason="missing_identifiers")

        log.info("webhook_event_dispatched", processor_order_id=processor_order_id)
        outcome = await self._reconciliation.handle_webhook_event(kind, processor_order_id, payment_id)
        return WebhookAck(handled=True, event_type=event.type, kind=kind, outcome=outcome)

    def _parse(self, headers: dict[str, Any], raw_body: bytes) -> Optional[WebhookEvent]:
        try:
            data = json.loads(raw_body or b"")
        except (ValueError, UnicodeDecodeError):
            logger.warning("webhook_payload_malformed", provider=self._gateway.provider, body_size=len(raw_body or b""))
            return None
        if not isinstance(data, dict):
            logger.warning("webhook_payload_malformed", provider=self._gateway.provider, body_size=len(raw_body))
            return None

        event_id = next((str(v) for k, v in headers.items() if k.lower() == EVENT_ID_HEADER), None)
        return WebhookEvent(
            id=event_id or str(data.get("id") or ""),
            type=str(data.get("event") or ""),
            provider=self._gateway.provider,
            data=data,
        )
