"""Inbound relay: one messaging-client message -> one webhook POST.

Stages:
1. Drop status broadcasts
2. Refuse to relay while the webhook URL is still the placeholder
3. Resolve sender contact and chat metadata
4. Build the flat ``InboundRecord``
5. POST it to the webhook via httpx (no retry, no auth header)
6. Count and audit the outcome

Delivery is at-most-once. Failures are logged and counted, never raised,
so the inbound event is handled whatever the webhook does.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from src.models import AuditEvent, AuditEventType, InboundRecord, RiskLevel
from src.webhook.identifiers import STATUS_BROADCAST, is_group, resolve_sender
from src.webhook.models import Chat, Contact, IncomingMessage, RelayOutcome

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger
    from src.audit.stats import DeliveryStats
    from src.session.client import MessagingClient

logger = logging.getLogger(__name__)

WEBHOOK_URL_PLACEHOLDER = "YOUR_N8N_WEBHOOK_URL"
UNKNOWN_NAME = "Unknown"


def is_configured(webhook_url: str) -> bool:
    return bool(webhook_url) and webhook_url != WEBHOOK_URL_PLACEHOLDER


def build_record(
    message: IncomingMessage,
    contact: Contact | None,
    chat: Chat | None,
) -> InboundRecord:
    """Flatten a message and its metadata into the webhook payload."""
    sender = resolve_sender(message, contact)
    display_name = (contact.pushname if contact else None) or UNKNOWN_NAME
    chat_name = (chat.name if chat else None) or display_name
    return InboundRecord(
        sender=sender,
        chat_id=sender,
        message=message.body,
        notify_name=display_name,
        push_name=display_name,
        type=message.type,
        timestamp=message.timestamp,
        # Group membership comes from the raw sender, not the normalized one.
        is_group=is_group(message.from_),
        chat_name=chat_name,
        has_media=message.has_media,
    )


class InboundForwarder:
    """Forwards inbound messages to the configured webhook."""

    def __init__(
        self,
        client: MessagingClient,
        webhook_url: str,
        audit_logger: AuditLogger | None = None,
        stats: DeliveryStats | None = None,
        timeout: float | None = None,
    ) -> None:
        self._client = client
        self._webhook_url = webhook_url
        self._audit = audit_logger
        self._stats = stats
        self._timeout = timeout

    @property
    def webhook_url(self) -> str:
        return self._webhook_url

    async def handle(self, message: IncomingMessage) -> RelayOutcome:
        """Relay one inbound message. Never raises for delivery problems."""
        if message.is_status or message.from_ == STATUS_BROADCAST:
            return RelayOutcome.SKIPPED

        if not is_configured(self._webhook_url):
            logger.warning(
                "Webhook URL not configured, dropping message from %s", message.from_,
            )
            return self._finish(RelayOutcome.UNCONFIGURED, message, None)

        contact = await self._lookup_contact(message)
        chat = await self._lookup_chat(message)
        record = build_record(message, contact, chat)

        logger.info(
            "New message from %s (resolved %s): %s",
            message.from_, record.sender, record.message,
        )

        outcome, status = await self._post(record)
        return self._finish(outcome, message, record, status)

    async def _lookup_contact(self, message: IncomingMessage) -> Contact | None:
        contact_id = message.author or message.from_
        try:
            return await self._client.get_contact(contact_id)
        except Exception as exc:  # lookup failure only degrades the record
            logger.warning("Contact lookup failed for %s: %s", contact_id, exc)
            return None

    async def _lookup_chat(self, message: IncomingMessage) -> Chat | None:
        try:
            return await self._client.get_chat(message.from_)
        except Exception as exc:  # lookup failure only degrades the record
            logger.warning("Chat lookup failed for %s: %s", message.from_, exc)
            return None

    async def _post(self, record: InboundRecord) -> tuple[RelayOutcome, int | None]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._webhook_url, json=record.to_payload())
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            # InvalidURL is not an HTTPError; a malformed WEBHOOK_URL lands here.
            logger.error("Error forwarding to webhook: %s", exc)
            return RelayOutcome.FAILED, None

        if resp.is_success:
            logger.info("Forwarded message from %s to webhook", record.sender)
            return RelayOutcome.DELIVERED, resp.status_code
        logger.error("Webhook responded with error: %s", resp.status_code)
        return RelayOutcome.REJECTED, resp.status_code

    def _finish(
        self,
        outcome: RelayOutcome,
        message: IncomingMessage,
        record: InboundRecord | None,
        status: int | None = None,
    ) -> RelayOutcome:
        if self._stats:
            self._stats.record_relay(outcome.value)
        if self._audit:
            self._audit.log(AuditEvent(
                event_type=AuditEventType.INBOUND_RELAY,
                action="relay",
                result=outcome.value,
                risk_level=(
                    RiskLevel.INFO if outcome == RelayOutcome.DELIVERED else RiskLevel.MEDIUM
                ),
                details={
                    "from": message.from_,
                    "resolved": record.sender if record else None,
                    "webhook_status": status,
                },
            ))
        return outcome
