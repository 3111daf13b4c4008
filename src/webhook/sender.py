"""Outbound send path: one ``/send-message`` body -> one client send call."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from src.models import AuditEvent, AuditEventType, RiskLevel, SendMessageRequest
from src.webhook.identifiers import normalize_identifier
from src.webhook.models import SendResult

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger
    from src.audit.stats import DeliveryStats
    from src.session.client import MessagingClient

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 50


def _preview(text: str) -> str:
    if len(text) > _PREVIEW_CHARS:
        return text[:_PREVIEW_CHARS] + "..."
    return text


def _error(status_code: int, error: str) -> SendResult:
    return SendResult(status_code=status_code, payload={"success": False, "error": error})


class OutboundHandler:
    """Validates send requests and hands them to the messaging client."""

    def __init__(
        self,
        client: MessagingClient,
        audit_logger: AuditLogger | None = None,
        stats: DeliveryStats | None = None,
    ) -> None:
        self._client = client
        self._audit = audit_logger
        self._stats = stats

    async def handle(self, body: dict[str, Any]) -> SendResult:
        try:
            request = SendMessageRequest.model_validate(body)
        except ValidationError as exc:
            self._record("invalid")
            return _error(400, f"Invalid request: {exc.errors()[0]['msg']}")

        if not request.recipient:
            self._record("invalid")
            return _error(400, "Missing required field: phone or chatId")
        if not request.message:
            self._record("invalid")
            return _error(400, "Missing required field: message")

        recipient = normalize_identifier(request.recipient)
        if recipient != request.recipient:
            logger.info("Normalized recipient %s -> %s", request.recipient, recipient)

        logger.info("Sending message to %s: %s", recipient, _preview(request.message))

        try:
            await self._client.send_message(recipient, request.message)
        except Exception as exc:  # any client failure becomes a 500
            logger.error("Error sending message to %s: %s", recipient, exc)
            self._record("failed", recipient, str(exc))
            return _error(500, str(exc))

        logger.info("Message sent to %s", recipient)
        self._record("sent", recipient)
        return SendResult(
            status_code=200,
            payload={
                "success": True,
                "message": "Message sent successfully",
                "recipient": recipient,
            },
        )

    def _record(
        self, outcome: str, recipient: str | None = None, error: str | None = None,
    ) -> None:
        if self._stats:
            self._stats.record_send(outcome)
        if self._audit:
            self._audit.log(AuditEvent(
                event_type=AuditEventType.OUTBOUND_SEND,
                action="send_message",
                result=outcome,
                risk_level=RiskLevel.INFO if outcome == "sent" else RiskLevel.MEDIUM,
                details={"recipient": recipient, "error": error},
            ))
