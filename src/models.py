"""Shared Pydantic data models for wa-webhook-bridge."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class AuditEventType(str, Enum):
    AUTH_SUCCESS = "auth_success"
    AUTH_FAILURE = "auth_failure"
    SESSION_READY = "session_ready"
    SESSION_DISCONNECTED = "session_disconnected"
    SESSION_RECONNECT = "session_reconnect"
    INBOUND_RELAY = "inbound_relay"
    OUTBOUND_SEND = "outbound_send"
    API_AUTH_FAILURE = "api_auth_failure"


class RiskLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# --- Relay Models ---


class InboundRecord(BaseModel):
    """Flat record POSTed to the webhook for one inbound message.

    ``sender`` and ``chat_id`` both carry the canonical sender identifier;
    the webhook side uses them interchangeably as "from" and "chat" keys.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sender: str = Field(alias="from")
    chat_id: str = Field(alias="chatId")
    message: str
    notify_name: str = Field(alias="notifyName")
    push_name: str = Field(alias="pushName")
    type: str
    timestamp: int
    is_group: bool = Field(alias="isGroup")
    chat_name: str = Field(alias="chatName")
    has_media: bool = Field(alias="hasMedia")

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(by_alias=True)


class SendMessageRequest(BaseModel):
    """Body of ``POST /send-message``. Every field is optional at parse time."""

    model_config = ConfigDict(
        populate_by_name=True, extra="ignore", coerce_numbers_to_str=True,
    )

    phone: str | None = None
    chat_id: str | None = Field(default=None, alias="chatId")
    message: str | None = None

    @property
    def recipient(self) -> str | None:
        """``chatId`` wins over ``phone`` when both are present."""
        return self.chat_id or self.phone


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    source_ip: str | None = None
    action: str
    result: str  # "success" | "failure" | "skipped" | ...
    risk_level: RiskLevel
    details: dict[str, object] | None = None
