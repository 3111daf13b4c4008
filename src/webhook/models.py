"""Data models for the inbound relay and outbound send paths."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass
class IncomingMessage:
    """Inbound message event as surfaced by the messaging client."""

    from_: str
    body: str
    type: str = "chat"
    timestamp: int = 0
    author: str | None = None  # group participant; None in direct chats
    is_status: bool = False
    has_media: bool = False
    id: str = ""


@dataclass
class Contact:
    id_serialized: str = ""
    number: str | None = None
    pushname: str | None = None


@dataclass
class Chat:
    id: str = ""
    name: str | None = None
    is_group: bool = False


class RelayOutcome(str, Enum):
    """Result of one inbound relay attempt."""

    DELIVERED = "delivered"
    REJECTED = "rejected"  # webhook answered non-2xx
    FAILED = "failed"  # transport error, nothing answered
    SKIPPED = "skipped"  # status broadcast
    UNCONFIGURED = "unconfigured"  # webhook URL left as placeholder


@dataclass
class SendResult:
    """HTTP response to return for one send request."""

    status_code: int
    payload: dict[str, Any] = field(default_factory=dict)
