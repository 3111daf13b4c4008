"""Shared test fixtures for wa-webhook-bridge."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest

from src.audit.logger import AuditLogger
from src.session.client import EventEmitter
from src.webhook.models import Chat, Contact, IncomingMessage


class FakeClient(EventEmitter):
    """In-memory messaging client that records calls."""

    def __init__(
        self,
        contacts: dict[str, Contact] | None = None,
        chats: dict[str, Chat] | None = None,
    ) -> None:
        super().__init__()
        self.connected = False
        self.contacts = contacts or {}
        self.chats = chats or {}
        self.sent: list[tuple[str, str]] = []
        self.send_error: Exception | None = None
        self.lookup_error: Exception | None = None
        self.initialize_calls = 0
        self.initialize_error: Exception | None = None
        self.destroyed = False

    async def initialize(self) -> None:
        self.initialize_calls += 1
        if self.initialize_error:
            raise self.initialize_error

    async def destroy(self) -> None:
        self.destroyed = True
        self.connected = False

    async def send_message(self, chat_id: str, text: str) -> Any:
        if self.send_error:
            raise self.send_error
        self.sent.append((chat_id, text))
        return {"id": f"msg-{len(self.sent)}"}

    async def get_contact(self, contact_id: str) -> Contact | None:
        if self.lookup_error:
            raise self.lookup_error
        return self.contacts.get(contact_id)

    async def get_chat(self, chat_id: str) -> Chat | None:
        if self.lookup_error:
            raise self.lookup_error
        return self.chats.get(chat_id)


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


# --- Factory functions for test data ---


def make_message(**kwargs: Any) -> IncomingMessage:
    """Factory for IncomingMessage with sensible defaults."""
    defaults: dict[str, Any] = {
        "from_": "15551234567@c.us",
        "body": "hello",
        "type": "chat",
        "timestamp": 1_700_000_000,
        "id": "true_15551234567@c.us_ABC",
    }
    defaults.update(kwargs)
    return IncomingMessage(**defaults)


def make_contact(**kwargs: Any) -> Contact:
    """Factory for Contact with sensible defaults."""
    defaults: dict[str, Any] = {
        "id_serialized": "15551234567@c.us",
        "number": "15551234567",
        "pushname": "Alice",
    }
    defaults.update(kwargs)
    return Contact(**defaults)
