"""Messaging client contract.

The bridge does not speak the WhatsApp protocol itself. A concrete client
(session persistence, pairing, transport) is loaded from a ``module:factory``
import path and must satisfy ``MessagingClient``. ``EventEmitter`` is a
helper base for such adapters.
"""

from __future__ import annotations

import asyncio
import importlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from src.webhook.models import Chat, Contact

logger = logging.getLogger(__name__)

EventHandler = Callable[..., Awaitable[None] | None]


class ClientEvent(str, Enum):
    QR = "qr"
    AUTHENTICATED = "authenticated"
    AUTH_FAILURE = "auth_failure"
    READY = "ready"
    DISCONNECTED = "disconnected"
    MESSAGE = "message"


class ClientLoadError(Exception):
    """Raised when the configured client factory cannot be imported or called."""


@runtime_checkable
class MessagingClient(Protocol):
    @property
    def connected(self) -> bool: ...

    def on(self, event: ClientEvent, handler: EventHandler) -> None: ...

    async def initialize(self) -> None: ...

    async def destroy(self) -> None: ...

    async def send_message(self, chat_id: str, text: str) -> Any: ...

    async def get_contact(self, contact_id: str) -> Contact | None: ...

    async def get_chat(self, chat_id: str) -> Chat | None: ...


class EventEmitter:
    """Minimal ``on``/``emit`` registry for client adapters.

    Handlers run in registration order. Coroutine handlers are awaited, so
    a handler that must not block the emitter has to schedule its own task.
    """

    def __init__(self) -> None:
        self._handlers: dict[ClientEvent, list[EventHandler]] = {}

    def on(self, event: ClientEvent, handler: EventHandler) -> None:
        self._handlers.setdefault(ClientEvent(event), []).append(handler)

    async def emit(self, event: ClientEvent, *args: Any) -> None:
        for handler in list(self._handlers.get(ClientEvent(event), [])):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result


def load_client_factory(path: str) -> Callable[..., MessagingClient]:
    """Resolve ``package.module:factory`` into a callable."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ClientLoadError(
            f"Invalid client factory {path!r}, expected 'module:factory'"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ClientLoadError(f"Cannot import {module_name!r}: {exc}") from exc
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ClientLoadError(f"{path!r} is not a callable")
    return factory


def build_client(path: str, session_dir: str) -> MessagingClient:
    """Instantiate the configured client with its session directory."""
    factory = load_client_factory(path)
    client = factory(session_dir=session_dir)
    if asyncio.iscoroutine(client):
        client.close()
        raise ClientLoadError(f"{path!r} must return a client, not a coroutine")
    if not isinstance(client, MessagingClient):
        raise ClientLoadError(f"{path!r} returned {type(client).__name__}, not a MessagingClient")
    logger.info("Loaded messaging client %s (session dir %s)", path, session_dir)
    return client
