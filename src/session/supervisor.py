"""Session lifecycle supervision.

Reacts to the messaging client's lifecycle notifications: shows the pairing
QR code, records authentication outcomes, schedules inbound relays and
reconnects after a disconnection with exponential backoff capped at
``backoff_cap`` seconds and ``max_retries`` attempts.
"""

from __future__ import annotations

import asyncio
import io
import logging
import sys
from collections.abc import Callable, Coroutine
from enum import Enum
from typing import TYPE_CHECKING, Any, TextIO

import qrcode

from src.models import AuditEvent, AuditEventType, RiskLevel
from src.session.client import ClientEvent

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger
    from src.session.client import MessagingClient
    from src.webhook.models import IncomingMessage
    from src.webhook.relay import InboundForwarder

logger = logging.getLogger(__name__)

EXIT_FATAL = 1

_DEFAULT_MAX_RETRIES = 5
_DEFAULT_BACKOFF_CAP_SECONDS = 60


class SessionState(str, Enum):
    STARTING = "starting"
    AWAITING_PAIRING = "awaiting_pairing"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    RECONNECTING = "reconnecting"
    FAILED = "failed"
    STOPPED = "stopped"


def render_qr(data: str, out: TextIO | None = None) -> None:
    """Print a pairing code as terminal block art."""
    stream = out or sys.stdout
    qr = qrcode.QRCode(border=1)
    qr.add_data(data)
    qr.make(fit=True)
    buffer = io.StringIO()
    qr.print_ascii(out=buffer, invert=True)
    stream.write("Scan this QR code with WhatsApp:\n\n")
    stream.write(buffer.getvalue())
    stream.write("\nWaiting for authentication...\n")
    stream.flush()


def backoff_delay(attempt: int, cap: float) -> float:
    return min(2 ** attempt, cap)


class SessionSupervisor:
    """Owns the reaction to client lifecycle events for one session."""

    def __init__(
        self,
        client: MessagingClient,
        forwarder: InboundForwarder,
        audit_logger: AuditLogger | None = None,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        backoff_cap: float = _DEFAULT_BACKOFF_CAP_SECONDS,
        qr_renderer: Callable[[str], None] = render_qr,
        on_fatal: Callable[[int], None] | None = None,
        listen_url: str | None = None,
    ) -> None:
        self._client = client
        self._forwarder = forwarder
        self._audit = audit_logger
        self._max_retries = max_retries
        self._backoff_cap = backoff_cap
        self._qr_renderer = qr_renderer
        self._on_fatal = on_fatal
        self._listen_url = listen_url
        self._attempt = 0
        self._disconnect_pending = False
        self._reconnect_task: asyncio.Task[Any] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self.state = SessionState.STARTING

        client.on(ClientEvent.QR, self._on_qr)
        client.on(ClientEvent.AUTHENTICATED, self._on_authenticated)
        client.on(ClientEvent.AUTH_FAILURE, self._on_auth_failure)
        client.on(ClientEvent.READY, self._on_ready)
        client.on(ClientEvent.DISCONNECTED, self._on_disconnected)
        client.on(ClientEvent.MESSAGE, self._on_message)

    @property
    def reconnect_attempts(self) -> int:
        return self._attempt

    async def start(self) -> None:
        logger.info("Initializing messaging client")
        self.state = SessionState.STARTING
        await self._client.initialize()

    def launch(self) -> asyncio.Task[Any]:
        """Start the session in the background so HTTP serving is not delayed."""
        return self._spawn(self._start_or_fail())

    async def _start_or_fail(self) -> None:
        try:
            await self.start()
        except Exception as exc:  # a client that cannot start is fatal
            self.state = SessionState.FAILED
            logger.error("Messaging client failed to initialize: %s", exc)
            self._fatal(EXIT_FATAL)

    async def stop(self) -> None:
        """Tear the session down; pending relays are left to finish."""
        if self.state == SessionState.STOPPED:
            return
        self.state = SessionState.STOPPED
        logger.info("Shutting down messaging client")
        await self._client.destroy()

    async def drain(self) -> None:
        """Wait for every scheduled relay and reconnect task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # --- Client event handlers ---

    def _on_qr(self, qr: str) -> None:
        self.state = SessionState.AWAITING_PAIRING
        self._qr_renderer(qr)

    def _on_authenticated(self, *_: Any) -> None:
        self.state = SessionState.AUTHENTICATED
        logger.info("WhatsApp authenticated successfully")
        self._log_event(AuditEventType.AUTH_SUCCESS, "authenticate", "success", RiskLevel.INFO)

    def _on_auth_failure(self, reason: Any = None) -> None:
        self.state = SessionState.FAILED
        logger.error("Authentication failed: %s", reason)
        self._log_event(
            AuditEventType.AUTH_FAILURE, "authenticate", "failure", RiskLevel.HIGH,
            {"reason": str(reason)},
        )
        self._fatal(EXIT_FATAL)

    def _on_ready(self, *_: Any) -> None:
        self.state = SessionState.READY
        self._attempt = 0
        logger.info("WhatsApp bridge is ready and listening for messages")
        if self._listen_url:
            logger.info("HTTP server: %s", self._listen_url)
        logger.info("Webhook URL: %s", self._forwarder.webhook_url)
        self._log_event(AuditEventType.SESSION_READY, "ready", "success", RiskLevel.INFO)

    def _on_disconnected(self, reason: Any = None) -> None:
        if self.state in (SessionState.STOPPED, SessionState.FAILED):
            return
        logger.warning("WhatsApp client disconnected: %s", reason)
        self._log_event(
            AuditEventType.SESSION_DISCONNECTED, "disconnected", "failure", RiskLevel.MEDIUM,
            {"reason": str(reason)},
        )
        if self._reconnect_task is not None and not self._reconnect_task.done():
            # Picked up by the running reconnect loop after its current attempt.
            self.state = SessionState.RECONNECTING
            self._disconnect_pending = True
            return
        self.state = SessionState.RECONNECTING
        self._reconnect_task = self._spawn(self._reconnect())

    def _on_message(self, message: IncomingMessage) -> None:
        self._spawn(self._forwarder.handle(message))

    # --- Reconnection ---

    async def _reconnect(self) -> None:
        while self._attempt < self._max_retries:
            delay = backoff_delay(self._attempt, self._backoff_cap)
            self._attempt += 1
            logger.info(
                "Reconnecting in %ss (attempt %d/%d)", delay, self._attempt, self._max_retries,
            )
            await asyncio.sleep(delay)
            if self.state != SessionState.RECONNECTING:
                return
            self._disconnect_pending = False
            try:
                await self._client.initialize()
            except Exception as exc:  # retried until the attempt budget runs out
                logger.error("Reconnect attempt %d failed: %s", self._attempt, exc)
                continue
            self._log_event(
                AuditEventType.SESSION_RECONNECT, "reconnect", "success", RiskLevel.INFO,
                {"attempt": self._attempt},
            )
            if self._disconnect_pending and self.state == SessionState.RECONNECTING:
                logger.warning("Disconnected again while reconnecting, retrying")
                continue
            # The client is initializing again; READY resets the budget.
            if self.state == SessionState.RECONNECTING:
                self.state = SessionState.STARTING
            return

        self.state = SessionState.FAILED
        logger.error("Giving up after %d reconnect attempts", self._max_retries)
        self._log_event(
            AuditEventType.SESSION_RECONNECT, "reconnect", "failure", RiskLevel.HIGH,
            {"attempts": self._attempt},
        )
        self._fatal(EXIT_FATAL)

    def _fatal(self, code: int) -> None:
        if self._on_fatal:
            self._on_fatal(code)

    def _log_event(
        self,
        event_type: AuditEventType,
        action: str,
        result: str,
        risk_level: RiskLevel,
        details: dict[str, object] | None = None,
    ) -> None:
        if self._audit:
            self._audit.log(AuditEvent(
                event_type=event_type,
                action=action,
                result=result,
                risk_level=risk_level,
                details=details,
            ))
