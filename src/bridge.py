"""Wiring of one bridge instance: client, relay, send handler and supervisor."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass

from src.audit.logger import AuditLogger
from src.audit.stats import DeliveryStats
from src.config import BridgeConfig
from src.session.client import ClientLoadError, MessagingClient, build_client
from src.session.supervisor import SessionSupervisor
from src.webhook.relay import InboundForwarder
from src.webhook.sender import OutboundHandler

logger = logging.getLogger(__name__)


@dataclass
class Bridge:
    config: BridgeConfig
    client: MessagingClient
    forwarder: InboundForwarder
    outbound: OutboundHandler
    supervisor: SessionSupervisor
    stats: DeliveryStats
    audit_logger: AuditLogger | None = None


async def exit_process(supervisor: SessionSupervisor, code: int) -> None:
    """Destroy the session, then stop the event loop (and process) with ``code``.

    Used when the app is served via ``uvicorn --factory``, where no server
    handle is available to request a graceful shutdown.
    """
    logger.critical("Fatal session error, exiting with code %d", code)
    try:
        await supervisor.stop()
    except Exception as exc:  # exiting regardless
        logger.error("Messaging client teardown failed: %s", exc)
    sys.exit(code)


def build_bridge(
    config: BridgeConfig,
    client: MessagingClient | None = None,
    on_fatal: Callable[[int], None] | None = None,
) -> Bridge:
    """Build every component around a single shared client handle.

    Without ``on_fatal`` a fatal session error tears the session down and
    exits the process via :func:`exit_process`.
    """
    if client is None:
        if not config.messaging_client:
            raise ClientLoadError(
                "No messaging client configured, set MESSAGING_CLIENT=module:factory"
            )
        client = build_client(config.messaging_client, config.session_dir)

    audit_logger = (
        AuditLogger.from_env(config.audit_log_path) if config.audit_log_path else None
    )
    stats = DeliveryStats()
    pending_exits: set[asyncio.Task[None]] = set()

    def exit_after_teardown(code: int) -> None:
        task = asyncio.get_running_loop().create_task(exit_process(supervisor, code))
        pending_exits.add(task)
        task.add_done_callback(pending_exits.discard)

    forwarder = InboundForwarder(
        client,
        config.webhook_url,
        audit_logger=audit_logger,
        stats=stats,
        timeout=config.relay_timeout,
    )
    outbound = OutboundHandler(client, audit_logger=audit_logger, stats=stats)
    supervisor = SessionSupervisor(
        client,
        forwarder,
        audit_logger=audit_logger,
        max_retries=config.reconnect_max_retries,
        backoff_cap=config.reconnect_backoff_cap,
        on_fatal=on_fatal or exit_after_teardown,
        listen_url=f"http://{config.host}:{config.port}",
    )
    return Bridge(
        config=config,
        client=client,
        forwarder=forwarder,
        outbound=outbound,
        supervisor=supervisor,
        stats=stats,
        audit_logger=audit_logger,
    )
