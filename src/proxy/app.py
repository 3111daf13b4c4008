"""FastAPI application exposing the bridge HTTP surface."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.proxy.auth_middleware import AuthMiddleware

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger
    from src.audit.stats import DeliveryStats
    from src.bridge import Bridge
    from src.session.client import MessagingClient
    from src.webhook.sender import OutboundHandler

logger = logging.getLogger(__name__)

SERVICE_NAME = "WhatsApp Webhook Bridge"
_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    from src.bridge import build_bridge
    from src.config import BridgeConfig

    return create_bridge_app(build_bridge(BridgeConfig.from_env()))


def create_bridge_app(bridge: Bridge) -> FastAPI:
    """Create the app for a fully wired bridge, tying the session to the app lifespan."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        bridge.supervisor.launch()
        try:
            yield
        finally:
            await bridge.supervisor.stop()

    return create_app(
        client=bridge.client,
        outbound=bridge.outbound,
        stats=bridge.stats,
        api_token=bridge.config.api_token,
        audit_logger=bridge.audit_logger,
        lifespan=lifespan,
    )


def create_app(
    client: MessagingClient,
    outbound: OutboundHandler,
    stats: DeliveryStats | None = None,
    api_token: str | None = None,
    audit_logger: AuditLogger | None = None,
    lifespan: Any = None,
) -> FastAPI:
    """Create the bridge app around an injected client and send handler."""
    app = FastAPI(docs_url=None, redoc_url=None, lifespan=lifespan)

    @app.get("/")
    async def index() -> dict[str, Any]:
        return {
            "status": "running",
            "service": SERVICE_NAME,
            "endpoints": {
                "status": "GET /",
                "health": "GET /health",
                "sendMessage": "POST /send-message",
                "stats": "GET /stats",
            },
        }

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {
            "status": "ok",
            "whatsapp": "connected" if client.connected else "disconnected",
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.post("/send-message")
    async def send_message(request: Request) -> JSONResponse:
        body = await _read_json_object(request)
        result = await outbound.handle(body)
        return JSONResponse(result.payload, status_code=result.status_code)

    @app.get("/stats")
    async def delivery_stats() -> dict[str, dict[str, int]]:
        if stats is None:
            return {"relay": {}, "send": {}}
        return stats.snapshot()

    if api_token:
        app.add_middleware(AuthMiddleware, token=api_token, audit_logger=audit_logger)

    return app


async def _read_json_object(request: Request) -> dict[str, Any]:
    """Request body as a dict; anything else counts as an empty body.

    Accepts JSON objects and urlencoded forms.
    """
    raw = await request.body()
    if not raw:
        return {}
    if request.headers.get("content-type", "").startswith(_FORM_CONTENT_TYPE):
        return dict(parse_qsl(raw.decode(errors="replace")))
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Ignoring non-JSON body on %s", request.url.path)
        return {}
    return data if isinstance(data, dict) else {}
