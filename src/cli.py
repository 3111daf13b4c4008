"""Click CLI for running the bridge and inspecting its configuration."""

from __future__ import annotations

import json
import logging

import click
import uvicorn

from src.bridge import build_bridge
from src.config import BridgeConfig
from src.proxy.app import create_bridge_app
from src.session.client import ClientLoadError
from src.webhook.identifiers import normalize_identifier

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format=_LOG_FORMAT)


@click.group()
def cli() -> None:
    """WhatsApp <-> webhook bridge."""


@cli.command()
@click.option("--host", default=None, help="Interface to bind (BRIDGE_HOST).")
@click.option("--port", type=int, default=None, help="HTTP port (BRIDGE_PORT).")
@click.option("--webhook-url", default=None, help="Destination for inbound messages (WEBHOOK_URL).")
@click.option("--session-dir", default=None, help="Client session data directory (SESSION_DIR).")
@click.option("--client", "messaging_client", default=None,
              help="Messaging client factory as module:callable (MESSAGING_CLIENT).")
@click.option("--audit-log", "audit_log_path", default=None, help="Audit log file path.")
@click.option("--log-level", default=None, help="Logging level (LOG_LEVEL).")
@click.pass_context
def serve(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    webhook_url: str | None,
    session_dir: str | None,
    messaging_client: str | None,
    audit_log_path: str | None,
    log_level: str | None,
) -> None:
    """Run the HTTP server and the messaging session in one process."""
    config = BridgeConfig.from_env().with_overrides(
        host=host,
        port=port,
        webhook_url=webhook_url,
        session_dir=session_dir,
        messaging_client=messaging_client,
        audit_log_path=audit_log_path,
        log_level=log_level.upper() if log_level else None,
    )
    _configure_logging(config.log_level)

    exit_code = 0
    server: uvicorn.Server | None = None

    def on_fatal(code: int) -> None:
        nonlocal exit_code
        exit_code = code
        if server is not None:
            server.should_exit = True

    try:
        bridge = build_bridge(config, on_fatal=on_fatal)
    except ClientLoadError as exc:
        raise click.ClickException(str(exc)) from exc

    server = uvicorn.Server(uvicorn.Config(
        create_bridge_app(bridge),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    ))
    server.run()
    ctx.exit(exit_code)


@cli.command()
@click.argument("identifier")
def normalize(identifier: str) -> None:
    """Print the canonical form of a WhatsApp identifier."""
    click.echo(normalize_identifier(identifier))


@cli.command("config")
def show_config() -> None:
    """Print the effective configuration from the environment (token redacted)."""
    click.echo(json.dumps(BridgeConfig.from_env().redacted(), indent=2))
