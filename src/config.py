"""Bridge configuration read from environment variables."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, replace
from typing import Any

from src.webhook.relay import WEBHOOK_URL_PLACEHOLDER


def _optional_float(value: str | None) -> float | None:
    if value is None or value.strip() == "":
        return None
    return float(value)


@dataclass(frozen=True)
class BridgeConfig:
    host: str = "0.0.0.0"
    port: int = 3001
    webhook_url: str = WEBHOOK_URL_PLACEHOLDER
    session_dir: str = "./whatsapp-session"
    messaging_client: str | None = None  # "package.module:factory"
    api_token: str | None = None
    audit_log_path: str | None = None
    relay_timeout: float | None = None
    reconnect_max_retries: int = 5
    reconnect_backoff_cap: float = 60.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> BridgeConfig:
        env = os.environ
        return cls(
            host=env.get("BRIDGE_HOST", "0.0.0.0"),
            port=int(env.get("BRIDGE_PORT", "3001")),
            webhook_url=env.get("WEBHOOK_URL", WEBHOOK_URL_PLACEHOLDER),
            session_dir=env.get("SESSION_DIR", "./whatsapp-session"),
            messaging_client=env.get("MESSAGING_CLIENT") or None,
            api_token=env.get("BRIDGE_API_TOKEN") or None,
            audit_log_path=env.get("AUDIT_LOG_PATH") or None,
            relay_timeout=_optional_float(env.get("RELAY_TIMEOUT_SECONDS")),
            reconnect_max_retries=int(env.get("RECONNECT_MAX_RETRIES", "5")),
            reconnect_backoff_cap=float(env.get("RECONNECT_BACKOFF_CAP_SECONDS", "60")),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )

    def with_overrides(self, **overrides: Any) -> BridgeConfig:
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def redacted(self) -> dict[str, Any]:
        data = asdict(self)
        if data["api_token"]:
            data["api_token"] = "***"
        return data
