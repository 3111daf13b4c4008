"""Integration tests for the bridge HTTP surface and end-to-end relay wiring."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from src.audit.stats import DeliveryStats
from src.bridge import build_bridge, exit_process
from src.config import BridgeConfig
from src.proxy.app import create_app, create_bridge_app
from src.session.client import ClientEvent, ClientLoadError
from src.session.supervisor import SessionState
from src.webhook.sender import OutboundHandler
from tests.conftest import FakeClient, make_contact, make_message

TOKEN = "bridge-token"


def _make_app(client: FakeClient, **kwargs: Any) -> Any:
    stats = kwargs.pop("stats", DeliveryStats())
    return create_app(
        client=client,
        outbound=OutboundHandler(client, stats=stats),
        stats=stats,
        **kwargs,
    )


async def _post(app: Any, body: Any = None, **kwargs: Any) -> Any:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.post("/send-message", json=body, **kwargs)


class TestStatusEndpoints:
    @pytest.mark.asyncio
    async def test_index_lists_endpoints(self, fake_client: FakeClient) -> None:
        transport = ASGITransport(app=_make_app(fake_client))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get("/")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "running"
        assert body["endpoints"]["sendMessage"] == "POST /send-message"

    @pytest.mark.asyncio
    async def test_health_reads_connection_flag_live(self, fake_client: FakeClient) -> None:
        transport = ASGITransport(app=_make_app(fake_client))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            first = (await client.get("/health")).json()
            fake_client.connected = True
            second = (await client.get("/health")).json()

        assert first["status"] == "ok"
        assert first["whatsapp"] == "disconnected"
        assert second["whatsapp"] == "connected"
        assert "timestamp" in second


class TestSendMessageEndpoint:
    @pytest.mark.asyncio
    async def test_missing_recipient_400(self, fake_client: FakeClient) -> None:
        resp = await _post(_make_app(fake_client), {"message": "hi"})
        assert resp.status_code == 400
        assert resp.json()["success"] is False
        assert fake_client.sent == []

    @pytest.mark.asyncio
    async def test_missing_message_400(self, fake_client: FakeClient) -> None:
        resp = await _post(_make_app(fake_client), {"chatId": "1@c.us"})
        assert resp.status_code == 400
        assert fake_client.sent == []

    @pytest.mark.asyncio
    async def test_phone_normalized(self, fake_client: FakeClient) -> None:
        resp = await _post(_make_app(fake_client), {"phone": "123-456", "message": "hi"})
        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "message": "Message sent successfully",
            "recipient": "123456@c.us",
        }
        assert fake_client.sent == [("123456@c.us", "hi")]

    @pytest.mark.asyncio
    async def test_alternate_chat_id_normalized(self, fake_client: FakeClient) -> None:
        await _post(_make_app(fake_client), {"chatId": "999@lid", "message": "hi"})
        assert fake_client.sent == [("999@c.us", "hi")]

    @pytest.mark.asyncio
    async def test_send_failure_500(self, fake_client: FakeClient) -> None:
        fake_client.send_error = RuntimeError("not connected")
        resp = await _post(_make_app(fake_client), {"phone": "1", "message": "hi"})
        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "not connected"}

    @pytest.mark.asyncio
    async def test_non_json_body_is_missing_recipient(self, fake_client: FakeClient) -> None:
        resp = await _post(
            _make_app(fake_client),
            content=b"not json",
            headers={"content-type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Missing required field: phone or chatId"

    @pytest.mark.asyncio
    async def test_urlencoded_form_accepted(self, fake_client: FakeClient) -> None:
        resp = await _post(_make_app(fake_client), data={"phone": "555", "message": "hi"})
        assert resp.status_code == 200
        assert fake_client.sent == [("555@c.us", "hi")]

    @pytest.mark.asyncio
    async def test_stats_reflect_sends(self, fake_client: FakeClient) -> None:
        app = _make_app(fake_client)
        await _post(app, {"phone": "1", "message": "hi"})
        await _post(app, {"message": "hi"})
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            stats = (await client.get("/stats")).json()
        assert stats["send"] == {"sent": 1, "invalid": 1}


class TestApiToken:
    @pytest.mark.asyncio
    async def test_send_requires_token_when_configured(self, fake_client: FakeClient) -> None:
        app = _make_app(fake_client, api_token=TOKEN)
        resp = await _post(app, {"phone": "1", "message": "hi"})
        assert resp.status_code == 401
        assert fake_client.sent == []

    @pytest.mark.asyncio
    async def test_send_with_token(self, fake_client: FakeClient) -> None:
        app = _make_app(fake_client, api_token=TOKEN)
        resp = await _post(
            app, {"phone": "1", "message": "hi"},
            headers={"Authorization": f"Bearer {TOKEN}"},
        )
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_health_stays_public(self, fake_client: FakeClient) -> None:
        transport = ASGITransport(app=_make_app(fake_client, api_token=TOKEN))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get("/health")
        assert resp.status_code == 200


class TestBridgeWiring:
    def test_build_requires_client_configuration(self) -> None:
        with pytest.raises(ClientLoadError):
            build_bridge(BridgeConfig())

    def test_components_share_one_client(self, fake_client: FakeClient) -> None:
        bridge = build_bridge(BridgeConfig(), client=fake_client)
        assert bridge.client is fake_client
        assert bridge.forwarder._client is fake_client
        assert bridge.outbound._client is fake_client

    @pytest.mark.asyncio
    async def test_lifespan_starts_and_destroys_session(self, fake_client: FakeClient) -> None:
        bridge = build_bridge(BridgeConfig(), client=fake_client, on_fatal=MagicMock())
        app = create_bridge_app(bridge)
        async with app.router.lifespan_context(app):
            await bridge.supervisor.drain()
            assert fake_client.initialize_calls == 1
        assert fake_client.destroyed is True
        assert bridge.supervisor.state == SessionState.STOPPED

    @pytest.mark.asyncio
    async def test_inbound_event_relayed_end_to_end(self, tmp_path: Any) -> None:
        client = FakeClient(contacts={"999@lid": make_contact(id_serialized="999@lid")})
        config = BridgeConfig(
            webhook_url="http://hook.test/wa", audit_log_path=str(tmp_path / "audit.jsonl"),
        )
        bridge = build_bridge(config, client=client, on_fatal=MagicMock())

        mock_http = AsyncMock()
        mock_http.post.return_value = MagicMock(status_code=200, is_success=True)
        mock_http.__aenter__ = AsyncMock(return_value=mock_http)
        mock_http.__aexit__ = AsyncMock(return_value=False)

        with patch("src.webhook.relay.httpx.AsyncClient", return_value=mock_http):
            await client.emit(ClientEvent.MESSAGE, make_message(from_="999@lid", body="yo"))
            await client.emit(ClientEvent.MESSAGE, make_message(from_="status@broadcast"))
            await bridge.supervisor.drain()

        mock_http.post.assert_called_once()
        payload = mock_http.post.call_args[1]["json"]
        assert payload["from"] == "15551234567@c.us"
        assert payload["message"] == "yo"
        assert bridge.stats.snapshot()["relay"] == {"delivered": 1}
        assert (tmp_path / "audit.jsonl").exists()

    @pytest.mark.asyncio
    async def test_exit_process_destroys_client_before_exiting(
        self, fake_client: FakeClient,
    ) -> None:
        bridge = build_bridge(BridgeConfig(), client=fake_client)
        with patch("src.bridge.sys.exit") as exit_:
            await exit_process(bridge.supervisor, 1)
        assert fake_client.destroyed is True
        exit_.assert_called_once_with(1)

    @pytest.mark.asyncio
    async def test_default_fatal_handler_tears_down_session(
        self, fake_client: FakeClient,
    ) -> None:
        bridge = build_bridge(BridgeConfig(), client=fake_client)
        with patch("src.bridge.sys.exit") as exit_:
            await fake_client.emit(ClientEvent.AUTH_FAILURE, "bad session")
            for _ in range(3):
                await asyncio.sleep(0)
        assert fake_client.destroyed is True
        assert bridge.supervisor.state == SessionState.STOPPED
        exit_.assert_called_once_with(1)
