"""
Tests for tenant notifications: local fan-out, the notify helper and the websocket handshake.
"""

from __future__ import annotations

import asyncio
from typing import List

import pytest
from starlette.websockets import WebSocketDisconnect

import auth
import redis_manager
from redis_manager import TenantNotifier, notify_tenant
from routers import notifications

WS = "/api/v1/notifications/ws"


class FakeSocket:
    def __init__(self, broken: bool = False) -> None:
        self.accepted = False
        self.sent: List[dict] = []
        self.broken = broken

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, message: dict) -> None:
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(message)


class TestTenantNotifier:
    def test_local_fan_out_per_tenant(self) -> None:
        notifier = TenantNotifier()
        a, b, other = FakeSocket(), FakeSocket(), FakeSocket()

        async def scenario():
            await notifier.connect(a, "t1")
            await notifier.connect(b, "t1")
            await notifier.connect(other, "t2")
            await notifier.publish("t1", {"event": "team.joined"})

        asyncio.run(scenario())

        assert a.accepted
        assert a.sent == b.sent == [{"event": "team.joined"}]
        assert other.sent == []

    def test_broken_socket_dropped(self) -> None:
        notifier = TenantNotifier()
        good, bad = FakeSocket(), FakeSocket(broken=True)

        async def scenario():
            await notifier.connect(good, "t1")
            await notifier.connect(bad, "t1")
            await notifier.publish("t1", {"event": "x"})

        asyncio.run(scenario())

        assert notifier.sockets["t1"] == {good}
        assert good.sent == [{"event": "x"}]

    def test_disconnect_forgets_tenant(self) -> None:
        notifier = TenantNotifier()
        socket = FakeSocket()
        asyncio.run(notifier.connect(socket, "t1"))

        notifier.disconnect(socket, "t1")

        assert "t1" not in notifier.sockets


class TestNotifyTenant:
    def test_noop_before_startup(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(redis_manager, "notifier", None)
        asyncio.run(notify_tenant("t1", "appointment.created", {"appointment_id": "a1"}))

    def test_envelope(self, monkeypatch: pytest.MonkeyPatch) -> None:
        notifier = TenantNotifier()
        socket = FakeSocket()
        monkeypatch.setattr(redis_manager, "notifier", notifier)

        async def scenario():
            await notifier.connect(socket, "t1")
            await notify_tenant("t1", "appointment.status", {"status": "ready"})

        asyncio.run(scenario())

        message = socket.sent[0]
        assert message["event"] == "appointment.status"
        assert message["payload"] == {"status": "ready"}
        assert message["timestamp"].endswith("Z")


class TestWebsocket:
    @pytest.fixture
    def local_notifier(self, monkeypatch: pytest.MonkeyPatch) -> TenantNotifier:
        notifier = TenantNotifier()

        async def get_notifier():
            return notifier

        monkeypatch.setattr(notifications, "get_notifier", get_notifier)
        return notifier

    def test_missing_token(self, client) -> None:
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(WS):
                pass
        assert exc.value.code == 4001

    def test_invalid_token(self, client, monkeypatch: pytest.MonkeyPatch) -> None:
        def reject(token):
            raise ValueError("bad token")

        monkeypatch.setattr(auth, "verify_token", reject)
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(f"{WS}?token=nope"):
                pass
        assert exc.value.code == 4001

    def test_non_member(self, client, make, monkeypatch: pytest.MonkeyPatch) -> None:
        make.member(None, "user-ana", role="tutor")
        monkeypatch.setattr(auth, "verify_token", lambda token: {"uid": "user-ana"})
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(f"{WS}?token=ok"):
                pass
        assert exc.value.code == 4003

    def test_member_ping(self, client, shop, local_notifier, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(auth, "verify_token", lambda token: {"uid": "user-ana"})

        with client.websocket_connect(f"{WS}?token=ok") as ws:
            ws.send_text("ping")
            assert ws.receive_json() == {"event": "pong"}
            assert shop.id in local_notifier.sockets
