"""Tests for the agent WebSocket channel handler."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from powerhub.events import ObserverEventType
from powerhub.transport.handler import WebSocketHandler

from conftest import FakeChannel


def _frame(message_type: str, payload: dict | None = None) -> dict:
    return {
        "type": "websocket.receive",
        "text": json.dumps({"message_type": message_type, "payload": payload or {}}),
    }


DISCONNECT = {"type": "websocket.disconnect", "code": 1000}


def _websocket(*messages, host: str = "192.168.1.9") -> AsyncMock:
    websocket = AsyncMock()
    websocket.client = SimpleNamespace(host=host, port=50000)
    websocket.receive.side_effect = [*messages, DISCONNECT]
    return websocket


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def handler(registry, notifier, channel):
    queues = MagicMock()
    queues.get_or_create = AsyncMock(return_value=channel)
    queues.remove = AsyncMock()
    return WebSocketHandler(registry=registry, notifier=notifier, queue_manager=queues)


class TestAgentRegistration:
    @pytest.mark.asyncio
    async def test_register_replies_with_agent_id(self, handler, registry, channel):
        websocket = _websocket(_frame("register", {"hostname": "alpha", "address": "10.0.0.1"}))

        await handler.handle_agent(websocket)

        websocket.accept.assert_awaited_once()
        reply = channel.frames[0]
        assert reply["message_type"] == "registered"
        view = await registry.get(reply["payload"]["agentId"])
        assert view.hostname == "alpha"
        assert view.address == "10.0.0.1"

    @pytest.mark.asyncio
    async def test_close_marks_agent_disconnected(self, handler, registry, channel):
        await handler.handle_agent(_websocket(_frame("register", {"hostname": "alpha"})))

        agent_id = channel.frames[0]["payload"]["agentId"]
        assert (await registry.get(agent_id)).connected is False

    @pytest.mark.asyncio
    async def test_address_falls_back_to_peer(self, handler, registry, channel):
        await handler.handle_agent(_websocket(_frame("register", {"hostname": "alpha"})))

        view = await registry.get(channel.frames[0]["payload"]["agentId"])
        assert view.address == "192.168.1.9"

    @pytest.mark.asyncio
    async def test_legacy_ip_field(self, handler, registry, channel):
        await handler.handle_agent(
            _websocket(_frame("register", {"hostname": "alpha", "ip": "172.16.0.4"}))
        )

        view = await registry.get(channel.frames[0]["payload"]["agentId"])
        assert view.address == "172.16.0.4"

    @pytest.mark.asyncio
    async def test_second_register_retires_first_identity(self, handler, registry, channel):
        await handler.handle_agent(_websocket(
            _frame("register", {"hostname": "alpha"}),
            _frame("register", {"hostname": "alpha-renamed"}),
        ))

        first, second = [f["payload"]["agentId"] for f in channel.frames]
        assert first != second
        snapshot = await registry.snapshot()
        assert [(a.hostname, a.connected) for a in snapshot] == [
            ("alpha", False),
            ("alpha-renamed", False),
        ]

    @pytest.mark.asyncio
    async def test_register_without_hostname(self, handler, registry, channel):
        await handler.handle_agent(_websocket(_frame("register", {"address": "10.0.0.1"})))

        assert channel.frames[0]["message_type"] == "error"
        assert channel.frames[0]["payload"]["code"] == "INVALID_PAYLOAD"
        assert registry.agent_count == 0


class TestAgentEvents:
    @pytest.mark.asyncio
    async def test_events_before_register_are_ignored(self, handler, registry, notifier, channel):
        subscription = notifier.attach("obs-1", [])
        await subscription.get(timeout=1)

        await handler.handle_agent(_websocket(
            _frame("heartbeat"),
            _frame("commandResult", {"command": "shutdown", "success": True}),
        ))

        assert channel.sent == []
        assert registry.agent_count == 0
        assert await subscription.get(timeout=0.05) is None

    @pytest.mark.asyncio
    async def test_heartbeat_is_silent(self, handler, registry, recorder, channel):
        await handler.handle_agent(_websocket(
            _frame("register", {"hostname": "alpha"}),
            _frame("heartbeat"),
        ))

        # register and disconnect publish; the heartbeat does not
        assert len(recorder.snapshots) == 2
        assert recorder.snapshots[-1][0].last_seen > recorder.snapshots[0][0].last_seen
        assert [f["message_type"] for f in channel.frames] == ["registered"]

    @pytest.mark.asyncio
    async def test_command_result_is_relayed(self, handler, notifier, channel):
        subscription = notifier.attach(
            "obs-1", [], event_types={ObserverEventType.COMMAND_RESULT}
        )

        await handler.handle_agent(_websocket(
            _frame("register", {"hostname": "alpha"}),
            _frame("commandResult", {"command": "reboot", "success": False, "error": "busy"}),
        ))

        event = await subscription.get(timeout=1)
        assert event.data == {
            "agentId": channel.frames[0]["payload"]["agentId"],
            "command": "reboot",
            "success": False,
            "error": "busy",
        }


class TestMalformedFrames:
    @pytest.mark.asyncio
    async def test_malformed_frame_keeps_channel_open(self, handler, registry, channel):
        await handler.handle_agent(_websocket(
            {"type": "websocket.receive", "text": "not json"},
            {"type": "websocket.receive", "text": json.dumps({"message_type": "dance"})},
            _frame("register", {"hostname": "alpha"}),
        ))

        types = [f["message_type"] for f in channel.frames]
        assert types == ["error", "error", "registered"]
        assert channel.frames[0]["payload"]["code"] == "INVALID_ENVELOPE"
        assert registry.agent_count == 1

    @pytest.mark.asyncio
    async def test_hub_only_message_type_is_rejected(self, handler, channel):
        await handler.handle_agent(_websocket(_frame("shutdown", {"delay": 0})))

        assert channel.frames[0]["payload"]["code"] == "UNSUPPORTED_MESSAGE_TYPE"

    @pytest.mark.asyncio
    async def test_binary_frame_is_decoded(self, handler, registry, channel):
        body = json.dumps({"message_type": "register", "payload": {"hostname": "alpha"}})
        await handler.handle_agent(_websocket({"type": "websocket.receive", "bytes": body.encode()}))

        assert channel.frames[0]["message_type"] == "registered"

    @pytest.mark.asyncio
    async def test_unexpected_error_still_disconnects(self, handler, registry, channel):
        websocket = _websocket(_frame("register", {"hostname": "alpha"}))
        websocket.receive.side_effect = [
            _frame("register", {"hostname": "alpha"}),
            RuntimeError("transport exploded"),
        ]

        await handler.handle_agent(websocket)

        snapshot = await registry.snapshot()
        assert snapshot[0].connected is False
