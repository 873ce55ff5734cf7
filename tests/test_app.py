"""End-to-end tests for the REST surface and WebSocket endpoints."""

import pytest
from fastapi.testclient import TestClient
from fastapi import WebSocketDisconnect

from powerhub.transport.app import app


def _register(hostname: str, **extra) -> dict:
    return {"message_type": "register", "payload": {"hostname": hostname, **extra}}


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


class TestRestSurface:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["agents"] == 0

    def test_health_reports_observer_traffic(self, client):
        with client.websocket_connect("/ws/observer") as observer:
            observer.receive_json()
            with client.websocket_connect("/ws/agent") as agent:
                agent.send_json(_register("alpha"))
                agent.receive_json()
                observer.receive_json()

                health = client.get("/health").json()

        assert health["connected"] == 1
        assert health["observers"] == 1
        assert health["observer_events"]["subscriber_count"] == 1
        assert health["observer_events"]["events_published"] >= 1
        assert health["observer_events"]["events_delivered"] >= 1

    def test_list_agents_empty(self, client):
        assert client.get("/api/agents").json() == []

    @pytest.mark.parametrize("action", ["shutdown", "reboot", "cancel"])
    def test_unknown_agent_is_404(self, client, action):
        response = client.post(f"/api/agents/ghost/{action}")

        assert response.status_code == 404
        assert response.json() == {
            "error": "Agent ghost not found or not connected",
            "code": "TARGET_NOT_FOUND",
        }

    def test_broadcast_without_message_is_400(self, client):
        response = client.post("/api/broadcast", json={"agentIds": []})

        assert response.status_code == 400
        assert response.json() == {"error": "Message is required", "code": "INVALID_PAYLOAD"}

    def test_broadcast_with_no_agents(self, client):
        response = client.post("/api/broadcast", json={"message": "hello"})

        assert response.status_code == 200
        assert response.json() == {"message": "Broadcast sent to 0 agent(s)", "count": 0, "targets": []}

    def test_clear_offline_with_nothing_to_clear(self, client):
        response = client.post("/api/clear-offline")
        assert response.json() == {"message": "No offline agents to clear", "clearedCount": 0}


class TestAgentCommands:
    def test_shutdown_reaches_agent(self, client):
        with client.websocket_connect("/ws/agent") as agent:
            agent.send_json(_register("alpha", address="10.0.0.1"))
            agent_id = agent.receive_json()["payload"]["agentId"]

            response = client.post(f"/api/agents/{agent_id}/shutdown", json={"delay": 60})

            assert response.status_code == 200
            assert response.json() == {"message": "Shutdown command sent to alpha", "hostname": "alpha"}
            frame = agent.receive_json()
            assert frame["message_type"] == "shutdown"
            assert frame["payload"] == {"delay": 60}

    def test_reboot_and_cancel_without_body(self, client):
        with client.websocket_connect("/ws/agent") as agent:
            agent.send_json(_register("alpha"))
            agent_id = agent.receive_json()["payload"]["agentId"]

            assert client.post(f"/api/agents/{agent_id}/reboot").status_code == 200
            assert agent.receive_json()["payload"] == {"delay": 0}

            response = client.post(f"/api/agents/{agent_id}/cancel")
            assert response.json()["message"] == "Cancel command sent to alpha"
            assert agent.receive_json()["message_type"] == "cancel"

    def test_negative_delay_is_400(self, client):
        with client.websocket_connect("/ws/agent") as agent:
            agent.send_json(_register("alpha"))
            agent_id = agent.receive_json()["payload"]["agentId"]

            response = client.post(f"/api/agents/{agent_id}/shutdown", json={"delay": -1})

            assert response.status_code == 400
            assert response.json()["code"] == "INVALID_PAYLOAD"

    def test_broadcast_to_selected_agents(self, client):
        with client.websocket_connect("/ws/agent") as alpha, \
                client.websocket_connect("/ws/agent") as beta:
            alpha.send_json(_register("alpha"))
            alpha_id = alpha.receive_json()["payload"]["agentId"]
            beta.send_json(_register("beta"))
            beta.receive_json()

            response = client.post(
                "/api/broadcast",
                json={"message": "patching tonight", "agentIds": [alpha_id, "ghost"]},
            )

            assert response.json() == {
                "message": "Broadcast sent to 1 agent(s)",
                "count": 1,
                "targets": ["alpha"],
            }
            frame = alpha.receive_json()
            assert frame["message_type"] == "broadcastMessage"
            assert frame["payload"] == {"text": "patching tonight"}

            response = client.post("/api/broadcast", json={"message": "everyone"})
            assert sorted(response.json()["targets"]) == ["alpha", "beta"]

    def test_peer_address_is_used_when_not_reported(self, client):
        with client.websocket_connect("/ws/agent") as agent:
            agent.send_json(_register("alpha"))
            agent.receive_json()

            agents = client.get("/api/agents").json()
            assert agents[0]["hostname"] == "alpha"
            assert agents[0]["address"] == "testclient"
            assert agents[0]["connected"] is True


class TestObserverChannel:
    def test_full_agent_lifecycle(self, client):
        with client.websocket_connect("/ws/observer") as observer:
            initial = observer.receive_json()
            assert initial["event_type"] == "presenceSnapshot"
            assert initial["data"]["agents"] == []

            with client.websocket_connect("/ws/agent") as agent:
                agent.send_json(_register("alpha"))
                agent_id = agent.receive_json()["payload"]["agentId"]

                online = observer.receive_json()
                assert online["data"]["agents"][0]["id"] == agent_id
                assert online["data"]["agents"][0]["connected"] is True

                agent.send_json({
                    "message_type": "commandResult",
                    "payload": {"command": "shutdown", "success": True},
                })
                result = observer.receive_json()
                assert result["event_type"] == "commandResult"
                assert result["data"] == {
                    "agentId": agent_id,
                    "command": "shutdown",
                    "success": True,
                    "error": None,
                }

            offline = observer.receive_json()
            assert offline["data"]["agents"][0]["connected"] is False

            # The agent is gone, so single-target commands fail
            assert client.post(f"/api/agents/{agent_id}/shutdown").status_code == 404

            response = client.post("/api/clear-offline")
            assert response.json() == {
                "message": "Successfully cleared 1 offline agent(s)",
                "clearedCount": 1,
            }
            purged = observer.receive_json()
            assert purged["data"]["agents"] == []

    def test_late_observer_gets_current_state(self, client):
        with client.websocket_connect("/ws/agent") as agent:
            agent.send_json(_register("alpha"))
            agent.receive_json()

            with client.websocket_connect("/ws/observer") as observer:
                snapshot = observer.receive_json()
                assert [a["hostname"] for a in snapshot["data"]["agents"]] == ["alpha"]

    def test_malformed_agent_frame_is_answered(self, client):
        with client.websocket_connect("/ws/agent") as agent:
            agent.send_text("{broken")
            error = agent.receive_json()
            assert error["message_type"] == "error"

            agent.send_json(_register("alpha"))
            assert agent.receive_json()["message_type"] == "registered"

    @pytest.mark.parametrize("events", ["bogus", "commandResult,bogus", "presencesnapshot"])
    def test_unknown_event_filter_is_rejected(self, client, events):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(f"/ws/observer?events={events}") as observer:
                observer.receive_json()

        assert exc.value.code == 1008
        assert client.get("/health").json()["observers"] == 0

    def test_known_event_filter(self, client):
        with client.websocket_connect("/ws/observer?events=presenceSnapshot") as observer:
            snapshot = observer.receive_json()
            assert snapshot["event_type"] == "presenceSnapshot"
