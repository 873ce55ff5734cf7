"""Tests for the presence state machine and agent records."""

from datetime import timedelta

import pytest

from powerhub.errors import InvalidTransitionError
from powerhub.registry import AgentRecord, PresenceState, can_transition, transition
from powerhub.registry.agent import utcnow


class TestPresenceTransitions:
    def test_register_connects(self):
        assert transition(PresenceState.UNREGISTERED, PresenceState.CONNECTED) == PresenceState.CONNECTED

    def test_heartbeat_keeps_connected(self):
        assert can_transition(PresenceState.CONNECTED, PresenceState.CONNECTED)

    def test_disconnect_then_purge(self):
        state = transition(PresenceState.CONNECTED, PresenceState.DISCONNECTED)
        assert transition(state, PresenceState.PURGED) == PresenceState.PURGED

    def test_no_reconnect_after_disconnect(self):
        assert not can_transition(PresenceState.DISCONNECTED, PresenceState.CONNECTED)
        with pytest.raises(InvalidTransitionError) as exc:
            transition(PresenceState.DISCONNECTED, PresenceState.CONNECTED)
        assert exc.value.code == "INVALID_TRANSITION"

    def test_connected_agent_cannot_be_purged(self):
        assert not can_transition(PresenceState.CONNECTED, PresenceState.PURGED)

    def test_purged_is_terminal(self):
        for target in PresenceState:
            assert not can_transition(PresenceState.PURGED, target)


class TestAgentRecord:
    def test_touch_moves_strictly_forward(self):
        record = AgentRecord(agent_id="a", hostname="host")
        record.last_seen = utcnow() + timedelta(hours=1)
        before = record.last_seen
        record.touch()
        assert record.last_seen > before

    def test_view_is_frozen_copy(self):
        record = AgentRecord(agent_id="a", hostname="host", address="10.0.0.5")
        view = record.view()
        record.move_to(PresenceState.DISCONNECTED)
        assert view.connected is True
        with pytest.raises(Exception):
            view.hostname = "other"

    def test_public_dict(self):
        record = AgentRecord(agent_id="a", hostname="host", address="10.0.0.5")
        data = record.view().to_public_dict()
        assert data["id"] == "a"
        assert data["hostname"] == "host"
        assert data["address"] == "10.0.0.5"
        assert data["connected"] is True
        assert data["lastSeen"].endswith("+00:00")
        assert "registeredAt" in data
