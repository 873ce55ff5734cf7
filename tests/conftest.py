"""pytest configuration and shared fixtures for PowerHub tests."""

import json
from uuid import uuid4

import pytest

from powerhub.events import ObserverNotifier
from powerhub.registry import AgentRegistry
from powerhub.transport.queue import QueueClosedError


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


class FakeChannel:
    """In-memory stand-in for an agent's outbound connection queue."""

    def __init__(self, conn_id: str | None = None):
        self.conn_id = conn_id or f"agent-{uuid4().hex[:12]}"
        self.sent: list[str] = []
        self.closed = False

    def put_nowait(self, message: str) -> None:
        if self.closed:
            raise QueueClosedError(self.conn_id)
        self.sent.append(message)

    @property
    def frames(self) -> list[dict]:
        return [json.loads(message) for message in self.sent]


class SnapshotRecorder:
    """Presence listener that keeps every snapshot it is given."""

    def __init__(self):
        self.snapshots = []

    def __call__(self, snapshot):
        self.snapshots.append(snapshot)


@pytest.fixture
def channel_factory():
    return FakeChannel


@pytest.fixture
def recorder():
    return SnapshotRecorder()


@pytest.fixture
def registry(recorder):
    return AgentRegistry(listener=recorder)


@pytest.fixture
def notifier():
    return ObserverNotifier(max_observers=10, max_queue_size=100)
