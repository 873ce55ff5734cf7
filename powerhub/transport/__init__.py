# Transport Layer
# Handles WebSocket connections and message serialization/deserialization
# The FastAPI app lives in powerhub.transport.app (imported by path to keep
# this package free of import cycles with the core)

from powerhub.transport.queue import (
    Channel,
    ConnectionQueue,
    ConnectionQueueManager,
    QueueClosedError,
    QueueFullError,
)

__all__ = [
    "Channel",
    "ConnectionQueue",
    "ConnectionQueueManager",
    "QueueClosedError",
    "QueueFullError",
]
