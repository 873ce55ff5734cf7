# Observer Events
# Real-time delivery of presence snapshots and command results

from powerhub.events.models import (
    ObserverEvent,
    ObserverEventType,
    create_command_result,
    create_presence_snapshot,
)
from powerhub.events.stream import (
    EventFilter,
    EventStream,
    EventSubscription,
)
from powerhub.events.notifier import ObserverNotifier

__all__ = [
    # Event Models
    "ObserverEvent",
    "ObserverEventType",
    "create_command_result",
    "create_presence_snapshot",
    # Event Stream
    "EventFilter",
    "EventStream",
    "EventSubscription",
    # Notifier
    "ObserverNotifier",
]
