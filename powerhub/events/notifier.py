"""
Observer Notifier

Publishes registry snapshots and relayed command results to every
attached observer.

Responsibilities:
- Maintain the event stream
- Manage one subscription per observer connection
- Convert snapshots and results into observer events

Fire-and-forget: no acknowledgement, no retry. Ordering is only
guaranteed relative to the mutation that triggered each event, which
holds because the registry calls broadcast_snapshot from inside its
serialization lock. Two observers may still receive the same sequence
at different wall-clock times.
"""

import logging
from typing import TYPE_CHECKING, Any

from powerhub.events.models import (
    ObserverEventType,
    create_command_result,
    create_presence_snapshot,
)
from powerhub.events.stream import EventFilter, EventStream, EventSubscription

if TYPE_CHECKING:
    from powerhub.protocol.envelope import CommandResultPayload
    from powerhub.registry.agent import AgentView

logger = logging.getLogger(__name__)


class ObserverNotifier:
    """Fan-out of presence snapshots and command results to observers."""

    def __init__(
        self,
        max_observers: int = 1000,
        max_queue_size: int = 1000,
    ):
        """
        Initialize the notifier.

        Args:
            max_observers: Maximum concurrently attached observers
            max_queue_size: Max undelivered events per observer before dropping
        """
        self._stream = EventStream(max_subscribers=max_observers)
        self._max_queue_size = max_queue_size

    @property
    def observer_count(self) -> int:
        return self._stream.stats["subscriber_count"]

    @property
    def stats(self) -> dict[str, Any]:
        """Get notifier statistics."""
        return self._stream.stats

    # =========================================================================
    # Observer attachment
    # =========================================================================

    def attach(
        self,
        conn_id: str,
        snapshot: list["AgentView"],
        event_types: set[ObserverEventType] | None = None,
    ) -> EventSubscription:
        """
        Attach an observer connection.

        The subscription starts with the given snapshot, so the observer
        has a full view before the first broadcast arrives. Call this right
        after reading the snapshot, without awaiting in between, so no
        presence change can slip past the new observer.

        Args:
            conn_id: Observer connection identifier
            snapshot: Current registry snapshot
            event_types: Only deliver these event types (None = all)

        Returns:
            EventSubscription for consuming events

        Raises:
            ValueError: If conn_id is already attached or too many observers are attached
        """
        filter = EventFilter(event_types=event_types) if event_types else None
        subscription = self._stream.subscribe(
            subscription_id=conn_id,
            filter=filter,
            max_queue_size=self._max_queue_size,
        )
        subscription.deliver(create_presence_snapshot(snapshot))
        logger.info(f"Observer attached: {conn_id}")
        return subscription

    def detach(self, conn_id: str) -> bool:
        """Detach an observer and close its subscription."""
        removed = self._stream.unsubscribe(conn_id)
        if removed:
            logger.info(f"Observer detached: {conn_id}")
        return removed

    # =========================================================================
    # Publishing
    # =========================================================================

    def broadcast_snapshot(self, snapshot: list["AgentView"]) -> int:
        """
        Send a full presence snapshot to every observer.

        Returns:
            Number of observers that received it
        """
        delivered = self._stream.publish(create_presence_snapshot(snapshot))
        logger.debug(f"Snapshot of {len(snapshot)} agent(s) sent to {delivered} observer(s)")
        return delivered

    def relay_command_result(self, agent_id: str, result: "CommandResultPayload") -> int:
        """
        Forward a command result, annotated with the reporting agent, to every observer.

        Returns:
            Number of observers that received it
        """
        return self._stream.publish(create_command_result(agent_id, result))

    def close(self) -> None:
        """Close all observer subscriptions."""
        self._stream.close_all()
