"""
Event Stream Infrastructure

Provides the pub/sub mechanism behind observer delivery.

Design:
- EventStream: Core pub/sub infrastructure
- EventSubscription: Per-subscriber queue with filtering
- EventFilter: Configurable event filtering

Publishing is synchronous and never blocks: each matching subscription
gets the event via put_nowait, and a full subscription drops it. This
lets the registry publish from inside its serialization lock, which
keeps every subscriber's sequence in mutation order. All methods must
be called from the event loop thread.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from pydantic import BaseModel, Field

from powerhub.events.models import ObserverEvent, ObserverEventType

logger = logging.getLogger(__name__)


class EventFilter(BaseModel):
    """
    Filter configuration for event subscriptions.

    Empty/None values mean "match any".
    """
    event_types: set[ObserverEventType] | None = Field(
        default=None,
        description="Only these event types (None = all types)"
    )

    def matches(self, event: ObserverEvent) -> bool:
        """Check if an event matches this filter."""
        if self.event_types is not None:
            if event.event_type not in self.event_types:
                return False
        return True


class EventSubscription:
    """
    A single subscription to the event stream.

    Maintains a queue of events matching the subscription's filter.
    Supports async iteration for consuming events.
    """

    def __init__(
        self,
        subscription_id: str,
        filter: EventFilter | None = None,
        max_queue_size: int = 1000,
    ):
        """
        Initialize subscription.

        Args:
            subscription_id: Unique identifier for this subscription
            filter: Event filter (None = receive all events)
            max_queue_size: Maximum events to queue before dropping
        """
        self.subscription_id = subscription_id
        self.filter = filter or EventFilter()
        self._queue: asyncio.Queue[ObserverEvent | None] = asyncio.Queue(maxsize=max_queue_size)
        self._closed = False
        self._created_at = datetime.now(timezone.utc)
        self._events_received = 0
        self._events_dropped = 0

    @property
    def stats(self) -> dict[str, Any]:
        """Get subscription statistics."""
        return {
            "subscription_id": self.subscription_id,
            "created_at": self._created_at.isoformat(),
            "events_received": self._events_received,
            "events_dropped": self._events_dropped,
            "queue_size": self._queue.qsize(),
            "is_closed": self._closed,
        }

    def deliver(self, event: ObserverEvent) -> bool:
        """
        Deliver an event to this subscription.

        Returns:
            True if delivered, False if filtered out or dropped (queue full or closed)
        """
        if self._closed:
            return False

        if not self.filter.matches(event):
            return False

        try:
            self._queue.put_nowait(event)
            self._events_received += 1
            return True
        except asyncio.QueueFull:
            self._events_dropped += 1
            logger.warning(
                f"Event dropped for subscription {self.subscription_id}: queue full"
            )
            return False

    async def get(self, timeout: float | None = None) -> ObserverEvent | None:
        """
        Get the next event from the subscription.

        Args:
            timeout: Max seconds to wait (None = wait forever)

        Returns:
            Next event, or None if subscription closed or timeout
        """
        if self._closed and self._queue.empty():
            return None

        try:
            if timeout is not None:
                return await asyncio.wait_for(self._queue.get(), timeout=timeout)
            return await self._queue.get()
        except asyncio.TimeoutError:
            return None

    async def __aiter__(self) -> AsyncIterator[ObserverEvent]:
        """Async iterate over events until the subscription closes."""
        while True:
            event = await self.get()
            if event is None:
                break
            yield event

    def close(self) -> None:
        """Close the subscription."""
        self._closed = True
        # Signal end of stream
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass


class EventStream:
    """
    Central event stream for publishing and subscribing to events.

    Supports multiple subscribers with individual filters.
    """

    def __init__(self, max_subscribers: int = 1000):
        """
        Initialize the event stream.

        Args:
            max_subscribers: Maximum concurrent subscriptions
        """
        self._max_subscribers = max_subscribers
        self._subscriptions: dict[str, EventSubscription] = {}

        # Statistics
        self._events_published = 0
        self._events_delivered = 0

    @property
    def stats(self) -> dict[str, Any]:
        """Get stream statistics."""
        return {
            "subscriber_count": len(self._subscriptions),
            "events_published": self._events_published,
            "events_delivered": self._events_delivered,
        }

    def subscribe(
        self,
        subscription_id: str,
        filter: EventFilter | None = None,
        max_queue_size: int = 1000,
    ) -> EventSubscription:
        """
        Create a new subscription.

        Args:
            subscription_id: Unique identifier for the subscription
            filter: Event filter (None = receive all events)
            max_queue_size: Maximum events to queue

        Returns:
            The subscription object

        Raises:
            ValueError: If subscription_id already exists or max subscribers reached
        """
        if subscription_id in self._subscriptions:
            raise ValueError(f"Subscription {subscription_id} already exists")

        if len(self._subscriptions) >= self._max_subscribers:
            raise ValueError(f"Maximum subscribers ({self._max_subscribers}) reached")

        subscription = EventSubscription(
            subscription_id=subscription_id,
            filter=filter,
            max_queue_size=max_queue_size,
        )
        self._subscriptions[subscription_id] = subscription
        logger.debug(f"New subscription: {subscription_id}")
        return subscription

    def unsubscribe(self, subscription_id: str) -> bool:
        """
        Remove a subscription.

        Returns:
            True if removed, False if not found
        """
        subscription = self._subscriptions.pop(subscription_id, None)
        if subscription:
            subscription.close()
            logger.debug(f"Subscription removed: {subscription_id}")
            return True
        return False

    def publish(self, event: ObserverEvent) -> int:
        """
        Publish an event to all matching subscribers.

        Returns:
            Number of subscribers that received the event
        """
        self._events_published += 1
        delivered = 0

        for subscription in list(self._subscriptions.values()):
            if subscription.deliver(event):
                delivered += 1

        self._events_delivered += delivered
        return delivered

    def close_all(self) -> None:
        """Close all subscriptions."""
        for subscription in self._subscriptions.values():
            subscription.close()
        self._subscriptions.clear()
