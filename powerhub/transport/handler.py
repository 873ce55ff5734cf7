"""
WebSocket Handler

The channel layer of the hub. Two kinds of connections arrive here:

Agents (/ws/agent), using the fixed envelope format:
- register -> registered
- heartbeat (silent)
- commandResult -> relayed to observers
- the socket closing marks the agent disconnected

Observers (/ws/observer):
- receive the current snapshot on attach, then every presenceSnapshot
  and commandResult event
- anything an observer sends is ignored

A malformed frame is answered with an error frame and dropped; the
connection stays open. Frames from a channel that has not registered
yet are treated as coming from an unknown agent and ignored.
"""

from __future__ import annotations

import asyncio
import logging
from uuid import uuid4

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from powerhub.events import EventSubscription, ObserverEventType, ObserverNotifier
from powerhub.protocol.envelope import (
    CommandResultPayload,
    MessageEnvelope,
    MessageType,
    RegisterPayload,
    create_error,
    create_registered,
)
from powerhub.registry import AgentRegistry
from powerhub.transport.queue import (
    ConnectionQueue,
    ConnectionQueueManager,
    QueueClosedError,
    QueueFullError,
)

logger = logging.getLogger(__name__)


class WebSocketHandler:
    """
    Handles agent and observer WebSocket connections.

    Each connection runs its own receive loop; all state changes go
    through the registry, which serializes them.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        notifier: ObserverNotifier,
        queue_manager: ConnectionQueueManager | None = None,
    ):
        """
        Initialize the handler.

        Args:
            registry: Agent registry for registration/presence
            notifier: Observer notifier for snapshots and command results
            queue_manager: Per-connection outbound queue manager
        """
        self._registry = registry
        self._notifier = notifier
        self._queues = queue_manager or ConnectionQueueManager(max_queue_size=200)

    # =========================================================================
    # Agent connections
    # =========================================================================

    async def handle_agent(self, websocket: WebSocket) -> None:
        """
        Handle an agent connection lifecycle.

        The agent becomes known once it sends register; closing the socket
        marks it disconnected.

        Args:
            websocket: The WebSocket connection
        """
        await websocket.accept()

        conn_id = f"agent-{uuid4().hex[:12]}"
        channel = await self._queues.get_or_create(conn_id, websocket.send_text)
        agent_id: str | None = None

        try:
            while True:
                envelope = await self._receive_envelope(websocket, channel)
                if envelope is None:
                    continue

                agent_id = await self._handle_message(websocket, channel, agent_id, envelope)

        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected: {conn_id} ({agent_id or 'unregistered'})")

        except Exception as e:
            logger.error(f"WebSocket error on {conn_id}: {e}")

        finally:
            if agent_id:
                await self._registry.mark_disconnected(agent_id)
            await self._queues.remove(conn_id)

    async def _receive_envelope(
        self,
        websocket: WebSocket,
        channel: ConnectionQueue
    ) -> MessageEnvelope | None:
        """
        Receive and parse a message envelope from WebSocket.

        Returns:
            Parsed envelope, or None if the frame was malformed and dropped

        Raises:
            WebSocketDisconnect: If the connection closed
        """
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", 1000))

        data = message.get("text")
        if data is None and message.get("bytes") is not None:
            data = message["bytes"].decode("utf-8", errors="replace")

        try:
            return MessageEnvelope.model_validate_json(data or "")
        except ValidationError as e:
            logger.warning(f"Invalid message format on {channel.conn_id}: {e}")
            self._send(
                channel,
                create_error("INVALID_ENVELOPE", f"Message validation failed: {e}")
            )
            return None

    def _send(self, channel: ConnectionQueue, envelope: MessageEnvelope) -> bool:
        """Enqueue an envelope on an agent channel."""
        try:
            channel.put_nowait(envelope.model_dump_json())
            return True
        except (QueueClosedError, QueueFullError) as e:
            logger.warning(f"Error sending message: {e}")
            return False

    async def _handle_message(
        self,
        websocket: WebSocket,
        channel: ConnectionQueue,
        agent_id: str | None,
        envelope: MessageEnvelope
    ) -> str | None:
        """
        Route a message to the appropriate handler.

        Returns:
            The agent_id now bound to this channel (changes on register)
        """
        handlers = {
            MessageType.REGISTER: self._handle_register,
            MessageType.HEARTBEAT: self._handle_heartbeat,
            MessageType.COMMAND_RESULT: self._handle_command_result,
        }

        handler = handlers.get(envelope.message_type)
        if handler:
            return await handler(websocket, channel, agent_id, envelope)

        logger.warning(f"Unsupported message type: {envelope.message_type.value}")
        self._send(
            channel,
            create_error(
                "UNSUPPORTED_MESSAGE_TYPE",
                f"Message type {envelope.message_type.value} not supported"
            )
        )
        return agent_id

    async def _handle_register(
        self,
        websocket: WebSocket,
        channel: ConnectionQueue,
        agent_id: str | None,
        envelope: MessageEnvelope
    ) -> str | None:
        """
        Handle register message.

        Payload expected:
        - hostname: str
        - address (or legacy ip): str (optional, defaults to the peer address)
        """
        try:
            payload = RegisterPayload.model_validate(envelope.payload)
        except ValidationError as e:
            logger.warning(f"Registration rejected on {channel.conn_id}: {e}")
            self._send(channel, create_error("INVALID_PAYLOAD", f"Registration failed: {e}"))
            return agent_id

        if agent_id:
            # Registering again on the same channel retires the previous identity
            await self._registry.mark_disconnected(agent_id)

        address = payload.address or (websocket.client.host if websocket.client else "")
        new_agent_id = await self._registry.register(payload.hostname, address, channel)

        self._send(channel, create_registered(new_agent_id))
        return new_agent_id

    async def _handle_heartbeat(
        self,
        websocket: WebSocket,
        channel: ConnectionQueue,
        agent_id: str | None,
        envelope: MessageEnvelope
    ) -> str | None:
        """Handle heartbeat message."""
        await self._registry.heartbeat(agent_id)
        return agent_id

    async def _handle_command_result(
        self,
        websocket: WebSocket,
        channel: ConnectionQueue,
        agent_id: str | None,
        envelope: MessageEnvelope
    ) -> str | None:
        """
        Handle commandResult message.

        Payload expected:
        - command: str
        - success: bool
        - error: str (optional)
        """
        if agent_id is None or await self._registry.get(agent_id) is None:
            logger.debug(f"Command result ignored from unregistered channel {channel.conn_id}")
            return agent_id

        try:
            result = CommandResultPayload.model_validate(envelope.payload)
        except ValidationError as e:
            logger.warning(f"Invalid command result from {agent_id}: {e}")
            self._send(channel, create_error("INVALID_PAYLOAD", f"Invalid command result: {e}"))
            return agent_id

        logger.info(
            f"Command result from {agent_id}: {result.command} "
            f"{'succeeded' if result.success else f'failed ({result.error})'}"
        )
        self._notifier.relay_command_result(agent_id, result)
        return agent_id

    # =========================================================================
    # Observer connections
    # =========================================================================

    async def handle_observer(
        self,
        websocket: WebSocket,
        event_types: set[ObserverEventType] | None = None,
    ) -> None:
        """
        Handle an observer connection lifecycle.

        Args:
            websocket: The WebSocket connection
            event_types: Only deliver these event types (None = all)
        """
        await websocket.accept()

        conn_id = f"observer-{uuid4().hex[:12]}"

        # No await between reading the snapshot and attaching
        snapshot = await self._registry.snapshot()
        try:
            subscription = self._notifier.attach(conn_id, snapshot, event_types)
        except ValueError as e:
            logger.warning(f"Observer rejected: {e}")
            await websocket.close(code=1013, reason=str(e))
            return

        delivery = asyncio.create_task(
            self._deliver_events(websocket, subscription),
            name=f"observer_delivery_{conn_id}"
        )

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break

        except WebSocketDisconnect:
            pass

        except Exception as e:
            logger.error(f"Observer error on {conn_id}: {e}")

        finally:
            self._notifier.detach(conn_id)
            delivery.cancel()
            try:
                await delivery
            except asyncio.CancelledError:
                pass

    async def _deliver_events(self, websocket: WebSocket, subscription: EventSubscription) -> None:
        """Drain an observer subscription into its WebSocket."""
        async for event in subscription:
            try:
                await websocket.send_text(event.model_dump_json())
            except Exception as e:
                logger.warning(f"Observer delivery failed for {subscription.subscription_id}: {e}")
                break
