"""
Agent Registry

In-memory registry tracking every known agent, its presence and the
channel currently serving it. Single source of truth for presence.

All mutations run under one asyncio lock, so no two of them interleave.
Nothing awaits I/O while the lock is held: sends are plain enqueues on
the channel, and the presence listener is called synchronously. Callers
only ever receive AgentView copies, never the live records.

Why in-memory?
- Presence is meaningless across a restart: every agent reconnects
  and registers again with a new identity
- Low latency for dispatch decisions
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Callable
from uuid import uuid4

from powerhub.registry.agent import AgentRecord, AgentView, utcnow
from powerhub.registry.presence import PresenceState, can_transition, transition

if TYPE_CHECKING:
    from powerhub.transport.queue import Channel

logger = logging.getLogger(__name__)

PresenceListener = Callable[[list[AgentView]], None]


class AgentRegistry:
    """
    Manages agent registration, presence, and live target lookup.

    Thread-safe for async operations using an asyncio lock.
    Publishes a fresh snapshot to the presence listener after every
    presence change, from inside the lock, so listeners see snapshots
    in exactly the order the mutations happened.
    """

    def __init__(self, listener: PresenceListener | None = None):
        """
        Initialize the registry.

        Args:
            listener: Optional callable receiving the full snapshot after each
                presence change. Must not block or await.
        """
        self._listener = listener

        # Primary index: agent_id -> AgentRecord (insertion ordered)
        self._agents: dict[str, AgentRecord] = {}

        # Channel store: agent_id -> Channel, only for connected agents
        self._channels: dict[str, "Channel"] = {}

        # Serialization point for every mutation and resolution
        self._lock = asyncio.Lock()

    def _new_agent_id(self) -> str:
        agent_id = str(uuid4())
        while agent_id in self._agents:
            agent_id = str(uuid4())
        return agent_id

    def _snapshot(self) -> list[AgentView]:
        """Build a snapshot (must be called with lock held)."""
        return [agent.view() for agent in self._agents.values()]

    def _publish(self) -> None:
        """Hand the current snapshot to the listener (must be called with lock held)."""
        if self._listener is None:
            return
        try:
            self._listener(self._snapshot())
        except Exception as e:
            logger.error(f"Presence listener failed: {e}")

    async def register(self, hostname: str, address: str, channel: "Channel") -> str:
        """
        Register a newly connected agent.

        Every registration creates a new record with a new identity, even
        when the same host has registered before.

        Args:
            hostname: Hostname reported by the agent
            address: Address reported by the agent (or seen on its channel)
            channel: Channel serving the agent from now on

        Returns:
            The new agent_id
        """
        async with self._lock:
            agent_id = self._new_agent_id()
            now = utcnow()
            agent = AgentRecord(
                agent_id=agent_id,
                hostname=hostname,
                address=address,
                last_seen=now,
                registered_at=now,
                state=transition(PresenceState.UNREGISTERED, PresenceState.CONNECTED),
                conn_id=channel.conn_id,
            )
            self._agents[agent_id] = agent
            self._channels[agent_id] = channel

            logger.info(f"Agent registered: {hostname} ({agent_id}) on {channel.conn_id}")
            self._publish()
            return agent_id

    async def heartbeat(self, agent_id: str | None) -> bool:
        """
        Refresh an agent's last_seen timestamp.

        Heartbeats for unknown or already disconnected agents are dropped
        without error.

        Args:
            agent_id: Agent identifier (None for a channel that never registered)

        Returns:
            True if a connected agent was found and refreshed, False otherwise
        """
        async with self._lock:
            agent = self._agents.get(agent_id) if agent_id else None
            if agent is None or not can_transition(agent.state, PresenceState.CONNECTED):
                logger.debug(f"Heartbeat ignored for unknown agent: {agent_id}")
                return False
            agent.move_to(PresenceState.CONNECTED)
            agent.touch()
            return True

    async def mark_disconnected(self, agent_id: str) -> bool:
        """
        Mark an agent disconnected after its channel closed.

        Detaches the channel and refreshes last_seen. Idempotent.

        Args:
            agent_id: Agent identifier

        Returns:
            True if the agent changed state, False if unknown or already disconnected
        """
        async with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None or not can_transition(agent.state, PresenceState.DISCONNECTED):
                return False

            agent.move_to(PresenceState.DISCONNECTED)
            agent.touch()
            agent.conn_id = None
            self._channels.pop(agent_id, None)

            logger.info(f"Agent disconnected: {agent.hostname} ({agent_id})")
            self._publish()
            return True

    async def get(self, agent_id: str) -> AgentView | None:
        """Get a read-only view of an agent by ID."""
        async with self._lock:
            agent = self._agents.get(agent_id)
            return agent.view() if agent else None

    async def snapshot(self) -> list[AgentView]:
        """
        Get a consistent point-in-time view of every known agent.

        Returns:
            AgentViews in registration order
        """
        async with self._lock:
            return self._snapshot()

    async def purge_disconnected(self) -> int:
        """
        Remove every disconnected agent.

        Returns:
            Number of agents removed (0 is a valid result)
        """
        async with self._lock:
            purged = [
                agent for agent in self._agents.values()
                if can_transition(agent.state, PresenceState.PURGED)
            ]
            for agent in purged:
                agent.move_to(PresenceState.PURGED)
                del self._agents[agent.agent_id]

            if purged:
                logger.info(f"Cleared {len(purged)} offline agent(s)")
                self._publish()
            return len(purged)

    async def resolve_one(self, agent_id: str) -> tuple[AgentView, "Channel"] | None:
        """
        Resolve a single connected agent and its channel.

        Returns:
            (view, channel) or None if the agent is unknown or disconnected
        """
        async with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None or not agent.connected:
                return None
            return agent.view(), self._channels[agent_id]

    async def resolve(
        self,
        agent_ids: list[str] | None = None
    ) -> list[tuple[AgentView, "Channel"]]:
        """
        Resolve connected agents and their channels.

        Args:
            agent_ids: Agents to resolve (None = every connected agent).
                Unknown and disconnected ids are skipped; duplicates collapse.

        Returns:
            List of (view, channel) pairs
        """
        async with self._lock:
            if agent_ids is None:
                candidates = list(self._agents.values())
            else:
                candidates = [
                    self._agents[agent_id]
                    for agent_id in dict.fromkeys(agent_ids)
                    if agent_id in self._agents
                ]

            return [
                (agent.view(), self._channels[agent.agent_id])
                for agent in candidates
                if agent.connected
            ]

    @property
    def agent_count(self) -> int:
        """Number of known agents."""
        return len(self._agents)

    @property
    def connected_count(self) -> int:
        """Number of connected agents."""
        return sum(1 for a in self._agents.values() if a.connected)
