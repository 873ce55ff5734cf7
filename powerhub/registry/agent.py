"""
Agent Record Model

Represents a registered agent in the hub.
Contains identity, descriptive host information and presence state.
"""

from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict, Field

from powerhub.registry.presence import PresenceState, transition


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class AgentRecord(BaseModel):
    """
    Represents a registered agent in the hub.

    This is the live, mutable record owned by the AgentRegistry.
    It never leaves the registry; callers get AgentView copies.
    """

    # === Identity ===
    agent_id: str = Field(
        ...,
        description="Durable identifier assigned at registration, never reused"
    )

    # === Descriptive (immutable after creation) ===
    hostname: str = Field(
        ...,
        description="Hostname reported by the agent at registration"
    )
    address: str = Field(
        default="",
        description="Network address reported by the agent (or seen on its channel)"
    )

    # === Presence ===
    state: PresenceState = Field(
        default=PresenceState.CONNECTED,
        description="Current presence state"
    )
    last_seen: datetime = Field(
        default_factory=utcnow,
        description="Registration, last heartbeat, or disconnect timestamp"
    )
    registered_at: datetime = Field(
        default_factory=utcnow,
        description="When the agent registered"
    )

    # === Connection ===
    conn_id: str | None = Field(
        default=None,
        description="Channel currently serving this agent (None once disconnected)"
    )

    @property
    def connected(self) -> bool:
        return self.state == PresenceState.CONNECTED

    def touch(self) -> None:
        """
        Update last_seen to the current time.

        Always moves forward, even when the clock has not ticked since
        the previous update.
        """
        now = utcnow()
        if now <= self.last_seen:
            now = self.last_seen + timedelta(microseconds=1)
        self.last_seen = now

    def move_to(self, target: PresenceState) -> None:
        """Apply a presence transition, validated by the state machine."""
        self.state = transition(self.state, target)

    def view(self) -> "AgentView":
        """Return a read-only copy of this record."""
        return AgentView(
            agent_id=self.agent_id,
            hostname=self.hostname,
            address=self.address,
            connected=self.connected,
            last_seen=self.last_seen,
            registered_at=self.registered_at,
        )


class AgentView(BaseModel):
    """
    Point-in-time, read-only view of an agent record.

    Returned by registry lookups and snapshots, and published to observers.
    """

    model_config = ConfigDict(frozen=True)

    agent_id: str
    hostname: str
    address: str
    connected: bool
    last_seen: datetime
    registered_at: datetime

    def to_public_dict(self) -> dict:
        """Return the wire form used in agent listings and observer snapshots."""
        return {
            "id": self.agent_id,
            "hostname": self.hostname,
            "address": self.address,
            "connected": self.connected,
            "lastSeen": self.last_seen.isoformat(),
            "registeredAt": self.registered_at.isoformat(),
        }
