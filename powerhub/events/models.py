"""
Observer Event Models

Defines the events published to observers (dashboards):
- presenceSnapshot: the full agent listing, sent after every presence change
- commandResult: a command outcome reported by an agent

Snapshots are full resyncs rather than diffs. An observer replaces its
whole view on every snapshot, so a dropped or duplicated snapshot never
leaves it inconsistent.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from powerhub.protocol.envelope import CommandResultPayload
    from powerhub.registry.agent import AgentView


class ObserverEventType(str, Enum):
    """Categories of observer events."""
    PRESENCE_SNAPSHOT = "presenceSnapshot"
    COMMAND_RESULT = "commandResult"


class ObserverEvent(BaseModel):
    """An event delivered to every attached observer."""

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    event_type: ObserverEventType = Field(
        ...,
        description="Type of the event"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event was published"
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Event-specific structured data"
    )


def create_presence_snapshot(agents: list["AgentView"]) -> ObserverEvent:
    """Create a presenceSnapshot event from a registry snapshot."""
    return ObserverEvent(
        event_type=ObserverEventType.PRESENCE_SNAPSHOT,
        data={"agents": [agent.to_public_dict() for agent in agents]},
    )


def create_command_result(agent_id: str, result: "CommandResultPayload") -> ObserverEvent:
    """Create a commandResult event annotated with the originating agent."""
    return ObserverEvent(
        event_type=ObserverEventType.COMMAND_RESULT,
        data={
            "agentId": agent_id,
            "command": result.command,
            "success": result.success,
            "error": result.error,
        },
    )
