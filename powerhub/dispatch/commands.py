"""
Commands and Selectors

A Command is what to send; a Selector is who to send it to.

Selectors:
- SingleId: exactly one agent, strict (unknown or offline is an error)
- IdSet: a batch of agents, lenient (unknown ids are skipped)
- AllConnected: every agent connected at the moment of dispatch
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from pydantic import BaseModel, Field

from powerhub.errors import InvalidPayloadError
from powerhub.protocol.envelope import (
    MessageEnvelope,
    create_broadcast_message,
    create_cancel,
    create_reboot,
    create_shutdown,
)


class CommandKind(str, Enum):
    """Administrative actions an agent understands."""
    SHUTDOWN = "shutdown"
    REBOOT = "reboot"
    CANCEL = "cancel"  # Abort a pending delayed shutdown/reboot
    MESSAGE = "message"


class Command(BaseModel):
    """An administrative command addressed to one or more agents."""

    kind: CommandKind
    delay_seconds: int = Field(
        default=0,
        description="Seconds the agent waits before acting (shutdown/reboot only)"
    )
    text: str | None = Field(
        default=None,
        description="Message text (message only)"
    )

    @classmethod
    def shutdown(cls, delay_seconds: int = 0) -> "Command":
        return cls(kind=CommandKind.SHUTDOWN, delay_seconds=delay_seconds)

    @classmethod
    def reboot(cls, delay_seconds: int = 0) -> "Command":
        return cls(kind=CommandKind.REBOOT, delay_seconds=delay_seconds)

    @classmethod
    def cancel(cls) -> "Command":
        return cls(kind=CommandKind.CANCEL)

    @classmethod
    def message(cls, text: str | None) -> "Command":
        return cls(kind=CommandKind.MESSAGE, text=text)

    def validate_payload(self) -> None:
        """
        Check the command carries the content its kind requires.

        Raises:
            InvalidPayloadError: If text is missing/blank or delay is negative
        """
        if self.kind == CommandKind.MESSAGE:
            if not self.text or not self.text.strip():
                raise InvalidPayloadError("Message is required")
        elif self.kind in (CommandKind.SHUTDOWN, CommandKind.REBOOT):
            if self.delay_seconds < 0:
                raise InvalidPayloadError(
                    f"Delay must be zero or positive, got {self.delay_seconds}"
                )

    def to_envelope(self) -> MessageEnvelope:
        """Build the channel message for this command."""
        if self.kind == CommandKind.SHUTDOWN:
            return create_shutdown(self.delay_seconds)
        if self.kind == CommandKind.REBOOT:
            return create_reboot(self.delay_seconds)
        if self.kind == CommandKind.CANCEL:
            return create_cancel()
        return create_broadcast_message(self.text or "")


@dataclass(frozen=True)
class SingleId:
    """Target exactly one agent; fails if it is unknown or disconnected."""
    agent_id: str


@dataclass(frozen=True)
class IdSet:
    """Target a batch of agents; unknown or disconnected ids are skipped."""
    agent_ids: tuple[str, ...]

    def __post_init__(self) -> None:
        # Accept any iterable, store a tuple
        object.__setattr__(self, "agent_ids", tuple(self.agent_ids))


@dataclass(frozen=True)
class AllConnected:
    """Target every agent connected at the moment of dispatch."""


Selector = Union[SingleId, IdSet, AllConnected]


@dataclass
class DispatchResult:
    """Which agents a command was handed to. Delivery is never confirmed."""
    sent_to: list[str] = field(default_factory=list)  # hostnames
    agent_ids: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.sent_to)
