"""
Channel Message Envelope Model

Every frame on an agent channel uses a fixed JSON envelope.
The envelope provides:
- Unique message identification
- Message type classification for routing
- Creation timestamp
- A payload whose shape depends on the message type

Agents only have to send message_type and payload; the other fields
are filled in with defaults when missing.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import AliasChoices, BaseModel, Field


class MessageType(str, Enum):
    """
    Channel message types.

    Agent -> hub:
    - register -> hub replies registered
    - heartbeat (no reply)
    - commandResult (relayed to observers)

    Hub -> agent:
    - shutdown, reboot, cancel, broadcastMessage
    - error (malformed or unsupported frame)
    """
    # Agent lifecycle
    REGISTER = "register"
    REGISTERED = "registered"  # Hub confirms registration
    HEARTBEAT = "heartbeat"

    # Commands (hub -> agent)
    SHUTDOWN = "shutdown"
    REBOOT = "reboot"
    CANCEL = "cancel"
    BROADCAST_MESSAGE = "broadcastMessage"

    # Results (agent -> hub)
    COMMAND_RESULT = "commandResult"

    # System messages
    ERROR = "error"


class MessageEnvelope(BaseModel):
    """The fixed message envelope for all agent channel communication."""

    message_id: UUID = Field(
        default_factory=uuid4,
        description="Unique identifier for this message instance"
    )
    message_type: MessageType = Field(
        ...,
        description="Determines how the hub or agent processes this message"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the message was created"
    )
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="The actual message content. Structure depends on message_type."
    )


# =============================================================================
# Payloads sent by agents
# =============================================================================

class RegisterPayload(BaseModel):
    """Payload of a register message."""
    hostname: str = Field(..., min_length=1)
    address: str | None = Field(
        default=None,
        validation_alias=AliasChoices("address", "ip"),
        description="Agent's own view of its address (legacy agents send 'ip')"
    )


class CommandResultPayload(BaseModel):
    """
    Payload of a commandResult message.

    Results carry no correlation token: two outstanding commands to the
    same agent cannot be told apart by their results.
    """
    command: str
    success: bool
    error: str | None = None


# =============================================================================
# Factory functions
# =============================================================================

def create_envelope(message_type: MessageType, payload: dict[str, Any] | None = None) -> MessageEnvelope:
    """Create an envelope of the given type."""
    return MessageEnvelope(message_type=message_type, payload=payload or {})


def create_registered(agent_id: str) -> MessageEnvelope:
    """Reply to a successful registration."""
    return create_envelope(MessageType.REGISTERED, {"agentId": agent_id})


def create_shutdown(delay_seconds: int = 0) -> MessageEnvelope:
    return create_envelope(MessageType.SHUTDOWN, {"delay": delay_seconds})


def create_reboot(delay_seconds: int = 0) -> MessageEnvelope:
    return create_envelope(MessageType.REBOOT, {"delay": delay_seconds})


def create_cancel() -> MessageEnvelope:
    return create_envelope(MessageType.CANCEL)


def create_broadcast_message(text: str) -> MessageEnvelope:
    return create_envelope(MessageType.BROADCAST_MESSAGE, {"text": text})


def create_error(error_code: str, error_message: str) -> MessageEnvelope:
    """Create an error message for a malformed or unsupported frame."""
    return create_envelope(MessageType.ERROR, {"code": error_code, "message": error_message})
