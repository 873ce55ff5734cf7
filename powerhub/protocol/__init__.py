# Channel Protocol
# Fixed JSON envelope and payload models for agent channels

from powerhub.protocol.envelope import (
    CommandResultPayload,
    MessageEnvelope,
    MessageType,
    RegisterPayload,
    create_broadcast_message,
    create_cancel,
    create_envelope,
    create_error,
    create_reboot,
    create_registered,
    create_shutdown,
)

__all__ = [
    "CommandResultPayload",
    "MessageEnvelope",
    "MessageType",
    "RegisterPayload",
    "create_broadcast_message",
    "create_cancel",
    "create_envelope",
    "create_error",
    "create_reboot",
    "create_registered",
    "create_shutdown",
]
