# Agent Registry
# Manages agent lifecycle: registration, presence, heartbeat, purge

from powerhub.registry.agent import AgentRecord, AgentView
from powerhub.registry.presence import PresenceState, can_transition, transition
from powerhub.registry.registry import AgentRegistry, PresenceListener

__all__ = [
    "AgentRecord",
    "AgentView",
    "AgentRegistry",
    "PresenceListener",
    "PresenceState",
    "can_transition",
    "transition",
]
