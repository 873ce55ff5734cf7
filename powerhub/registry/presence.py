"""
Presence State Machine

Valid lifecycle transitions of an agent record:

    UNREGISTERED --register--> CONNECTED
    CONNECTED --heartbeat--> CONNECTED
    CONNECTED --channel closed--> DISCONNECTED
    DISCONNECTED --purge--> PURGED

There is no way back from DISCONNECTED to CONNECTED. A reconnecting
agent always registers again and gets a new identity and a new record.
Presence changes only on channel closure; a silent agent is never timed out.
"""

from enum import Enum

from powerhub.errors import InvalidTransitionError


class PresenceState(str, Enum):
    """Connectivity state of an agent record."""
    UNREGISTERED = "unregistered"  # Transient, before the record exists
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    PURGED = "purged"  # Terminal, record removed from the registry


_TRANSITIONS: dict[PresenceState, frozenset[PresenceState]] = {
    PresenceState.UNREGISTERED: frozenset({PresenceState.CONNECTED}),
    PresenceState.CONNECTED: frozenset({PresenceState.CONNECTED, PresenceState.DISCONNECTED}),
    PresenceState.DISCONNECTED: frozenset({PresenceState.PURGED}),
    PresenceState.PURGED: frozenset(),
}


def can_transition(current: PresenceState, target: PresenceState) -> bool:
    """Check whether the state machine allows current -> target."""
    return target in _TRANSITIONS[current]


def transition(current: PresenceState, target: PresenceState) -> PresenceState:
    """
    Validate a transition and return the new state.

    Raises:
        InvalidTransitionError: If the transition is not allowed
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)
    return target
