"""
Hub Errors

Domain exceptions raised synchronously to operators.

Only strict, requester-facing failures are exceptions. Stale or unknown
signals from agents (heartbeats or results from ids the registry does not
know) are absorbed by the registry and the handler, never raised.
"""


class HubError(Exception):
    """Base exception for hub errors."""

    code = "HUB_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class TargetNotFoundError(HubError):
    """A single-target command resolved to no live agent."""

    code = "TARGET_NOT_FOUND"

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent {agent_id} not found or not connected")


class InvalidPayloadError(HubError):
    """A command is missing required content or carries an invalid value."""

    code = "INVALID_PAYLOAD"


class InvalidTransitionError(HubError):
    """A presence transition that the state machine does not allow."""

    code = "INVALID_TRANSITION"

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid presence transition: {current} -> {target}")
