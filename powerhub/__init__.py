# PowerHub - remote power management hub
# Agents keep a WebSocket channel open; operators send shutdown, reboot,
# cancel and broadcast commands; observers watch presence in real time.

__version__ = "0.1.0"

# Re-export commonly used components for convenience
from powerhub.config import HubSettings, settings_from_env
from powerhub.dispatch import (
    AllConnected,
    Command,
    CommandDispatcher,
    IdSet,
    SingleId,
)
from powerhub.errors import (
    HubError,
    InvalidPayloadError,
    InvalidTransitionError,
    TargetNotFoundError,
)
from powerhub.events import ObserverNotifier
from powerhub.registry import AgentRegistry, AgentView, PresenceState

__all__ = [
    "__version__",
    # Configuration
    "HubSettings",
    "settings_from_env",
    # Registry
    "AgentRegistry",
    "AgentView",
    "PresenceState",
    # Dispatch
    "AllConnected",
    "Command",
    "CommandDispatcher",
    "IdSet",
    "SingleId",
    # Observers
    "ObserverNotifier",
    # Errors
    "HubError",
    "InvalidPayloadError",
    "InvalidTransitionError",
    "TargetNotFoundError",
]
