# Command Dispatch
# Selector resolution and fire-and-forget command delivery

from powerhub.dispatch.commands import (
    AllConnected,
    Command,
    CommandKind,
    DispatchResult,
    IdSet,
    Selector,
    SingleId,
)
from powerhub.dispatch.dispatcher import CommandDispatcher

__all__ = [
    "AllConnected",
    "Command",
    "CommandDispatcher",
    "CommandKind",
    "DispatchResult",
    "IdSet",
    "Selector",
    "SingleId",
]
