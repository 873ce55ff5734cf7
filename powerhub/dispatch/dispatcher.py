"""
Command Dispatcher

Resolves selectors to live agent channels and emits commands.

Fire-and-forget: the dispatcher enqueues one frame per resolved channel
and returns. It keeps no per-command state, never waits for an
acknowledgement and never retries. Results come back later as
commandResult events on the agent's own channel, correlated only by
agent id.

Strictness is deliberately asymmetric:
- SingleId fails with TargetNotFoundError when the agent is unknown or offline
- IdSet silently skips ids it cannot resolve
"""

import logging

from powerhub.dispatch.commands import (
    AllConnected,
    Command,
    DispatchResult,
    IdSet,
    Selector,
    SingleId,
)
from powerhub.errors import TargetNotFoundError
from powerhub.registry import AgentRegistry
from powerhub.transport.queue import QueueClosedError, QueueFullError

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """Routes commands to the channels of connected agents."""

    def __init__(self, registry: AgentRegistry):
        self._registry = registry

    async def dispatch(self, command: Command, selector: Selector) -> DispatchResult:
        """
        Send a command to the agents matched by a selector.

        The payload is validated before the registry is consulted, so an
        invalid command never touches registry state.

        Args:
            command: What to send
            selector: Who to send it to

        Returns:
            DispatchResult with the hostnames the command was handed to

        Raises:
            InvalidPayloadError: If the command is missing required content
            TargetNotFoundError: If a SingleId target is unknown, disconnected,
                or its channel refused the frame
        """
        command.validate_payload()

        if isinstance(selector, SingleId):
            target = await self._registry.resolve_one(selector.agent_id)
            if target is None:
                raise TargetNotFoundError(selector.agent_id)
            targets = [target]
        elif isinstance(selector, IdSet):
            targets = await self._registry.resolve(list(selector.agent_ids))
        elif isinstance(selector, AllConnected):
            targets = await self._registry.resolve(None)
        else:
            raise TypeError(f"Unsupported selector: {selector!r}")

        result = DispatchResult()
        for agent, channel in targets:
            # An agent may disconnect between resolution and send; the
            # command is then simply lost.
            try:
                channel.put_nowait(command.to_envelope().model_dump_json())
            except (QueueClosedError, QueueFullError) as e:
                logger.warning(f"Dropped {command.kind.value} for {agent.hostname}: {e}")
                continue
            result.sent_to.append(agent.hostname)
            result.agent_ids.append(agent.agent_id)

        if isinstance(selector, SingleId) and result.count == 0:
            # The channel closed after resolution
            raise TargetNotFoundError(selector.agent_id)

        logger.info(
            f"Dispatched {command.kind.value} to {result.count} agent(s): {result.sent_to}"
        )
        return result
