"""
PowerHub Application

FastAPI application exposing the hub:
- /ws/agent: agent channels (register, heartbeat, commandResult)
- /ws/observer: dashboards receiving presence snapshots and command results
- /api/...: operator REST surface (list, shutdown, reboot, cancel, broadcast, purge)
- /health: component counters

Configuration is read from POWERHUB_* environment variables, optionally
loaded from a .env file in the project root (see powerhub.config).
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field

from powerhub.config import settings_from_env
from powerhub.dispatch import AllConnected, Command, CommandDispatcher, IdSet, SingleId
from powerhub.errors import HubError, InvalidPayloadError, TargetNotFoundError
from powerhub.events import ObserverEventType, ObserverNotifier
from powerhub.registry import AgentRegistry
from powerhub.transport.handler import WebSocketHandler
from powerhub.transport.queue import ConnectionQueueManager

settings = settings_from_env()

# Configure logging
logging.basicConfig(
    level=settings.log_level_value,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Global instances (created at startup)
registry: AgentRegistry | None = None
notifier: ObserverNotifier | None = None
dispatcher: CommandDispatcher | None = None
queue_manager: ConnectionQueueManager | None = None
handler: WebSocketHandler | None = None

_STATUS_CODES: dict[type[HubError], int] = {
    TargetNotFoundError: 404,
    InvalidPayloadError: 400,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Initializes and tears down all hub components.
    """
    global registry, notifier, dispatcher, queue_manager, handler

    # Startup
    logger.info("Starting PowerHub...")

    notifier = ObserverNotifier(
        max_observers=settings.max_observers,
        max_queue_size=settings.observer_queue_size,
    )
    # Every presence change is pushed to observers as a full snapshot
    registry = AgentRegistry(listener=notifier.broadcast_snapshot)
    dispatcher = CommandDispatcher(registry)
    queue_manager = ConnectionQueueManager(max_queue_size=settings.outbound_queue_size)

    handler = WebSocketHandler(
        registry=registry,
        notifier=notifier,
        queue_manager=queue_manager,
    )

    logger.info("PowerHub started")

    yield

    # Shutdown
    logger.info("Shutting down PowerHub...")
    await queue_manager.shutdown()
    notifier.close()
    logger.info("PowerHub stopped")


app = FastAPI(
    title="PowerHub",
    description="Remote power management hub for connected agents",
    version="0.1.0",
    lifespan=lifespan
)


# =============================================================================
# Request models
# =============================================================================

class DelayRequest(BaseModel):
    """Body of shutdown/reboot requests."""
    delay: int = Field(default=0, description="Seconds the agent waits before acting")


class BroadcastRequest(BaseModel):
    """Body of broadcast requests."""
    message: str | None = None
    agent_ids: list[str] | None = Field(
        default=None,
        validation_alias=AliasChoices("agentIds", "agent_ids", "clientIds"),
        description="Target agents (empty or missing = all connected)"
    )


# =============================================================================
# Error mapping
# =============================================================================

@app.exception_handler(HubError)
async def hub_error_handler(request: Request, exc: HubError) -> JSONResponse:
    """Render domain errors as {"error", "code"} with a matching status."""
    status_code = _STATUS_CODES.get(type(exc), 500)
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.message, "code": exc.code},
    )


def _require_started() -> tuple[AgentRegistry, CommandDispatcher]:
    if registry is None or dispatcher is None:
        raise HTTPException(status_code=503, detail="Hub not initialized")
    return registry, dispatcher


# =============================================================================
# WebSocket endpoints
# =============================================================================

@app.websocket("/ws/agent")
async def agent_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for agents.

    The agent is anonymous until it sends register.
    """
    if handler is None:
        await websocket.close(code=1011, reason="Hub not initialized")
        return

    await handler.handle_agent(websocket)


@app.websocket("/ws/observer")
async def observer_endpoint(
    websocket: WebSocket,
    events: str | None = Query(default=None),
):
    """
    WebSocket endpoint for observers.

    Optional ?events=presenceSnapshot,commandResult restricts delivery.
    An unknown event name rejects the connection with 1008.
    """
    if handler is None:
        await websocket.close(code=1011, reason="Hub not initialized")
        return

    try:
        event_types = _parse_event_types(events)
    except ValueError as e:
        logger.warning(f"Observer rejected: {e}")
        await websocket.close(code=1008, reason=str(e))
        return

    await handler.handle_observer(websocket, event_types)


def _parse_event_types(events: str | None) -> set[ObserverEventType] | None:
    """
    Parse a comma-separated event filter (None = all events).

    Raises:
        ValueError: If a name is not an observer event type
    """
    if not events:
        return None

    names = [name.strip() for name in events.split(",") if name.strip()]
    if not names:
        return None
    return {ObserverEventType(name) for name in names}


# =============================================================================
# Operator REST surface
# =============================================================================

@app.get("/api/agents")
async def list_agents():
    """List every known agent, connected or not."""
    hub_registry, _ = _require_started()
    return [agent.to_public_dict() for agent in await hub_registry.snapshot()]


@app.post("/api/agents/{agent_id}/shutdown")
async def shutdown_agent(agent_id: str, body: DelayRequest | None = None):
    _, hub_dispatcher = _require_started()
    delay = body.delay if body else 0
    result = await hub_dispatcher.dispatch(Command.shutdown(delay), SingleId(agent_id))
    return {"message": f"Shutdown command sent to {result.sent_to[0]}", "hostname": result.sent_to[0]}


@app.post("/api/agents/{agent_id}/reboot")
async def reboot_agent(agent_id: str, body: DelayRequest | None = None):
    _, hub_dispatcher = _require_started()
    delay = body.delay if body else 0
    result = await hub_dispatcher.dispatch(Command.reboot(delay), SingleId(agent_id))
    return {"message": f"Reboot command sent to {result.sent_to[0]}", "hostname": result.sent_to[0]}


@app.post("/api/agents/{agent_id}/cancel")
async def cancel_agent(agent_id: str):
    _, hub_dispatcher = _require_started()
    result = await hub_dispatcher.dispatch(Command.cancel(), SingleId(agent_id))
    return {"message": f"Cancel command sent to {result.sent_to[0]}", "hostname": result.sent_to[0]}


@app.post("/api/broadcast")
async def broadcast(body: BroadcastRequest):
    """
    Send a text message to a set of agents.

    Unknown or disconnected ids are skipped.
    """
    _, hub_dispatcher = _require_started()
    selector = IdSet(body.agent_ids) if body.agent_ids else AllConnected()
    result = await hub_dispatcher.dispatch(Command.message(body.message), selector)
    return {
        "message": f"Broadcast sent to {result.count} agent(s)",
        "count": result.count,
        "targets": result.sent_to,
    }


@app.post("/api/clear-offline")
async def clear_offline():
    """Forget every disconnected agent."""
    hub_registry, _ = _require_started()
    cleared = await hub_registry.purge_disconnected()
    if cleared == 0:
        return {"message": "No offline agents to clear", "clearedCount": 0}
    return {
        "message": f"Successfully cleared {cleared} offline agent(s)",
        "clearedCount": cleared,
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "agents": registry.agent_count if registry else 0,
        "connected": registry.connected_count if registry else 0,
        "observers": notifier.observer_count if notifier else 0,
        "observer_events": notifier.stats if notifier else {},
        "connection_queues": queue_manager.connection_count() if queue_manager else 0
    }
