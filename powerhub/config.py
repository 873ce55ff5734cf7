"""
Hub Configuration

Environment-based settings for the hub process.

Supported variables (all optional):
- POWERHUB_HOST: Interface to bind (default: "0.0.0.0")
- POWERHUB_PORT: Port to listen on (default: 8000)
- POWERHUB_LOG_LEVEL: Logging level name (default: "INFO")
- POWERHUB_OUTBOUND_QUEUE_SIZE: Per-agent outbound queue depth (default: 200)
- POWERHUB_OBSERVER_QUEUE_SIZE: Per-observer event queue depth (default: 1000)
- POWERHUB_MAX_OBSERVERS: Maximum attached observers (default: 1000)

Variables can be loaded from a .env file in the working directory.

Usage:
    settings = settings_from_env()
    uvicorn.run(app, host=settings.host, port=settings.port)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Names understood by both logging and uvicorn
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


@dataclass
class HubSettings:
    """
    Configuration for the hub.

    Attributes:
        host: Interface to bind the HTTP/WebSocket server to
        port: Port to listen on
        log_level: Name of the root logging level (unknown names become INFO)
        outbound_queue_size: Max queued frames per agent channel before sends are dropped
        observer_queue_size: Max queued events per observer before events are dropped
        max_observers: Maximum concurrently attached observers
    """
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    outbound_queue_size: int = 200
    observer_queue_size: int = 1000
    max_observers: int = 1000

    def __post_init__(self) -> None:
        self.log_level = _log_level(self.log_level)

    @property
    def log_level_value(self) -> int:
        """Numeric logging level."""
        return logging.getLevelName(self.log_level)


def settings_from_env(load_dotenv_file: bool = True) -> HubSettings:
    """
    Create HubSettings from environment variables.

    Args:
        load_dotenv_file: Whether to load a .env file first

    Returns:
        HubSettings populated from the environment
    """
    if load_dotenv_file:
        load_dotenv()

    return HubSettings(
        host=os.getenv("POWERHUB_HOST", "0.0.0.0"),
        port=int(os.getenv("POWERHUB_PORT", "8000")),
        log_level=os.getenv("POWERHUB_LOG_LEVEL", "INFO"),
        outbound_queue_size=int(os.getenv("POWERHUB_OUTBOUND_QUEUE_SIZE", "200")),
        observer_queue_size=int(os.getenv("POWERHUB_OBSERVER_QUEUE_SIZE", "1000")),
        max_observers=int(os.getenv("POWERHUB_MAX_OBSERVERS", "1000")),
    )


def _log_level(name: str) -> str:
    """Normalize a level name, falling back to INFO for unknown names."""
    level = name.strip().upper()
    if level == "WARN":
        level = "WARNING"
    return level if level in LOG_LEVELS else "INFO"
