"""
Agent Channels

The outbound half of an agent channel. Commands and replies are never
awaited by the registry or dispatcher; they are handed to a bounded
per-agent buffer and a dedicated task writes them to the WebSocket in
order.

- put_nowait fails fast: QueueFullError when the agent is not reading,
  QueueClosedError once the socket is gone
- a failed WebSocket write closes the channel for good
- the handler removes the channel when the agent's socket closes
"""

import asyncio
import logging
from typing import Awaitable, Callable, Protocol

logger = logging.getLogger(__name__)


class QueueFullError(Exception):
    """The agent has too many undelivered frames."""
    def __init__(self, conn_id: str, queue_size: int):
        self.conn_id = conn_id
        self.queue_size = queue_size
        super().__init__(f"Outbound buffer full for {conn_id} ({queue_size} frames)")


class QueueClosedError(Exception):
    """The agent's socket is gone; nothing more can be sent."""
    def __init__(self, conn_id: str):
        self.conn_id = conn_id
        super().__init__(f"Channel {conn_id} is closed")


class Channel(Protocol):
    """What the registry and dispatcher hold for a connected agent."""

    conn_id: str

    def put_nowait(self, message: str) -> None: ...


class ConnectionQueue:
    """Buffered, ordered sender for one agent socket."""

    def __init__(
        self,
        conn_id: str,
        send_fn: Callable[[str], Awaitable[None]],
        max_size: int = 200
    ):
        """
        Args:
            conn_id: Channel identifier, also recorded on the agent record
            send_fn: Coroutine writing one text frame to the socket
            max_size: Frames buffered before put_nowait raises QueueFullError
        """
        self.conn_id = conn_id
        self._send_fn = send_fn
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=max_size)
        self._writer_task: asyncio.Task | None = None
        self._closed = False
        self._max_size = max_size

    async def start(self) -> None:
        if self._writer_task is None:
            self._writer_task = asyncio.create_task(
                self._write_frames(),
                name=f"channel_writer_{self.conn_id}"
            )

    async def stop(self) -> None:
        """Close the channel; frames still buffered are discarded."""
        self._closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

        if self._writer_task:
            self._writer_task.cancel()
            try:
                await self._writer_task
            except asyncio.CancelledError:
                pass
            self._writer_task = None

    def put_nowait(self, message: str) -> None:
        """
        Buffer one serialized frame for the agent.

        Raises:
            QueueClosedError: If the agent's socket is gone
            QueueFullError: If the agent is not keeping up
        """
        if self._closed:
            raise QueueClosedError(self.conn_id)

        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            raise QueueFullError(self.conn_id, self._max_size)

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def _write_frames(self) -> None:
        """Write buffered frames to the socket one at a time."""
        while not self._closed:
            try:
                message = await self._queue.get()
                if message is None:  # stop() sentinel
                    break

                try:
                    await self._send_fn(message)
                except Exception as e:
                    logger.warning(f"Send failed for {self.conn_id}: {e}")
                    self._closed = True
                    break
                finally:
                    self._queue.task_done()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Writer error for {self.conn_id}: {e}")


class ConnectionQueueManager:
    """Owns the channel of every connected agent socket, keyed by conn_id."""

    def __init__(self, max_queue_size: int = 200):
        self._max_queue_size = max_queue_size
        self._queues: dict[str, ConnectionQueue] = {}
        self._lock = asyncio.Lock()

    async def get_or_create(
        self,
        conn_id: str,
        send_fn: Callable[[str], Awaitable[None]]
    ) -> ConnectionQueue:
        """Return the running channel for conn_id, opening it on first use."""
        async with self._lock:
            if conn_id not in self._queues:
                queue = ConnectionQueue(conn_id, send_fn, self._max_queue_size)
                await queue.start()
                self._queues[conn_id] = queue
            return self._queues[conn_id]

    async def remove(self, conn_id: str) -> None:
        """Close and forget the channel of a socket that went away."""
        async with self._lock:
            queue = self._queues.pop(conn_id, None)
            if queue:
                await queue.stop()

    async def shutdown(self) -> None:
        async with self._lock:
            for queue in self._queues.values():
                await queue.stop()
            self._queues.clear()

    def connection_count(self) -> int:
        return len(self._queues)
