"""
Connection registry for Coderoom.

Tracks every live transport connection, the rooms it belongs to and its
session lifecycle state. Each connection owns a FIFO outbound queue
drained by a single writer task, so frames reach a client in exactly the
order they were issued.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any

from pydantic import BaseModel

from .protocol import ServerMessage, to_wire

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUEUE_SIZE = 1024


class SessionState(str, Enum):
    """Lifecycle of a connection with respect to room membership."""

    UNJOINED = "unjoined"
    JOINING = "joining"
    JOINED = "joined"
    LEAVING = "leaving"
    DISCONNECTED = "disconnected"


class Connection:
    """
    One live client connection.

    Attributes:
        id: Server-assigned connection id.
        state: Current session lifecycle state.
        rooms: Ids of the rooms this connection is a member of.
        connected_at: Unix timestamp of registration.
    """

    def __init__(
        self,
        connection_id: str,
        websocket: Any,
        max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE,
    ):
        self.id = connection_id
        self.websocket = websocket
        self.state = SessionState.UNJOINED
        self.rooms: set[str] = set()
        self.connected_at = time.time()

        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=max_queue_size)
        self._writer: asyncio.Task | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start the writer task. Must be called from a running event loop."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    def send(self, message: ServerMessage | dict[str, Any]) -> bool:
        """
        Queue a message for delivery without waiting for it to be written.

        Args:
            message: A protocol model or a JSON-ready dict.

        Returns:
            True if the message was queued, False if it was dropped.
        """
        if self._closed:
            return False

        data = to_wire(message) if isinstance(message, BaseModel) else message

        try:
            self._queue.put_nowait(data)
        except asyncio.QueueFull:
            logger.warning(f"Outbound queue full for connection {self.id}, dropping message")
            return False
        return True

    async def flush(self) -> None:
        """Wait until every queued message has been handed to the transport."""
        await self._queue.join()

    def close(self) -> None:
        """Stop accepting messages and cancel the writer."""
        self._closed = True
        self.state = SessionState.DISCONNECTED
        if self._writer is not None:
            self._writer.cancel()
            self._writer = None

    async def _write_loop(self) -> None:
        while True:
            data = await self._queue.get()
            try:
                await self.websocket.send_json(data)
            except Exception as e:
                # Transport is gone; keep draining so flush() callers never hang.
                logger.debug(f"Failed to send to connection {self.id}: {e}")
            finally:
                self._queue.task_done()


class ConnectionRegistry:
    """
    Process-local registry of live connections.

    The unit of addressability for targeted relay: anything that needs to
    reach a single client goes through ``send``.
    """

    def __init__(self, max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE):
        self._connections: dict[str, Connection] = {}
        self._max_queue_size = max_queue_size

    @property
    def count(self) -> int:
        """Get the number of live connections."""
        return len(self._connections)

    @property
    def connection_ids(self) -> list[str]:
        return list(self._connections.keys())

    def register(self, connection_id: str, websocket: Any) -> Connection:
        """
        Register a new connection and start its writer.

        Raises:
            ValueError: If the id is already registered.
        """
        if connection_id in self._connections:
            raise ValueError(f"Connection '{connection_id}' already registered")

        connection = Connection(connection_id, websocket, self._max_queue_size)
        self._connections[connection_id] = connection
        connection.start()
        logger.info(f"Registered connection {connection_id} (total: {len(self._connections)})")
        return connection

    def unregister(self, connection_id: str) -> list[str]:
        """
        Remove a connection.

        Unknown ids are ignored, so duplicate disconnect notifications are
        harmless.

        Returns:
            Ids of the rooms the connection was a member of.
        """
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return []

        rooms = sorted(connection.rooms)
        connection.rooms.clear()
        connection.close()
        logger.info(f"Unregistered connection {connection_id} (total: {len(self._connections)})")
        return rooms

    def get(self, connection_id: str) -> Connection | None:
        """Get a connection by id."""
        return self._connections.get(connection_id)

    def has(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def send(self, connection_id: str, message: ServerMessage | dict[str, Any]) -> bool:
        """
        Queue a message for one connection.

        Returns:
            False if the connection is not registered (stale target).
        """
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        return connection.send(message)

    def add_room(self, connection_id: str, room_id: str) -> None:
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.rooms.add(room_id)

    def discard_room(self, connection_id: str, room_id: str) -> None:
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.rooms.discard(room_id)

    def rooms_of(self, connection_id: str) -> list[str]:
        """Get the rooms a connection currently belongs to."""
        connection = self._connections.get(connection_id)
        return sorted(connection.rooms) if connection else []


__all__ = [
    "SessionState",
    "Connection",
    "ConnectionRegistry",
]
