"""Room-scoped broadcast of realtime events."""

import asyncio
from contextlib import suppress
from typing import Any, Dict, List, Optional, Set
from uuid import uuid4

import structlog

from codementor.collaboration.events import CollaborationEvent
from codementor.collaboration.registry import RoomRegistry
from codementor.config import settings
from codementor.metrics import EVENTS_DROPPED, EVENTS_SENT

logger = structlog.get_logger()


class Connection:
    """One open hub connection with its own ordered outbound queue.

    Messages are enqueued without awaiting and written to the socket by a
    single writer task, so every recipient sees events in the order they
    were queued for it.
    """

    def __init__(
        self,
        websocket: Any,
        user_id: int,
        user_name: str,
        queue_size: Optional[int] = None,
        connection_id: Optional[str] = None,
    ):
        self.connection_id = connection_id or uuid4().hex
        self.websocket = websocket
        self.user_id = user_id
        self.user_name = user_name
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size or settings.connection_queue_size)
        self.closed = False
        self._writer: Optional[asyncio.Task] = None
        # Rooms this connection is an active member of
        self.rooms: Set[str] = set()

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    def enqueue(self, message: Dict[str, Any]) -> bool:
        if self.closed:
            return False
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    async def _write_loop(self) -> None:
        while True:
            message = await self.queue.get()
            try:
                if not self.closed:
                    await self.websocket.send_json(message)
            except Exception as e:
                logger.warning(
                    "Failed to send message to connection",
                    connection_id=self.connection_id,
                    error=str(e),
                )
                self.closed = True
            finally:
                self.queue.task_done()

    async def drain(self) -> None:
        """Wait until everything queued so far has been written."""
        await self.queue.join()

    async def close(self) -> None:
        self.closed = True
        if self._writer is not None:
            self._writer.cancel()
            with suppress(asyncio.CancelledError):
                await self._writer
            self._writer = None


class BroadcastChannel:
    """Fan out events to the connections joined to a room.

    Delivery is best-effort and at-most-once. A recipient whose queue is full
    or closed misses the event; nothing is retried or replayed.
    """

    def __init__(self, registry: RoomRegistry):
        self.registry = registry
        self._connections: Dict[str, Connection] = {}
        self.logger = logger.bind(component="broadcast_channel")

    def register(self, connection: Connection) -> None:
        self._connections[connection.connection_id] = connection

    def unregister(self, connection_id: str) -> Optional[Connection]:
        return self._connections.pop(connection_id, None)

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def broadcast_to_room(self, room_code: str, event: CollaborationEvent) -> int:
        """Send to every connection in the room. Returns the number queued."""
        return self._fan_out(room_code, event, exclude=None)

    def broadcast_to_room_except_sender(
        self, room_code: str, sender_connection_id: str, event: CollaborationEvent
    ) -> int:
        return self._fan_out(room_code, event, exclude=sender_connection_id)

    def send_to_connection(self, connection_id: str, event: CollaborationEvent) -> bool:
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        return self._deliver(connection, event.to_message(), event)

    def _fan_out(self, room_code: str, event: CollaborationEvent, exclude: Optional[str]) -> int:
        message = event.to_message()
        recipients: List[Connection] = [
            self._connections[connection_id]
            for connection_id in self.registry.connection_ids(room_code)
            if connection_id != exclude and connection_id in self._connections
        ]

        delivered = 0
        for connection in recipients:
            if self._deliver(connection, message, event):
                delivered += 1
        return delivered

    def _deliver(self, connection: Connection, message: Dict[str, Any], event: CollaborationEvent) -> bool:
        if connection.enqueue(message):
            EVENTS_SENT.labels(event_type=event.event_type.value).inc()
            return True

        EVENTS_DROPPED.labels(event_type=event.event_type.value).inc()
        self.logger.warning(
            "Dropped event for connection",
            connection_id=connection.connection_id,
            event_type=event.event_type.value,
            room_code=event.room_code,
        )
        return False
