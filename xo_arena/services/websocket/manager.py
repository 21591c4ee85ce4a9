import asyncio
import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from fastapi import WebSocket

from xo_arena.config import get_settings
from xo_arena.schemas.ws import (
    ConnectedPayload,
    MessageType,
    WSCloseCode,
    WSServerMessage,
)

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """Represents an active WebSocket connection."""

    connection_id: str
    websocket: WebSocket
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_heartbeat: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    room_id: str | None = None
    identity_id: str | None = None

    @property
    def is_bound(self) -> bool:
        return self.room_id is not None and self.identity_id is not None


class ConnectionManager:
    """Manages WebSocket connections and per-room fan-out.

    Local storage:
        - _connections: connection_id -> Connection
        - _room_connections: room_id -> set of subscribed connection_ids

    The manager never owns room state. It only knows which connections are
    subscribed to which room, and delivers already-serialized snapshots to them.
    """

    def __init__(self, server_id: str | None = None, send_timeout: float | None = None):
        self._server_id = server_id or os.getenv("HOSTNAME", str(uuid.uuid4())[:8])
        self._settings = get_settings()
        self._send_timeout = send_timeout or self._settings.WS_SEND_TIMEOUT

        # Local storage
        self._connections: dict[str, Connection] = {}
        self._room_connections: dict[str, set[str]] = {}  # room_id -> connection_ids

        # Cleanup task
        self._cleanup_task: asyncio.Task | None = None

        logger.info("ConnectionManager initialized with server_id: %s", self._server_id)

    @property
    def server_id(self) -> str:
        return self._server_id

    async def connect(self, websocket: WebSocket) -> Connection:
        """Register a new WebSocket connection and acknowledge it.

        Args:
            websocket: The accepted WebSocket instance.

        Returns:
            The created Connection object.
        """
        connection_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)

        connection = Connection(
            connection_id=connection_id,
            websocket=websocket,
            connected_at=now,
            last_heartbeat=now,
        )
        self._connections[connection_id] = connection

        logger.info("Connection %s established on server %s", connection_id, self._server_id)

        # Send connected acknowledgment
        await self.send_to_connection(
            connection_id,
            WSServerMessage(
                type=MessageType.CONNECTED,
                payload=ConnectedPayload(
                    connection_id=connection_id,
                    server_id=self._server_id,
                ).model_dump(mode="json", by_alias=True),
            ),
        )

        return connection

    async def disconnect(self, connection_id: str) -> Connection | None:
        """Forget a connection and drop its room subscription.

        The returned Connection keeps its room/identity binding so the caller can
        release the room seat.

        Args:
            connection_id: The connection to remove.
        """
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            logger.debug("Connection %s not found locally for disconnect", connection_id)
            return None

        # Unsubscribe from room if subscribed
        if connection.room_id:
            self._unsubscribe_from_room_internal(connection_id, connection.room_id)

        logger.info(
            "Connection %s disconnected (identity %s, room %s)",
            connection_id,
            connection.identity_id,
            connection.room_id,
        )
        return connection

    async def heartbeat(self, connection_id: str) -> None:
        """Update the last heartbeat timestamp for a connection.

        Args:
            connection_id: The connection to update.
        """
        connection = self._connections.get(connection_id)
        if connection:
            connection.last_heartbeat = datetime.now(timezone.utc)
            logger.debug("Heartbeat updated for connection %s", connection_id)

    async def cleanup_stale_connections(self) -> None:
        """Close connections that have exceeded the timeout period.

        Closing the socket ends its receive loop, which releases the room seat.
        """
        now = datetime.now(timezone.utc)
        timeout = self._settings.WS_CONNECTION_TIMEOUT
        stale_connections = []

        # Snapshot the connections to avoid RuntimeError if dict is modified during iteration
        for conn_id, connection in list(self._connections.items()):
            elapsed = (now - connection.last_heartbeat).total_seconds()
            if elapsed > timeout:
                stale_connections.append(conn_id)
                logger.warning(
                    "Connection %s for identity %s is stale (%.1fs since heartbeat)",
                    conn_id,
                    connection.identity_id,
                    elapsed,
                )

        for conn_id in stale_connections:
            connection = self._connections.get(conn_id)
            if connection:
                try:
                    await connection.websocket.close(code=1001)
                except Exception as e:
                    logger.debug("Error closing stale websocket %s: %s", conn_id, e)
            await self.disconnect(conn_id)

        if stale_connections:
            logger.info("Cleaned up %d stale connections", len(stale_connections))

    async def start_cleanup_task(self) -> None:
        """Start the periodic cleanup task for stale connections."""
        if self._cleanup_task is not None:
            logger.warning("Cleanup task already running")
            return

        async def cleanup_loop():
            interval = self._settings.WS_HEARTBEAT_INTERVAL
            logger.info("Starting cleanup task with interval %ds", interval)
            while True:
                try:
                    await asyncio.sleep(interval)
                    await self.cleanup_stale_connections()
                except asyncio.CancelledError:
                    logger.info("Cleanup task cancelled")
                    break
                except Exception as e:
                    logger.error("Error in cleanup task: %s", e)

        self._cleanup_task = asyncio.create_task(cleanup_loop())

    async def stop_cleanup_task(self) -> None:
        """Stop the periodic cleanup task."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
            logger.info("Cleanup task stopped")

    async def close_all_connections(self) -> None:
        """Close all active WebSocket connections gracefully."""
        logger.info("Closing all %d connections", len(self._connections))
        for conn_id in list(self._connections.keys()):
            connection = self._connections.get(conn_id)
            if connection:
                try:
                    await connection.websocket.close(code=1001)
                except Exception as e:
                    logger.debug("Error closing websocket %s: %s", conn_id, e)
            await self.disconnect(conn_id)

    @staticmethod
    def serialize(message: WSServerMessage) -> dict[str, Any]:
        return message.model_dump(mode="json", exclude_unset=True)

    async def send_to_connection(self, connection_id: str, message: WSServerMessage) -> bool:
        """Send a message to a specific connection.

        Args:
            connection_id: The target connection.
            message: The message to send.

        Returns:
            True if sent successfully, False otherwise.
        """
        return await self._send_data(connection_id, self.serialize(message))

    async def _send_data(self, connection_id: str, data: dict[str, Any]) -> bool:
        connection = self._connections.get(connection_id)
        if connection is None:
            logger.debug("Connection %s not found for sending", connection_id)
            return False

        try:
            await asyncio.wait_for(
                connection.websocket.send_json(data),
                timeout=self._send_timeout,
            )
            return True
        except Exception as e:
            logger.warning("Failed to send to connection %s: %r", connection_id, e)
            # Closing ends the socket's receive loop, which releases its room seat
            try:
                await asyncio.wait_for(
                    connection.websocket.close(code=WSCloseCode.POLICY_VIOLATION),
                    timeout=self._send_timeout,
                )
            except Exception as close_error:
                logger.debug("Error closing websocket %s: %s", connection_id, close_error)
            await self.disconnect(connection_id)
            return False

    async def subscribe_to_room(self, connection_id: str, room_id: str) -> None:
        """Subscribe a connection to a room for receiving room messages.

        Args:
            connection_id: The connection to subscribe.
            room_id: The room to subscribe to.
        """
        connection = self._connections.get(connection_id)
        if connection is None:
            logger.warning("Connection %s not found for room subscription", connection_id)
            return

        # Unsubscribe from current room if any
        if connection.room_id and connection.room_id != room_id:
            self._unsubscribe_from_room_internal(connection_id, connection.room_id)

        connection.room_id = room_id
        self._room_connections.setdefault(room_id, set()).add(connection_id)

        logger.info("Connection %s subscribed to room %s", connection_id, room_id)

    async def unsubscribe_from_room(self, connection_id: str) -> None:
        """Unsubscribe a connection from its current room and clear its binding.

        Args:
            connection_id: The connection to unsubscribe.
        """
        connection = self._connections.get(connection_id)
        if connection is None or connection.room_id is None:
            return

        self._unsubscribe_from_room_internal(connection_id, connection.room_id)
        connection.room_id = None
        connection.identity_id = None

    async def bind(self, connection_id: str, room_id: str, identity_id: str) -> None:
        """Record the join-time binding and subscribe the connection to the room."""
        await self.subscribe_to_room(connection_id, room_id)
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.identity_id = identity_id

    def _unsubscribe_from_room_internal(self, connection_id: str, room_id: str) -> None:
        """Internal method to remove a connection from room tracking.

        Does not modify connection.room_id - caller is responsible for that.
        """
        if room_id in self._room_connections:
            self._room_connections[room_id].discard(connection_id)
            if not self._room_connections[room_id]:
                del self._room_connections[room_id]
        logger.debug("Connection %s unsubscribed from room %s", connection_id, room_id)

    async def send_to_room(
        self, room_id: str, message: WSServerMessage, exclude_connection: str | None = None
    ) -> int:
        """Publish a message to every connection subscribed to a room.

        The message is serialized once, so every subscriber receives the same
        payload. Sends run concurrently and each one is bounded by
        WS_SEND_TIMEOUT; a failing subscriber is dropped without affecting the
        others or raising to the caller.

        Args:
            room_id: The target room.
            message: The message to send.
            exclude_connection: Optional connection ID to exclude from sending.

        Returns:
            Number of connections the message was sent to.
        """
        data = self.serialize(message)
        targets = [
            conn_id
            for conn_id in list(self._room_connections.get(room_id, set()))
            if conn_id != exclude_connection
        ]
        if not targets:
            return 0

        results = await asyncio.gather(*(self._send_data(conn_id, data) for conn_id in targets))
        sent = sum(1 for ok in results if ok)
        logger.debug(
            "Published %s to room %s: %d/%d delivered", message.type.value, room_id, sent, len(targets)
        )
        return sent

    def get_connection(self, connection_id: str) -> Connection | None:
        """Get a connection by ID (local only)."""
        return self._connections.get(connection_id)

    def get_room_connection_ids(self, room_id: str) -> set[str]:
        """Get the ids of connections subscribed to a room."""
        return set(self._room_connections.get(room_id, set()))

    def get_total_connection_count(self) -> int:
        """Get the total number of local connections."""
        return len(self._connections)


# Global manager instance (initialized in lifespan)
_connection_manager: ConnectionManager | None = None


def get_connection_manager() -> ConnectionManager:
    """Get the global ConnectionManager instance."""
    global _connection_manager
    if _connection_manager is None:
        _connection_manager = ConnectionManager()
    return _connection_manager


def set_connection_manager(manager: ConnectionManager | None) -> None:
    """Set the global ConnectionManager instance."""
    global _connection_manager
    _connection_manager = manager
