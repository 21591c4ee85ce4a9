import asyncio
import json
import logging
import time
from collections import defaultdict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from xo_arena.schemas.ws import (
    ErrorPayload,
    MessageType,
    WSClientMessage,
    WSServerMessage,
)
from xo_arena.services.websocket.handlers import HandlerContext, dispatch
from xo_arena.services.websocket.handlers.base import state_message, to_payload
from xo_arena.services.websocket.handlers.leave import release_binding
from xo_arena.services.websocket.manager import (
    Connection,
    ConnectionManager,
    get_connection_manager,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])

# Rate limiting configuration
MAX_MESSAGE_SIZE = 64 * 1024  # 64 KB
MAX_MESSAGES_PER_SECOND = 10
RATE_LIMIT_WINDOW = 1.0  # seconds


class RateLimiter:
    """Simple sliding-window rate limiter per connection."""

    def __init__(
        self, max_tokens: int = MAX_MESSAGES_PER_SECOND, window: float = RATE_LIMIT_WINDOW
    ):
        self.max_tokens = max_tokens
        self.window = window
        self._tokens: dict[str, list[float]] = defaultdict(list)

    def is_allowed(self, connection_id: str) -> bool:
        """Check if a message is allowed under rate limiting."""
        now = time.time()
        cutoff = now - self.window

        # Remove expired timestamps
        self._tokens[connection_id] = [t for t in self._tokens[connection_id] if t > cutoff]

        # Check if under limit
        if len(self._tokens[connection_id]) >= self.max_tokens:
            return False

        # Record this message
        self._tokens[connection_id].append(now)
        return True

    def remove(self, connection_id: str) -> None:
        """Remove rate limit tracking for a connection."""
        self._tokens.pop(connection_id, None)


# Global rate limiter instance
_rate_limiter = RateLimiter()


def _error(error_code: str, message: str) -> WSServerMessage:
    return WSServerMessage(
        type=MessageType.ERROR,
        payload=to_payload(ErrorPayload(error_code=error_code, message=message)),
    )


# Cleanup tasks outlive the endpoint task when it is cancelled mid-disconnect
_release_tasks: set[asyncio.Task] = set()


async def _release_and_announce(manager: ConnectionManager, connection: Connection) -> None:
    """Release the connection's seat and tell the rest of the room."""
    room_id = connection.room_id
    snapshot = await release_binding(manager, connection)
    if snapshot and room_id:
        await manager.send_to_room(room_id, state_message(snapshot))


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for real-time room sessions.

    Clients connect with: ws://host/api/v1/ws

    The server replies with a 'connected' message. The client then sends
    'join_room' with its room id and stable identity; every other game message
    requires a successful join first. Dropping the socket releases the seat but
    keeps the identity's role for a later reconnect.
    """
    await websocket.accept()

    manager = get_connection_manager()
    connection = await manager.connect(websocket)
    connection_id = connection.connection_id

    try:
        while True:
            # Check if connection is still open
            if websocket.client_state != WebSocketState.CONNECTED:
                logger.debug("WebSocket no longer connected, exiting loop")
                break

            # Receive raw message with size limit check
            try:
                message_data = await websocket.receive()
            except Exception as e:
                logger.debug("Error receiving message: %s", e)
                break

            # Handle disconnect message
            if message_data.get("type") == "websocket.disconnect":
                break

            # Get raw bytes/text for size check
            raw_text = message_data.get("text")
            raw_bytes = message_data.get("bytes")

            if raw_text:
                message_size = len(raw_text.encode("utf-8"))
            elif raw_bytes:
                message_size = len(raw_bytes)
            else:
                continue

            # Check message size limit
            if message_size > MAX_MESSAGE_SIZE:
                logger.warning(
                    "Message too large from connection %s: %d bytes (max %d)",
                    connection_id,
                    message_size,
                    MAX_MESSAGE_SIZE,
                )
                await manager.send_to_connection(
                    connection_id,
                    _error(
                        "MESSAGE_TOO_LARGE",
                        f"Message exceeds maximum size of {MAX_MESSAGE_SIZE} bytes",
                    ),
                )
                continue

            # Check rate limit
            if not _rate_limiter.is_allowed(connection_id):
                logger.warning("Rate limit exceeded for connection %s", connection_id)
                await manager.send_to_connection(
                    connection_id,
                    _error("RATE_LIMITED", "Too many messages, please slow down"),
                )
                continue

            # Parse JSON from raw text
            if not raw_text:
                continue

            try:
                data = json.loads(raw_text)
            except json.JSONDecodeError:
                logger.warning("Invalid JSON from connection %s", connection_id)
                await manager.send_to_connection(
                    connection_id, _error("INVALID_JSON", "Invalid JSON format")
                )
                continue

            # Parse and validate message
            try:
                message = WSClientMessage.model_validate(data)
            except ValidationError as e:
                logger.warning("Invalid message from connection %s: %s", connection_id, e)
                await manager.send_to_connection(
                    connection_id, _error("INVALID_MESSAGE", "Invalid message format")
                )
                continue

            # Dispatch message to handler
            ctx = HandlerContext(
                connection_id=connection_id,
                message=message,
                manager=manager,
            )

            result = await dispatch(ctx)

            if result is None:
                logger.debug(
                    "Unhandled message type %s from connection %s",
                    message.type,
                    connection_id,
                )
                continue

            # Send response to requester
            if result.response:
                await manager.send_to_connection(connection_id, result.response)

            # Broadcast to room if needed
            if result.broadcast and result.room_id:
                await manager.send_to_room(result.room_id, result.broadcast)

            # A failed send drops the connection from the manager
            if manager.get_connection(connection_id) is None:
                logger.debug("Connection %s dropped by manager, exiting loop", connection_id)
                break

    except WebSocketDisconnect as e:
        logger.info("WS disconnected: connection %s, code %s", connection_id, e.code)
    except Exception as e:
        logger.error("WS error for connection %s: %s", connection_id, e)
    finally:
        # Clean up rate limiter for this connection
        _rate_limiter.remove(connection_id)

        # The returned Connection keeps its room and identity binding
        await manager.disconnect(connection_id)

        # Transport loss degrades to a leave; the role reservation is kept
        task = asyncio.create_task(_release_and_announce(manager, connection))
        _release_tasks.add(task)
        task.add_done_callback(_release_tasks.discard)
        await asyncio.shield(task)
