"""Handler for LEAVE_ROOM messages."""

import logging
from typing import TYPE_CHECKING

from xo_arena.schemas.game import GameSnapshot
from xo_arena.schemas.ws import LeftPayload, MessageType, WSServerMessage
from xo_arena.services.game import get_room_registry

from . import handler
from .base import HandlerContext, HandlerResult, resolve_bound_room, state_message, to_payload

if TYPE_CHECKING:
    from xo_arena.services.websocket.manager import Connection, ConnectionManager

logger = logging.getLogger(__name__)


async def release_binding(
    manager: "ConnectionManager", connection: "Connection"
) -> GameSnapshot | None:
    """Drop a connection's seat binding in its room.

    Used for explicit leaves, for switching rooms, and when the transport goes
    away. The identity keeps its role reservation.

    Returns:
        The room snapshot after the leave, or None if there was nothing to release.
    """
    room_id = connection.room_id
    identity_id = connection.identity_id
    if room_id is None or identity_id is None:
        return None

    await manager.unsubscribe_from_room(connection.connection_id)

    room = get_room_registry().get(room_id)
    if room is None:
        logger.debug("Room %s already gone when releasing %s", room_id, connection.connection_id)
        return None

    result = await room.leave(identity_id, connection.connection_id)
    return result.snapshot


@handler(MessageType.LEAVE_ROOM)
async def handle_leave_room(ctx: HandlerContext) -> HandlerResult:
    """Handle LEAVE_ROOM message.

    Replies LEFT to the leaver and broadcasts the updated player list to the
    rest of the room.
    """
    bound, error = resolve_bound_room(ctx)
    if error:
        return error

    room_id = bound.room.room_id
    connection = ctx.manager.get_connection(ctx.connection_id)
    snapshot = await release_binding(ctx.manager, connection)

    logger.info("Identity %s left room %s", bound.identity_id, room_id)

    return HandlerResult(
        success=True,
        response=WSServerMessage(
            type=MessageType.LEFT,
            request_id=ctx.message.request_id,
            payload=to_payload(LeftPayload(room_id=room_id)),
        ),
        broadcast=state_message(snapshot) if snapshot else None,
        room_id=room_id,
    )
