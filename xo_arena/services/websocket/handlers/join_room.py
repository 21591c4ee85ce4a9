"""Handler for JOIN_ROOM messages."""

import logging

from xo_arena.schemas.ws import JoinedPayload, JoinRoomPayload, MessageType, WSServerMessage
from xo_arena.services.game import ErrorCode, get_room_registry

from . import handler
from .base import (
    HandlerContext,
    HandlerResult,
    error_response,
    state_message,
    to_payload,
    validate_payload,
)
from .leave import release_binding

logger = logging.getLogger(__name__)


@handler(MessageType.JOIN_ROOM)
async def handle_join_room(ctx: HandlerContext) -> HandlerResult:
    """Handle JOIN_ROOM message.

    Creates the room on first use, admits the identity, and binds the
    connection to it. The joiner gets a private JOINED with its role, and the
    whole room gets the new state.
    """
    logger.info(
        "JOIN_ROOM request: connection=%s, request_id=%s, payload=%s",
        ctx.connection_id,
        ctx.message.request_id,
        ctx.message.payload,
    )

    payload, error = validate_payload(
        ctx.message.payload,
        JoinRoomPayload,
        ctx.message.request_id,
    )
    if error:
        logger.warning("Invalid join_room payload from connection %s", ctx.connection_id)
        return error

    # A connection dropped by a failed send must not claim a seat
    connection = ctx.manager.get_connection(ctx.connection_id)
    if connection is None:
        logger.warning("JOIN_ROOM from unknown connection %s", ctx.connection_id)
        return error_response(
            error_code=ErrorCode.UNBOUND_CONNECTION,
            message="Connection is no longer registered",
            request_id=ctx.message.request_id,
        )

    # Switching rooms (or identities) releases the previous seat
    if connection.is_bound and (
        connection.room_id != payload.room_id or connection.identity_id != payload.identity_id
    ):
        previous_room_id = connection.room_id
        snapshot = await release_binding(ctx.manager, connection)
        if snapshot:
            await ctx.manager.send_to_room(previous_room_id, state_message(snapshot))

    room = get_room_registry().get_or_create(payload.room_id)

    # Subscribe before admitting so no broadcast after the admit is missed
    await ctx.manager.bind(ctx.connection_id, room.room_id, payload.identity_id)

    result = await room.admit(
        payload.identity_id,
        ctx.connection_id,
        cheat_enabled=payload.cheat_enabled,
    )

    if result.superseded_connection_id:
        logger.info(
            "Connection %s superseded by %s for identity %s",
            result.superseded_connection_id,
            ctx.connection_id,
            payload.identity_id,
        )
        await ctx.manager.unsubscribe_from_room(result.superseded_connection_id)

    logger.info(
        "JOINED: room=%s, identity=%s, role=%s, admin=%s, connection=%s",
        room.room_id,
        payload.identity_id,
        result.role.value,
        result.is_admin,
        ctx.connection_id,
    )

    return HandlerResult(
        success=True,
        response=WSServerMessage(
            type=MessageType.JOINED,
            request_id=ctx.message.request_id,
            payload=to_payload(
                JoinedPayload(room_id=room.room_id, role=result.role, is_admin=result.is_admin)
            ),
        ),
        broadcast=state_message(result.snapshot),
        room_id=room.room_id,
    )
