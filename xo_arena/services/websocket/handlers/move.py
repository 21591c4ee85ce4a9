"""Handler for MOVE messages."""

import logging

from xo_arena.schemas.ws import MessageType, MovePayload

from . import handler
from .base import (
    HandlerContext,
    HandlerResult,
    failure_response,
    resolve_bound_room,
    state_broadcast,
    validate_payload,
)

logger = logging.getLogger(__name__)


@handler(MessageType.MOVE)
async def handle_move(ctx: HandlerContext) -> HandlerResult:
    """Handle MOVE message by placing the caller's symbol on the board."""
    bound, error = resolve_bound_room(ctx)
    if error:
        return error

    payload, error = validate_payload(ctx.message.payload, MovePayload, ctx.message.request_id)
    if error:
        return error

    result = await bound.room.move(bound.identity_id, payload.index)
    if not result.success:
        return failure_response(result, ctx.message.request_id)

    return state_broadcast(result.snapshot)
