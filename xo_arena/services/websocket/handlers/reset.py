"""Handler for RESET messages."""

from xo_arena.schemas.ws import MessageType

from . import handler
from .base import (
    HandlerContext,
    HandlerResult,
    failure_response,
    resolve_bound_room,
    state_broadcast,
)


@handler(MessageType.RESET)
async def handle_reset(ctx: HandlerContext) -> HandlerResult:
    """Handle RESET message. Only the room admin may start a new game."""
    bound, error = resolve_bound_room(ctx)
    if error:
        return error

    result = await bound.room.reset(bound.identity_id)
    if not result.success:
        return failure_response(result, ctx.message.request_id)

    return state_broadcast(result.snapshot)
