"""Handlers for admin fun-mode messages (CHEAT and SET_CHEAT_MODE)."""

import logging

from xo_arena.schemas.game import CheatAction
from xo_arena.schemas.ws import (
    CheatModePayload,
    CheatPayload,
    MessageType,
    SetCheatModePayload,
    WSServerMessage,
)
from xo_arena.services.game import ErrorCode

from . import handler
from .base import (
    HandlerContext,
    HandlerResult,
    error_response,
    failure_response,
    resolve_bound_room,
    state_broadcast,
    to_payload,
    validate_payload,
)

logger = logging.getLogger(__name__)


@handler(MessageType.CHEAT)
async def handle_cheat(ctx: HandlerContext) -> HandlerResult:
    """Handle CHEAT message.

    The room re-checks admin status and the fun-mode flag; nothing the client
    claims about itself is trusted.
    """
    bound, error = resolve_bound_room(ctx)
    if error:
        return error

    payload, error = validate_payload(ctx.message.payload, CheatPayload, ctx.message.request_id)
    if error:
        return error

    try:
        action = CheatAction(payload.action)
    except ValueError:
        logger.warning("Unknown cheat action %r from connection %s", payload.action, ctx.connection_id)
        return error_response(
            error_code=ErrorCode.UNKNOWN_ACTION,
            message=f"Unknown cheat action: {payload.action}",
            request_id=ctx.message.request_id,
        )

    result = await bound.room.cheat(bound.identity_id, action)
    if not result.success:
        return failure_response(result, ctx.message.request_id)

    return state_broadcast(result.snapshot)


@handler(MessageType.SET_CHEAT_MODE)
async def handle_set_cheat_mode(ctx: HandlerContext) -> HandlerResult:
    """Handle SET_CHEAT_MODE message, the server side of the fun-mode toggle."""
    bound, error = resolve_bound_room(ctx)
    if error:
        return error

    payload, error = validate_payload(
        ctx.message.payload, SetCheatModePayload, ctx.message.request_id
    )
    if error:
        return error

    result = await bound.room.set_cheat_mode(bound.identity_id, payload.enabled)
    if not result.success:
        return failure_response(result, ctx.message.request_id)

    return HandlerResult(
        success=True,
        response=WSServerMessage(
            type=MessageType.CHEAT_MODE,
            request_id=ctx.message.request_id,
            payload=to_payload(CheatModePayload(enabled=payload.enabled)),
        ),
    )
