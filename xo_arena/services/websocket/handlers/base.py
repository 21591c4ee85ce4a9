"""Base types and helpers for WebSocket message handlers."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from pydantic import BaseModel, ValidationError

from xo_arena.schemas.game import GameSnapshot
from xo_arena.schemas.ws import (
    ErrorPayload,
    MessageType,
    WSClientMessage,
    WSServerMessage,
)
from xo_arena.services.game import ErrorCode, Room, RoomResult, get_room_registry

if TYPE_CHECKING:
    from xo_arena.services.websocket.manager import ConnectionManager

T = TypeVar("T", bound=BaseModel)


@dataclass
class HandlerContext:
    """Context passed to each message handler."""

    connection_id: str
    message: WSClientMessage
    manager: "ConnectionManager"


@dataclass
class HandlerResult:
    """Result returned by message handlers.

    ``response`` goes only to the originating connection; ``broadcast`` goes to
    every connection subscribed to ``room_id``.
    """

    success: bool
    response: WSServerMessage | None = None
    broadcast: WSServerMessage | None = None
    room_id: str | None = None


@dataclass
class BoundRoom:
    """A connection's join-time binding, resolved to a live room."""

    room: Room
    identity_id: str


def to_payload(model: BaseModel) -> dict:
    """Dump a payload model to its JSON-ready camelCase form."""
    return model.model_dump(mode="json", by_alias=True)


def validate_payload(
    payload: dict | None,
    schema: type[T],
    request_id: str | None,
) -> tuple[T | None, HandlerResult | None]:
    """Validate payload against a Pydantic schema.

    Args:
        payload: The raw payload dict to validate.
        schema: The Pydantic model class to validate against.
        request_id: The request_id for error responses.

    Returns:
        Tuple of (validated_payload, error_result). One will be None.
    """
    try:
        validated = schema.model_validate(payload or {})
        return validated, None
    except ValidationError as e:
        return None, error_response(
            error_code="VALIDATION_ERROR",
            message=str(e),
            request_id=request_id,
        )


def error_response(
    error_code: str,
    message: str,
    request_id: str | None = None,
) -> HandlerResult:
    """Build a private error HandlerResult."""
    return HandlerResult(
        success=False,
        response=WSServerMessage(
            type=MessageType.ERROR,
            request_id=request_id,
            payload=to_payload(ErrorPayload(error_code=error_code, message=message)),
        ),
    )


def failure_response(result: RoomResult, request_id: str | None = None) -> HandlerResult:
    """Turn a failed room operation into a private error."""
    return error_response(
        error_code=result.error_code or "INTERNAL_ERROR",
        message=result.error_message or "Unknown error",
        request_id=request_id,
    )


def state_message(snapshot: GameSnapshot) -> WSServerMessage:
    return WSServerMessage(type=MessageType.STATE, payload=snapshot.to_payload())


def state_broadcast(snapshot: GameSnapshot) -> HandlerResult:
    """Successful result that publishes the snapshot to the whole room."""
    return HandlerResult(
        success=True,
        broadcast=state_message(snapshot),
        room_id=snapshot.room_id,
    )


def resolve_bound_room(ctx: HandlerContext) -> tuple[BoundRoom | None, HandlerResult | None]:
    """Resolve the connection's binding to its room and identity.

    Returns:
        Tuple of (bound_room, error_result). One will be None.
    """
    connection = ctx.manager.get_connection(ctx.connection_id)
    if connection is None or not connection.is_bound:
        return None, error_response(
            error_code=ErrorCode.UNBOUND_CONNECTION,
            message="Join a room first",
            request_id=ctx.message.request_id,
        )

    room = get_room_registry().get(connection.room_id)
    if room is None:
        return None, error_response(
            error_code=ErrorCode.UNKNOWN_ROOM,
            message=f"Room {connection.room_id} no longer exists",
            request_id=ctx.message.request_id,
        )

    return BoundRoom(room=room, identity_id=connection.identity_id), None
