from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from xo_arena.schemas.game import CamelModel, Role


class MessageType(str, Enum):
    """WebSocket message types."""

    # Core
    PING = "ping"
    PONG = "pong"
    CONNECTED = "connected"
    ERROR = "error"

    # Room membership
    JOIN_ROOM = "join_room"
    JOINED = "joined"
    LEAVE_ROOM = "leave_room"
    LEFT = "left"

    # Game
    MOVE = "move"
    RESET = "reset"
    CHEAT = "cheat"
    SET_CHEAT_MODE = "set_cheat_mode"
    CHEAT_MODE = "cheat_mode"
    STATE = "state"


class WSCloseCode:
    """WebSocket close codes (RFC 6455)."""

    NORMAL = 1000
    GOING_AWAY = 1001
    PROTOCOL_ERROR = 1002
    POLICY_VIOLATION = 1008
    MESSAGE_TOO_BIG = 1009
    INTERNAL_ERROR = 1011


class WSClientMessage(BaseModel):
    """Message sent from client to server."""

    type: MessageType
    request_id: str | None = None
    payload: dict[str, Any] | None = None


class WSServerMessage(BaseModel):
    """Message sent from server to client."""

    type: MessageType
    request_id: str | None = None
    payload: dict[str, Any] | None = None


# --- Inbound payload schemas ---


class JoinRoomPayload(CamelModel):
    """Payload for the 'join_room' message from client."""

    room_id: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")
    identity_id: str = Field(..., min_length=1, max_length=128)
    cheat_enabled: bool = False


class MovePayload(CamelModel):
    """Payload for the 'move' message. Range is checked by the board engine."""

    index: int


class CheatPayload(CamelModel):
    """Payload for the 'cheat' message."""

    action: str = Field(..., min_length=1)


class SetCheatModePayload(CamelModel):
    """Payload for the 'set_cheat_mode' message."""

    enabled: bool


# --- Outbound payload schemas ---


class ConnectedPayload(CamelModel):
    """Payload for the 'connected' message."""

    connection_id: str
    server_id: str


class JoinedPayload(CamelModel):
    """Private acknowledgement of a successful join."""

    room_id: str
    role: Role
    is_admin: bool


class LeftPayload(CamelModel):
    room_id: str


class CheatModePayload(CamelModel):
    enabled: bool


class PongPayload(CamelModel):
    """Payload for the 'pong' message."""

    server_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ErrorPayload(CamelModel):
    """Payload for private error notices."""

    error_code: str
    message: str
