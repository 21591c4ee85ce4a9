"""Result type for room operations.

Room operations report failures as values rather than exceptions, with error
codes suitable for client localization.
"""

from dataclasses import dataclass

from xo_arena.schemas.game import GameSnapshot, Role


class ErrorCode:
    """Error codes returned to the originating connection only."""

    INVALID_MOVE = "INVALID_MOVE"
    NOT_YOUR_TURN = "NOT_YOUR_TURN"
    GAME_CONCLUDED = "GAME_CONCLUDED"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    UNKNOWN_ROOM = "UNKNOWN_ROOM"
    UNBOUND_CONNECTION = "UNBOUND_CONNECTION"
    UNKNOWN_ACTION = "UNKNOWN_ACTION"


@dataclass
class RoomResult:
    """Result of a room operation.

    On success ``snapshot`` holds the state to broadcast. ``role``, ``is_admin``
    and ``superseded_connection_id`` are only filled in by ``admit``.
    """

    success: bool = True
    snapshot: GameSnapshot | None = None
    error_code: str | None = None
    error_message: str | None = None
    role: Role | None = None
    is_admin: bool = False
    superseded_connection_id: str | None = None

    @classmethod
    def ok(cls, snapshot: GameSnapshot, **extra) -> "RoomResult":
        """Create a successful result carrying the new snapshot."""
        return cls(success=True, snapshot=snapshot, **extra)

    @classmethod
    def failure(cls, code: str, message: str) -> "RoomResult":
        """Create a failure result with error details."""
        return cls(
            success=False,
            snapshot=None,
            error_code=code,
            error_message=message,
        )
