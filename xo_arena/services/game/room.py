"""Authoritative state for a single game room.

A Room owns its grid, turn, phase, role reservations, connection bindings,
admin and score ledger. Every operation runs inside the room's own lock, so
operations on one room are serialized while different rooms proceed
independently. Operations are all-or-nothing: a failure returns a
``RoomResult.failure`` and leaves state untouched.
"""

import asyncio
import logging
import random
import time
from collections.abc import Callable

from xo_arena.schemas.game import (
    CheatAction,
    GamePhase,
    GameSnapshot,
    Grid,
    Outcome,
    PlayerSnapshot,
    Role,
    ScoresSnapshot,
    Symbol,
    SymbolScores,
)

from .engine import (
    InvalidMoveError,
    apply_move,
    empty_grid,
    evaluate,
    fabricate_draw,
    fabricate_win,
    other,
    pick_random_cell,
)
from .results import ErrorCode, RoomResult

logger = logging.getLogger(__name__)

# Cheats that place marks or pass the turn only make sense mid-game
_IN_PROGRESS_CHEATS = frozenset(
    {
        CheatAction.FORCE_X,
        CheatAction.FORCE_O,
        CheatAction.FORCE_DRAW,
        CheatAction.FILL_RANDOM,
        CheatAction.SKIP_TURN,
    }
)


class Room:
    """One isolated game instance with its own grid, roles and scores."""

    def __init__(
        self,
        room_id: str,
        *,
        cheats_allowed: bool = True,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.room_id = room_id
        self._cheats_allowed = cheats_allowed
        self._rng = rng or random.Random()
        self._clock = clock
        self._lock = asyncio.Lock()

        # Game state
        self._grid: Grid = empty_grid()
        self._turn = Symbol.X
        self._phase = GamePhase.IN_PROGRESS
        self._winner: Outcome | None = None
        self._win_line: tuple[int, int, int] | None = None

        # Membership
        self._reservations: dict[str, Symbol] = {}  # identity -> symbol, survives disconnects
        self._bindings: dict[str, str] = {}  # identity -> active connection_id
        self._admin: str | None = None
        self._cheat_flags: set[str] = set()

        # Score ledger
        self._wins: dict[str, int] = {}
        self._draws = 0

        self._version = 0
        self.idle_since: float | None = clock()

    # --- Introspection ---

    @property
    def admin(self) -> str | None:
        return self._admin

    @property
    def phase(self) -> GamePhase:
        return self._phase

    @property
    def is_busy(self) -> bool:
        """True while an operation holds the room lock."""
        return self._lock.locked()

    @property
    def connected_count(self) -> int:
        return len(self._bindings)

    def connection_for(self, identity_id: str) -> str | None:
        return self._bindings.get(identity_id)

    def role_of(self, identity_id: str) -> Role:
        symbol = self._reservations.get(identity_id)
        return Role(symbol.value) if symbol else Role.SPECTATOR

    def touch(self) -> None:
        """Restart the idle grace window if nobody is connected."""
        if not self._bindings:
            self.idle_since = self._clock()

    # --- Operations ---

    async def snapshot(self) -> GameSnapshot:
        async with self._lock:
            return self._build_snapshot()

    async def admit(
        self, identity_id: str, connection_id: str, cheat_enabled: bool = False
    ) -> RoomResult:
        """Admit an identity on a new connection and return its role.

        An identity that already holds X or O gets the same role back and the
        previous connection, if any, is superseded. Otherwise X is assigned if
        free, then O, then spectator. The first identity ever admitted becomes
        the room admin.
        """
        async with self._lock:
            previous = self._bindings.get(identity_id)
            superseded = previous if previous and previous != connection_id else None

            if identity_id in self._reservations:
                logger.info(
                    "Identity %s rejoined room %s as %s",
                    identity_id,
                    self.room_id,
                    self._reservations[identity_id].value,
                )
            else:
                held = set(self._reservations.values())
                for symbol in (Symbol.X, Symbol.O):
                    if symbol not in held:
                        self._reservations[identity_id] = symbol
                        break

            self._bindings[identity_id] = connection_id
            if self._admin is None:
                self._admin = identity_id
                logger.info("Identity %s is admin of room %s", identity_id, self.room_id)

            if cheat_enabled:
                self._cheat_flags.add(identity_id)
            else:
                self._cheat_flags.discard(identity_id)

            self.idle_since = None
            self._version += 1

            role = self.role_of(identity_id)
            logger.info(
                "Admitted identity %s to room %s: role=%s, connection=%s, superseded=%s",
                identity_id,
                self.room_id,
                role.value,
                connection_id,
                superseded,
            )
            return RoomResult.ok(
                self._build_snapshot(),
                role=role,
                is_admin=identity_id == self._admin,
                superseded_connection_id=superseded,
            )

    async def move(self, identity_id: str, index: int) -> RoomResult:
        """Place the caller's symbol at ``index`` if it is their turn."""
        async with self._lock:
            if identity_id not in self._bindings:
                return self._reject(
                    ErrorCode.UNBOUND_CONNECTION, "You are not in this room", identity_id
                )

            role = self.role_of(identity_id)
            if role.value != self._turn.value:
                return self._reject(ErrorCode.NOT_YOUR_TURN, "It's not your turn", identity_id)

            if self._phase == GamePhase.CONCLUDED:
                return self._reject(
                    ErrorCode.GAME_CONCLUDED, "The game has already ended", identity_id
                )

            try:
                grid = apply_move(self._grid, index, self._turn)
            except InvalidMoveError as e:
                return self._reject(ErrorCode.INVALID_MOVE, str(e), identity_id)

            self._grid = grid
            self._settle()
            self._version += 1

            logger.debug(
                "Room %s: %s played %s at %s", self.room_id, identity_id, role.value, index
            )
            return RoomResult.ok(self._build_snapshot())

    async def reset(self, identity_id: str) -> RoomResult:
        """Start a new game. Admin only; scores are preserved."""
        async with self._lock:
            if identity_id != self._admin:
                return self._reject(
                    ErrorCode.NOT_AUTHORIZED, "Only the room admin can reset", identity_id
                )

            self._clear_game()
            self._version += 1

            logger.info("Room %s reset by %s", self.room_id, identity_id)
            return RoomResult.ok(self._build_snapshot())

    async def leave(self, identity_id: str, connection_id: str | None = None) -> RoomResult:
        """Drop the identity's active binding, keeping its role reservation.

        When ``connection_id`` is given and no longer matches the binding (the
        connection was superseded by a reconnect), nothing changes.
        """
        async with self._lock:
            current = self._bindings.get(identity_id)
            if current is None or (connection_id is not None and current != connection_id):
                logger.debug(
                    "Ignoring leave for %s in room %s: binding=%s, connection=%s",
                    identity_id,
                    self.room_id,
                    current,
                    connection_id,
                )
                return RoomResult.ok(self._build_snapshot())

            del self._bindings[identity_id]
            if not self._bindings:
                self.idle_since = self._clock()
            self._version += 1

            logger.info(
                "Identity %s left room %s (%d still connected)",
                identity_id,
                self.room_id,
                len(self._bindings),
            )
            return RoomResult.ok(self._build_snapshot())

    async def set_cheat_mode(self, identity_id: str, enabled: bool) -> RoomResult:
        """Toggle fun mode for the admin."""
        async with self._lock:
            if identity_id != self._admin:
                return self._reject(
                    ErrorCode.NOT_AUTHORIZED, "Only the room admin can use fun mode", identity_id
                )

            if enabled:
                self._cheat_flags.add(identity_id)
            else:
                self._cheat_flags.discard(identity_id)

            logger.info(
                "Fun mode %s for %s in room %s",
                "enabled" if enabled else "disabled",
                identity_id,
                self.room_id,
            )
            return RoomResult.ok(self._build_snapshot())

    async def cheat(self, identity_id: str, action: CheatAction) -> RoomResult:
        """Apply an admin fun-mode action, bypassing the normal turn rules."""
        async with self._lock:
            if not self._may_cheat(identity_id):
                return self._reject(
                    ErrorCode.NOT_AUTHORIZED, "Cheats are not available to you", identity_id
                )

            if action in _IN_PROGRESS_CHEATS and self._phase == GamePhase.CONCLUDED:
                return self._reject(
                    ErrorCode.GAME_CONCLUDED, "The game has already ended", identity_id
                )

            if action == CheatAction.FORCE_X:
                self._grid = fabricate_win(self._grid, Symbol.X)
                self._settle()
            elif action == CheatAction.FORCE_O:
                self._grid = fabricate_win(self._grid, Symbol.O)
                self._settle()
            elif action == CheatAction.FORCE_DRAW:
                self._grid = fabricate_draw(self._grid, self._turn)
                self._settle()
            elif action == CheatAction.FILL_RANDOM:
                # An in-progress board always has an empty cell
                index = pick_random_cell(self._grid, self._rng)
                self._grid = apply_move(self._grid, index, self._turn)
                self._settle()
            elif action == CheatAction.SKIP_TURN:
                self._turn = other(self._turn)
            elif action == CheatAction.CLEAR_SCORES:
                self._wins = {}
                self._draws = 0
            elif action == CheatAction.CLEAR_BOARD:
                self._grid = empty_grid()

            self._version += 1
            logger.info("Room %s: %s used cheat %s", self.room_id, identity_id, action.value)
            return RoomResult.ok(self._build_snapshot())

    # --- Internals (caller holds the lock) ---

    def _may_cheat(self, identity_id: str) -> bool:
        return (
            self._cheats_allowed
            and identity_id == self._admin
            and identity_id in self._cheat_flags
        )

    def _holder_of(self, symbol: Symbol) -> str | None:
        for identity_id, reserved in self._reservations.items():
            if reserved == symbol:
                return identity_id
        return None

    def _settle(self) -> None:
        """Evaluate the grid after marks were placed and do the bookkeeping."""
        result = evaluate(self._grid)
        if not result.is_terminal:
            self._turn = other(self._turn)
            return

        self._phase = GamePhase.CONCLUDED
        self._winner = result.winner
        self._win_line = result.line

        if result.winner == Outcome.DRAW:
            self._draws += 1
            logger.info("Room %s ended in a draw", self.room_id)
            return

        holder = self._holder_of(Symbol(result.winner.value))
        if holder is not None:
            self._wins[holder] = self._wins.get(holder, 0) + 1
        logger.info(
            "Room %s won by %s (%s) on line %s",
            self.room_id,
            result.winner.value,
            holder,
            result.line,
        )

    def _clear_game(self) -> None:
        self._grid = empty_grid()
        self._turn = Symbol.X
        self._phase = GamePhase.IN_PROGRESS
        self._winner = None
        self._win_line = None

    def _reject(self, code: str, message: str, identity_id: str) -> RoomResult:
        logger.warning(
            "Room %s rejected operation from %s: %s - %s",
            self.room_id,
            identity_id,
            code,
            message,
        )
        return RoomResult.failure(code, message)

    def _build_snapshot(self) -> GameSnapshot:
        players = [
            PlayerSnapshot(
                identity_id=identity_id,
                role=Role(symbol.value),
                connected=identity_id in self._bindings,
                is_admin=identity_id == self._admin,
            )
            for identity_id, symbol in sorted(
                self._reservations.items(), key=lambda item: item[1] != Symbol.X
            )
        ]
        players.extend(
            PlayerSnapshot(
                identity_id=identity_id,
                role=Role.SPECTATOR,
                connected=True,
                is_admin=identity_id == self._admin,
            )
            for identity_id in self._bindings
            if identity_id not in self._reservations
        )

        x_holder = self._holder_of(Symbol.X)
        o_holder = self._holder_of(Symbol.O)

        return GameSnapshot(
            room_id=self.room_id,
            board=list(self._grid),
            current_player=self._turn,
            winner=self._winner,
            line=list(self._win_line) if self._win_line else None,
            players=players,
            scores=ScoresSnapshot(by_identity=dict(self._wins), draws=self._draws),
            symbol_scores=SymbolScores(
                x=self._wins.get(x_holder, 0) if x_holder else 0,
                o=self._wins.get(o_holder, 0) if o_holder else 0,
                draw=self._draws,
            ),
            version=self._version,
        )
