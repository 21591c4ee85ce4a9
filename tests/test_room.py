"""Tests for Room operations.

Critical scenarios tested:
- Role assignment, admin election and reconnect re-attachment
- Turn order, occupied cells and moves after conclusion
- Score attribution for wins and draws
- Reset by admin only, with scores preserved
- Leave keeps the role reservation
- Concurrent admits into a fresh room
"""

import asyncio
import random

from xo_arena.schemas.game import GamePhase, Outcome, Role, Symbol
from xo_arena.services.game import ErrorCode
from xo_arena.services.game.room import Room

from .conftest import (
    IDENTITY_A,
    IDENTITY_B,
    IDENTITY_C,
    ROOM_ID,
    FakeClock,
    play,
    run,
    seated_room,
)

# A, B alternate; X completes the top row on the fifth move
TOP_ROW_WIN = [(IDENTITY_A, 0), (IDENTITY_B, 3), (IDENTITY_A, 1), (IDENTITY_B, 4), (IDENTITY_A, 2)]

# Fills the board without any completed line
DRAW_GAME = [
    (IDENTITY_A, 0),
    (IDENTITY_B, 1),
    (IDENTITY_A, 2),
    (IDENTITY_B, 4),
    (IDENTITY_A, 3),
    (IDENTITY_B, 5),
    (IDENTITY_A, 7),
    (IDENTITY_B, 6),
    (IDENTITY_A, 8),
]


class TestAdmit:
    """Test role assignment on join."""

    def test_first_identity_gets_x_and_admin(self) -> None:
        """The first identity in an empty room gets X and becomes admin."""

        async def scenario():
            room = Room(ROOM_ID)
            return await room.admit(IDENTITY_A, "conn-a")

        result = run(scenario())

        assert result.success
        assert result.role == Role.X
        assert result.is_admin
        assert result.snapshot.players[0].identity_id == IDENTITY_A
        assert result.snapshot.players[0].is_admin

    def test_second_gets_o_and_third_is_spectator(self) -> None:
        """Seats fill X then O; everyone after that spectates."""

        async def scenario():
            room = Room(ROOM_ID)
            await room.admit(IDENTITY_A, "conn-a")
            second = await room.admit(IDENTITY_B, "conn-b")
            third = await room.admit(IDENTITY_C, "conn-c")
            return second, third

        second, third = run(scenario())

        assert second.role == Role.O
        assert not second.is_admin
        assert third.role == Role.SPECTATOR
        assert [(p.identity_id, p.role) for p in third.snapshot.players] == [
            (IDENTITY_A, Role.X),
            (IDENTITY_B, Role.O),
            (IDENTITY_C, Role.SPECTATOR),
        ]

    def test_reconnect_reattaches_role_and_supersedes_old_connection(self) -> None:
        """A reload gets the same role back on the new connection."""

        async def scenario():
            room = await seated_room()
            result = await room.admit(IDENTITY_B, "conn-b-2")
            return room, result

        room, result = run(scenario())

        assert result.role == Role.O
        assert result.superseded_connection_id == "conn-b"
        assert room.connection_for(IDENTITY_B) == "conn-b-2"

    def test_reconnect_after_leave_keeps_role(self) -> None:
        """A reserved role survives a leave and a spectator joining meanwhile."""

        async def scenario():
            room = await seated_room()
            await room.leave(IDENTITY_A, "conn-a")
            await room.admit(IDENTITY_C, "conn-c")
            return await room.admit(IDENTITY_A, "conn-a-2")

        result = run(scenario())

        assert result.role == Role.X
        assert result.is_admin
        assert result.superseded_connection_id is None

    def test_admin_persists_after_leaving(self) -> None:
        """The first identity stays admin even while disconnected."""

        async def scenario():
            room = await seated_room()
            await room.leave(IDENTITY_A)
            await room.admit(IDENTITY_C, "conn-c")
            return room

        room = run(scenario())

        assert room.admin == IDENTITY_A

    def test_racing_admits_yield_one_x_and_one_o(self) -> None:
        """Two identities joining a brand-new room at once get distinct roles."""

        async def scenario():
            room = Room(ROOM_ID)
            results = await asyncio.gather(
                room.admit(IDENTITY_A, "conn-a"),
                room.admit(IDENTITY_B, "conn-b"),
            )
            return room, results

        room, results = run(scenario())

        assert sorted(r.role.value for r in results) == ["O", "X"]
        assert room.admin in (IDENTITY_A, IDENTITY_B)
        assert sum(1 for r in results if r.is_admin) == 1


class TestMove:
    """Test move validation and application."""

    def test_scenario_top_row_win(self) -> None:
        """A=X moves 4, B=O moves 0, then X later completes the top row."""

        async def scenario():
            room = await seated_room()
            first = await room.move(IDENTITY_A, 4)
            second = await room.move(IDENTITY_B, 0)

            other_room = await seated_room()
            final = await play(other_room, *TOP_ROW_WIN)
            return first, second, final

        first, second, final = run(scenario())

        assert first.snapshot.board[4] == Symbol.X
        assert first.snapshot.current_player == Symbol.O
        assert second.snapshot.board[0] == Symbol.O
        assert second.snapshot.current_player == Symbol.X

        assert final.snapshot.winner == Outcome.X
        assert final.snapshot.line == [0, 1, 2]
        assert final.snapshot.scores.by_identity == {IDENTITY_A: 1}
        assert final.snapshot.scores.draws == 0

    def test_draw_increments_draw_counter(self) -> None:
        """A full board without a line counts one draw and credits nobody."""

        async def scenario():
            room = await seated_room()
            result = await play(room, *DRAW_GAME)
            return room, result

        room, result = run(scenario())

        assert result.snapshot.winner == Outcome.DRAW
        assert result.snapshot.line is None
        assert result.snapshot.scores.draws == 1
        assert result.snapshot.scores.by_identity == {}
        assert room.phase == GamePhase.CONCLUDED

    def test_wrong_role_is_rejected(self) -> None:
        """O moving on X's turn fails and leaves the room unchanged."""

        async def scenario():
            room = await seated_room()
            before = await room.snapshot()
            result = await room.move(IDENTITY_B, 0)
            return before, result, await room.snapshot()

        before, result, after = run(scenario())

        assert not result.success
        assert result.error_code == ErrorCode.NOT_YOUR_TURN
        assert after == before

    def test_spectator_cannot_move(self) -> None:
        """Spectators never hold the turn."""

        async def scenario():
            room = await seated_room()
            await room.admit(IDENTITY_C, "conn-c")
            return await room.move(IDENTITY_C, 0)

        result = run(scenario())

        assert result.error_code == ErrorCode.NOT_YOUR_TURN

    def test_occupied_cell_is_rejected(self) -> None:
        """Playing on a taken cell fails and leaves the room unchanged."""

        async def scenario():
            room = await seated_room()
            await room.move(IDENTITY_A, 4)
            before = await room.snapshot()
            result = await room.move(IDENTITY_B, 4)
            return before, result, await room.snapshot()

        before, result, after = run(scenario())

        assert result.error_code == ErrorCode.INVALID_MOVE
        assert after == before

    def test_out_of_range_is_rejected(self) -> None:
        """Index 9 is off the board and leaves the room unchanged."""

        async def scenario():
            room = await seated_room()
            before = await room.snapshot()
            result = await room.move(IDENTITY_A, 9)
            return before, result, await room.snapshot()

        before, result, after = run(scenario())

        assert result.error_code == ErrorCode.INVALID_MOVE
        assert after == before

    def test_move_after_conclusion_is_rejected(self) -> None:
        """No move is accepted once the game has a winner."""

        async def scenario():
            room = await seated_room()
            await play(room, *TOP_ROW_WIN)
            before = await room.snapshot()
            # X still holds the turn after winning
            result = await room.move(IDENTITY_A, 8)
            return before, result, await room.snapshot()

        before, result, after = run(scenario())

        assert result.error_code == ErrorCode.GAME_CONCLUDED
        assert after == before
        assert after.winner == Outcome.X

    def test_move_without_binding_is_rejected(self) -> None:
        """An identity that left cannot move until it rejoins."""

        async def scenario():
            room = await seated_room()
            await room.leave(IDENTITY_A)
            return await room.move(IDENTITY_A, 0)

        result = run(scenario())

        assert result.error_code == ErrorCode.UNBOUND_CONNECTION

    def test_turn_tracks_mark_counts_over_random_games(self) -> None:
        """Strict alternation: turn is X on equal counts, O when X is one ahead."""

        async def scenario(seed: int):
            rng = random.Random(seed)
            room = await seated_room()
            movers = {Symbol.X: IDENTITY_A, Symbol.O: IDENTITY_B}
            snapshot = await room.snapshot()
            while snapshot.winner is None:
                free = [i for i, cell in enumerate(snapshot.board) if cell is None]
                result = await room.move(movers[snapshot.current_player], rng.choice(free))
                assert result.success
                snapshot = result.snapshot

                x_count = snapshot.board.count(Symbol.X)
                o_count = snapshot.board.count(Symbol.O)
                assert x_count - o_count in (0, 1)
                if snapshot.winner is None:
                    expected = Symbol.X if x_count == o_count else Symbol.O
                    assert snapshot.current_player == expected

        for seed in range(25):
            run(scenario(seed))

    def test_version_increases_on_accepted_moves_only(self) -> None:
        """Rejected moves keep the version; accepted moves bump it by one."""

        async def scenario():
            room = await seated_room()
            v0 = (await room.snapshot()).version
            await room.move(IDENTITY_B, 0)  # rejected
            v1 = (await room.snapshot()).version
            await room.move(IDENTITY_A, 0)
            v2 = (await room.snapshot()).version
            return v0, v1, v2

        v0, v1, v2 = run(scenario())

        assert v0 == v1
        assert v2 == v1 + 1


class TestReset:
    """Test admin-only reset."""

    def test_admin_reset_after_win_preserves_scores(self) -> None:
        """Reset clears the board and outcome but keeps the score ledger."""

        async def scenario():
            room = await seated_room()
            won = await play(room, *TOP_ROW_WIN)
            reset = await room.reset(IDENTITY_A)
            return room, won, reset

        room, won, reset = run(scenario())

        assert reset.success
        assert reset.snapshot.board == [None] * 9
        assert reset.snapshot.current_player == Symbol.X
        assert reset.snapshot.winner is None
        assert reset.snapshot.line is None
        assert reset.snapshot.scores == won.snapshot.scores
        assert room.phase == GamePhase.IN_PROGRESS

    def test_non_admin_reset_is_rejected(self) -> None:
        """Only the admin may reset."""

        async def scenario():
            room = await seated_room()
            await room.move(IDENTITY_A, 4)
            before = await room.snapshot()
            result = await room.reset(IDENTITY_B)
            return before, result, await room.snapshot()

        before, result, after = run(scenario())

        assert result.error_code == ErrorCode.NOT_AUTHORIZED
        assert after == before

    def test_new_game_after_reset_is_playable(self) -> None:
        """Scores accumulate across games separated by a reset."""

        async def scenario():
            room = await seated_room()
            await play(room, *TOP_ROW_WIN)
            await room.reset(IDENTITY_A)
            return await play(room, *TOP_ROW_WIN)

        result = run(scenario())

        assert result.snapshot.scores.by_identity == {IDENTITY_A: 2}
        assert result.snapshot.symbol_scores.x == 2
        assert result.snapshot.symbol_scores.o == 0


class TestLeave:
    """Test leaving and idle tracking."""

    def test_leave_marks_player_disconnected_but_keeps_seat(self) -> None:
        """A leaving player stays listed with its role, disconnected."""

        async def scenario():
            room = await seated_room()
            return await room.leave(IDENTITY_B, "conn-b")

        result = run(scenario())

        players = {p.identity_id: p for p in result.snapshot.players}
        assert players[IDENTITY_B].role == Role.O
        assert not players[IDENTITY_B].connected
        assert players[IDENTITY_A].connected

    def test_spectator_disappears_from_players_on_leave(self) -> None:
        """Spectators hold no reservation, so leaving removes them."""

        async def scenario():
            room = await seated_room()
            await room.admit(IDENTITY_C, "conn-c")
            return await room.leave(IDENTITY_C, "conn-c")

        result = run(scenario())

        assert IDENTITY_C not in {p.identity_id for p in result.snapshot.players}

    def test_stale_connection_leave_is_ignored(self) -> None:
        """A superseded socket closing must not unbind the fresh one."""

        async def scenario():
            room = await seated_room()
            await room.admit(IDENTITY_A, "conn-a-2")
            await room.leave(IDENTITY_A, "conn-a")
            return room

        room = run(scenario())

        assert room.connection_for(IDENTITY_A) == "conn-a-2"

    def test_last_leave_starts_idle_clock(self) -> None:
        """The idle clock starts only when the last binding goes."""
        clock = FakeClock(start=50.0)

        async def scenario():
            room = await seated_room(clock=clock)
            assert room.idle_since is None
            await room.leave(IDENTITY_A)
            assert room.idle_since is None
            clock.advance(5)
            await room.leave(IDENTITY_B)
            return room

        room = run(scenario())

        assert room.connected_count == 0
        assert room.idle_since == 55.0
