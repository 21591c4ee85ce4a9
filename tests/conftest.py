"""Shared fixtures and helpers for room engine tests."""

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

import pytest

from xo_arena.schemas.game import Grid, Symbol
from xo_arena.services.game import RoomRegistry, set_room_registry
from xo_arena.services.game.room import Room
from xo_arena.services.websocket.manager import ConnectionManager, set_connection_manager

# Fixed identities for deterministic testing
IDENTITY_A = "identity-a"
IDENTITY_B = "identity-b"
IDENTITY_C = "identity-c"

ROOM_ID = "R1"

_MARKS = {"X": Symbol.X, "O": Symbol.O, ".": None}


T = TypeVar("T")


def run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def grid_from(layout: str) -> Grid:
    """Build a grid from a 9-character layout such as ``"XO.X..O.."``."""
    cells = layout.replace(" ", "").replace("\n", "")
    assert len(cells) == 9, f"layout must have 9 cells, got {len(cells)}"
    return tuple(_MARKS[c] for c in cells)


def layout_of(board: list[Symbol | None] | Grid) -> str:
    """Inverse of grid_from, handy for readable assertions."""
    return "".join(cell.value if cell is not None else "." for cell in board)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def seated_room(**kwargs) -> Room:
    """Room R1 with A admitted as X (admin, fun mode on) and B as O."""
    room = Room(ROOM_ID, **kwargs)
    await room.admit(IDENTITY_A, "conn-a", cheat_enabled=True)
    await room.admit(IDENTITY_B, "conn-b")
    return room


async def play(room: Room, *moves: tuple[str, int]):
    """Apply (identity, index) moves in order, asserting each is accepted."""
    result = None
    for identity_id, index in moves:
        result = await room.move(identity_id, index)
        assert result.success, f"move {index} by {identity_id} failed: {result.error_code}"
    return result


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock):
    """Fresh global registry with a 60s grace window."""
    room_registry = RoomRegistry(grace_seconds=60, cheats_allowed=True, clock=clock)
    set_room_registry(room_registry)
    yield room_registry
    set_room_registry(None)


@pytest.fixture
def manager():
    """Fresh global connection manager with a short send timeout."""
    connection_manager = ConnectionManager(server_id="test-server", send_timeout=0.2)
    set_connection_manager(connection_manager)
    yield connection_manager
    set_connection_manager(None)
