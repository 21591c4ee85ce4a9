"""Board rules for the fixed 3x3 two-symbol game.

Pure functions over an immutable grid (a 9-tuple of ``Symbol | None``):
- apply_move() places a symbol, raising InvalidMoveError on illegal input
- evaluate() detects a completed line or a draw
"""

from dataclasses import dataclass

from xo_arena.schemas.game import Grid, Outcome, Symbol

BOARD_SIZE = 9

# Scan order matters: rows, then columns, then diagonals
WIN_LINES: tuple[tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)


class InvalidMoveError(ValueError):
    """Raised when a move targets an occupied or non-existent cell."""


@dataclass(frozen=True)
class Evaluation:
    """Outcome of evaluating a grid."""

    winner: Outcome | None = None
    line: tuple[int, int, int] | None = None

    @property
    def is_terminal(self) -> bool:
        return self.winner is not None


def empty_grid() -> Grid:
    return (None,) * BOARD_SIZE


def other(symbol: Symbol) -> Symbol:
    return Symbol.O if symbol == Symbol.X else Symbol.X


def empty_cells(grid: Grid) -> list[int]:
    return [i for i, cell in enumerate(grid) if cell is None]


def apply_move(grid: Grid, index: int, symbol: Symbol) -> Grid:
    """Return a new grid with ``symbol`` placed at ``index``.

    Turn ownership is not checked here; that belongs to the room.

    Raises:
        InvalidMoveError: If the index is out of range or the cell is occupied.
    """
    # bool is an int subclass, reject it explicitly
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < BOARD_SIZE:
        raise InvalidMoveError(f"Cell index must be between 0 and {BOARD_SIZE - 1}, got {index!r}")
    if grid[index] is not None:
        raise InvalidMoveError(f"Cell {index} is already taken by {grid[index].value}")

    cells = list(grid)
    cells[index] = symbol
    return tuple(cells)
def evaluate(grid: Grid) -> Evaluation:
    """Check the grid for a completed line or a draw.

    The first completed line in scan order wins, so a grid with several
    completed lines (unreachable through legal play) still evaluates
    deterministically. A draw requires a full board with no completed line.
    """
    for line in WIN_LINES:
        a, b, c = line
        if grid[a] is not None and grid[a] == grid[b] == grid[c]:
            return Evaluation(winner=Outcome(grid[a].value), line=line)

    if all(cell is not None for cell in grid):
        return Evaluation(winner=Outcome.DRAW)

    return Evaluation()
