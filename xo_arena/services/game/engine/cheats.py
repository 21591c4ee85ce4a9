"""Grid fabrication for admin fun-mode actions.

These helpers only build grids; the room decides when they may be used and
does the win/draw bookkeeping afterwards.
"""

import logging
import random
from itertools import product

from xo_arena.schemas.game import Grid, Outcome, Symbol

from .board import WIN_LINES, InvalidMoveError, empty_cells, evaluate, other

logger = logging.getLogger(__name__)


def fabricate_win(grid: Grid, symbol: Symbol) -> Grid:
    """Complete a line for ``symbol``.

    Prefers a line with no opposing marks, taking the one that already holds
    the most of ``symbol``'s marks. When every line is contested, the line with
    the fewest opposing marks is overwritten. Ties go to scan order.
    """
    opponent = other(symbol)

    def opposing(line: tuple[int, int, int]) -> int:
        return sum(1 for i in line if grid[i] == opponent)

    def own(line: tuple[int, int, int]) -> int:
        return sum(1 for i in line if grid[i] == symbol)

    clean_lines = [line for line in WIN_LINES if opposing(line) == 0]
    if clean_lines:
        target = max(clean_lines, key=own)
    else:
        target = min(WIN_LINES, key=opposing)
        logger.debug("No uncontested line for %s, overwriting %s", symbol.value, target)

    cells = list(grid)
    for i in target:
        cells[i] = symbol
    return tuple(cells)


def fabricate_draw(grid: Grid, first: Symbol) -> Grid:
    """Fill the board so that no line is completed.

    Empty cells are filled alternately starting with ``first``, flipping
    individual cells until no line is complete. Existing marks are kept when
    possible; otherwise the full draw board closest to ``grid`` is returned.
    """
    empties = empty_cells(grid)
    pattern = [first if n % 2 == 0 else other(first) for n in range(len(empties))]

    # All-zero flips come first, so the plain alternating fill is tried first
    for flips in product((0, 1), repeat=len(empties)):
        cells = list(grid)
        for index, symbol, flip in zip(empties, pattern, flips):
            cells[index] = other(symbol) if flip else symbol
        candidate = tuple(cells)
        if evaluate(candidate).winner == Outcome.DRAW:
            return candidate

    logger.debug("Existing marks block every draw fill, rewriting the board")

    def changed(candidate: Grid) -> int:
        return sum(1 for mine, theirs in zip(grid, candidate) if mine is not None and mine != theirs)

    draws = [
        candidate
        for candidate in product((Symbol.X, Symbol.O), repeat=len(grid))
        if evaluate(candidate).winner == Outcome.DRAW
    ]
    return min(draws, key=changed)


def pick_random_cell(grid: Grid, rng: random.Random) -> int:
    """Choose a random empty cell.

    Raises:
        InvalidMoveError: If the board is full.
    """
    empties = empty_cells(grid)
    if not empties:
        raise InvalidMoveError("No empty cell left on the board")
    return rng.choice(empties)
