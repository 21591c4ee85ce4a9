"""Game engine module - pure functional board logic.

This module provides:
- Move application and validation against the 3x3 grid
- Win line and draw detection
- Grid fabrication for admin fun-mode actions

Usage:
    from xo_arena.services.game.engine import apply_move, evaluate, empty_grid

    grid = apply_move(empty_grid(), 4, Symbol.X)
    result = evaluate(grid)
    if result.is_terminal:
        print(result.winner, result.line)
"""

from .board import (
    BOARD_SIZE,
    WIN_LINES,
    Evaluation,
    InvalidMoveError,
    apply_move,
    empty_cells,
    empty_grid,
    evaluate,
    other,
)
from .cheats import fabricate_draw, fabricate_win, pick_random_cell

__all__ = [
    # Board
    "BOARD_SIZE",
    "WIN_LINES",
    "Evaluation",
    "InvalidMoveError",
    "apply_move",
    "empty_cells",
    "empty_grid",
    "evaluate",
    "other",
    # Cheats
    "fabricate_draw",
    "fabricate_win",
    "pick_random_cell",
]
