from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Symbol(str, Enum):
    X = "X"
    O = "O"  # noqa: E741


class Role(str, Enum):
    X = "X"
    O = "O"  # noqa: E741
    SPECTATOR = "spectator"


class Outcome(str, Enum):
    X = "X"
    O = "O"  # noqa: E741
    DRAW = "draw"


class GamePhase(str, Enum):
    IN_PROGRESS = "in_progress"
    CONCLUDED = "concluded"


# Wire names match the buttons of the web client
class CheatAction(str, Enum):
    FORCE_X = "forceX"
    FORCE_O = "forceO"
    FORCE_DRAW = "forceDraw"
    CLEAR_SCORES = "clearScores"
    FILL_RANDOM = "fillRandom"
    SKIP_TURN = "skipTurn"
    CLEAR_BOARD = "clearBoard"


# A cell is either empty (None) or holds a symbol
Cell = Symbol | None
Grid = tuple[Cell, ...]


class CamelModel(BaseModel):
    """Base for wire models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Snapshot models for broadcasting room state
class PlayerSnapshot(CamelModel):
    model_config = ConfigDict(frozen=True)

    identity_id: str
    role: Role
    connected: bool = True
    is_admin: bool = False


class ScoresSnapshot(CamelModel):
    """Identity-keyed score ledger (canonical form)."""

    model_config = ConfigDict(frozen=True)

    by_identity: dict[str, int] = Field(default_factory=dict)
    draws: int = 0


class SymbolScores(CamelModel):
    """Legacy symbol-keyed view, derived from the current role holders."""

    model_config = ConfigDict(frozen=True)

    x: int = Field(0, alias="X")
    o: int = Field(0, alias="O")
    draw: int = 0


class GameSnapshot(CamelModel):
    """Complete, self-consistent room state sent to every subscriber.

    Built inside the room's critical section, so it never mixes state from two
    different operations. ``version`` grows by one with every accepted mutation.
    """

    model_config = ConfigDict(frozen=True)

    room_id: str
    board: list[Symbol | None]
    current_player: Symbol
    winner: Outcome | None = None
    line: list[int] | None = None
    players: list[PlayerSnapshot] = Field(default_factory=list)
    scores: ScoresSnapshot = Field(default_factory=ScoresSnapshot)
    symbol_scores: SymbolScores = Field(default_factory=SymbolScores)
    version: int = 0

    def to_payload(self) -> dict:
        """Serialize to the JSON-ready camelCase payload."""
        return self.model_dump(mode="json", by_alias=True)
