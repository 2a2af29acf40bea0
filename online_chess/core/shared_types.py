"""
Type definitions used across layers
"""

from enum import StrEnum


class Status(StrEnum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


# Sessions in these states still own their join code.
OPEN_STATUSES: tuple[Status, ...] = (Status.WAITING, Status.ACTIVE)

# --- Status is monotonic: waiting -> active -> completed | abandoned
ALLOWED_TRANSITIONS: dict[Status, tuple[Status, ...]] = {
    Status.WAITING: (Status.ACTIVE, Status.ABANDONED),
    Status.ACTIVE: (Status.COMPLETED, Status.ABANDONED),
    Status.COMPLETED: (),
    Status.ABANDONED: (),
}


class GameResult(StrEnum):
    WHITE_WINS = "white-wins"
    BLACK_WINS = "black-wins"
    DRAW = "draw"
    ABANDONED = "abandoned"


class Side(StrEnum):
    WHITE = "white"
    BLACK = "black"

    @property
    def opponent(self) -> "Side":
        return Side.BLACK if self == Side.WHITE else Side.WHITE

    @property
    def wins(self) -> GameResult:
        return GameResult.WHITE_WINS if self == Side.WHITE else GameResult.BLACK_WINS


class PieceType(StrEnum):
    PAWN = "pawn"
    KNIGHT = "knight"
    BISHOP = "bishop"
    ROOK = "rook"
    QUEEN = "queen"
    KING = "king"


PROMOTION_TYPES: tuple[PieceType, ...] = (
    PieceType.QUEEN,
    PieceType.ROOK,
    PieceType.BISHOP,
    PieceType.KNIGHT,
)


class ErrorKind(StrEnum):
    NOT_FOUND = "not-found"
    SESSION_FULL = "session-full"
    NOT_A_PARTICIPANT = "not-a-participant"
    NOT_YOUR_TURN = "not-your-turn"
    ILLEGAL_MOVE = "illegal-move"
    PROMOTION_REQUIRED = "promotion-required"
    GAME_OVER = "game-over"
    CONFLICT = "conflict"
    UNAUTHENTICATED = "unauthenticated"
    INVALID_REQUEST = "invalid-request"
    INVALID_STATE = "invalid-state"


def turn_for_move_count(move_count: int) -> Side:
    """White moves on an even number of recorded moves, black on an odd one."""
    return Side.WHITE if move_count % 2 == 0 else Side.BLACK
