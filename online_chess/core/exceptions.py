"""
Custom exceptions raised by the domain, persistence and service layers.

Every exception carries an ErrorKind, so callers can turn it into a structured result (see api/models.py ErrorResponse).
"""

from online_chess.core.shared_types import ErrorKind


class GameError(Exception):
    """Top-level exception for anything going wrong while handling a game session."""

    kind: ErrorKind = ErrorKind.INVALID_STATE

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value


class NotFoundError(GameError):
    kind = ErrorKind.NOT_FOUND


class SessionFullError(GameError):
    kind = ErrorKind.SESSION_FULL


class NotAParticipantError(GameError):
    kind = ErrorKind.NOT_A_PARTICIPANT


class NotYourTurnError(GameError):
    kind = ErrorKind.NOT_YOUR_TURN


class IllegalMoveError(GameError):
    kind = ErrorKind.ILLEGAL_MOVE


class PromotionRequiredError(IllegalMoveError):
    """Pawn reaches the last rank, but no piece type was chosen to promote into."""

    kind = ErrorKind.PROMOTION_REQUIRED

    def __init__(self, message: str = "", choices: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.choices = choices


class GameOverError(GameError):
    kind = ErrorKind.GAME_OVER


class ConflictError(GameError):
    """The record changed between reading and writing it."""

    kind = ErrorKind.CONFLICT


class UnauthenticatedError(GameError):
    kind = ErrorKind.UNAUTHENTICATED


class InvalidRequestError(GameError):
    kind = ErrorKind.INVALID_REQUEST


class GameStateError(GameError):
    kind = ErrorKind.INVALID_STATE
