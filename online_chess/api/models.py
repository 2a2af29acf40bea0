"""Requests and Response models"""

from datetime import datetime
from typing import Optional, Self
from uuid import UUID

from pydantic import BaseModel, field_validator

from online_chess.core.exceptions import GameError, InvalidRequestError, PromotionRequiredError
from online_chess.core.models import GameSessionModel, ImmunePiece, PlayerIdentity
from online_chess.core.shared_types import ErrorKind, GameResult, PieceType, Side, Status


# --- REQUEST MODELS ---
class CreateSessionRequest(BaseModel):
    side: Side


class JoinSessionRequest(BaseModel):
    code: str

    @field_validator("code")
    @classmethod
    def validate_code(cls, value: str) -> str:
        code = value.strip().upper()
        if not code or not code.isalnum():
            raise InvalidRequestError(f"Cannot interpret {value!r} as a game code.")
        return code


class GetSessionRequest(BaseModel):
    session_id: UUID


class LegalMovesRequest(BaseModel):
    session_id: UUID
    from_square: Optional[str] = None

    @field_validator("from_square")
    @classmethod
    def validate_square(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if not _is_algebraic_notation(value):
            raise InvalidRequestError(
                f"Cannot interpret from_square: {value!r} as a valid square name."
            )
        return value


class MoveRequest(BaseModel):
    session_id: UUID
    move: str
    promote_to: Optional[PieceType] = None

    @field_validator("move")
    @classmethod
    def validate_move(cls, value: str) -> str:
        move = value.strip()
        if not move:
            raise InvalidRequestError("A move cannot be empty.")
        return move


class PromotionChoicesRequest(BaseModel):
    session_id: UUID
    move: str


class ImmunePieceSchema(BaseModel):
    side: Side
    kind: PieceType

    def to_domain(self) -> ImmunePiece:
        return ImmunePiece(self.side, self.kind)


class ToggleImmuneRequest(BaseModel):
    session_id: UUID
    side: Side
    kind: PieceType


class SetImmuneRequest(BaseModel):
    session_id: UUID
    pieces: list[ImmunePieceSchema]


class UpdateStatusRequest(BaseModel):
    session_id: UUID
    status: Status
    result: Optional[GameResult] = None


# --- RESPONSE MODELS ---
class PlayerResponse(BaseModel):
    id: str
    display_name: str
    email: str

    @classmethod
    def from_identity(cls, identity: Optional[PlayerIdentity]) -> Optional[Self]:
        if identity is None:
            return None
        return cls(id=identity.id, display_name=identity.display_name, email=identity.email)


class SessionResponse(BaseModel):
    session_id: UUID
    code: str
    position: str
    move_log: list[str]
    white: Optional[PlayerResponse]
    black: Optional[PlayerResponse]
    turn: Side
    status: Status
    result: Optional[GameResult]
    immune_set: list[ImmunePieceSchema]
    version: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, model: GameSessionModel) -> Self:
        return cls(
            session_id=model.stored_id,
            code=model.code,
            position=model.position,
            move_log=list(model.move_log),
            white=PlayerResponse.from_identity(model.white),
            black=PlayerResponse.from_identity(model.black),
            turn=model.turn,
            status=model.status,
            result=model.result,
            immune_set=[
                ImmunePieceSchema(side=piece.side, kind=piece.kind)
                for piece in sorted(model.immune_set)
            ],
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


class CreateSessionResponse(BaseModel):
    session_id: UUID
    code: str
    side: Side


class JoinSessionResponse(BaseModel):
    session_id: UUID
    side: Side


class LegalMovesResponse(BaseModel):
    session_id: UUID
    side: Side
    legal_moves: list[str]


class MoveResponse(BaseModel):
    san: str
    session: SessionResponse


class PromotionChoicesResponse(BaseModel):
    session_id: UUID
    choices: list[PieceType]


class ErrorResponse(BaseModel):
    """Structured failure result handed back instead of letting a GameError escape."""

    kind: ErrorKind
    message: str
    choices: list[str] = []

    @classmethod
    def from_error(cls, error: GameError) -> Self:
        choices = list(error.choices) if isinstance(error, PromotionRequiredError) else []
        return cls(kind=error.kind, message=error.message, choices=choices)


def _is_algebraic_notation(value: str) -> bool:
    if len(value) != 2:
        return False
    return value[0] in "abcdefgh" and value[1] in "12345678"
