"""
Boundary layer data model(s).

These objects can be used to communicate with the Services.
Hence, both the API layer (higher) and domain/db layers (lower) will use model(s) defined here to send to/receive from the Services
(Decouples the data model specific to the DB layer, API layer, or domain layer from the information needed to send across boundaries)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Self
from uuid import UUID

from online_chess.core.exceptions import GameStateError
from online_chess.core.shared_types import GameResult, PieceType, Side, Status

STARTING_POSITION = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PlayerIdentity:
    """Participant as handed out by the identity provider."""

    id: str
    display_name: str = "Anonymous"
    email: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> Self:
        return cls(
            id=data["id"],
            display_name=data.get("display_name") or "Anonymous",
            email=data.get("email") or "",
        )

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "display_name": self.display_name, "email": self.email}


@dataclass(frozen=True, order=True)
class ImmunePiece:
    """A (side, piece type) pair that cannot be captured while it is in the immune set."""

    side: Side
    kind: PieceType

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> Self:
        return cls(side=Side(data["side"]), kind=PieceType(data["kind"]))

    def to_dict(self) -> dict[str, str]:
        return {"side": self.side.value, "kind": self.kind.value}


@dataclass
class GameSessionModel:
    """Transport-safe representation of a game session used between API, Service, DB, and Game layers."""

    code: str
    position: str = STARTING_POSITION
    move_log: list[str] = field(default_factory=list)
    white: Optional[PlayerIdentity] = None
    black: Optional[PlayerIdentity] = None
    turn: Side = Side.WHITE
    status: Status = Status.WAITING
    result: Optional[GameResult] = None
    immune_set: frozenset[ImmunePiece] = frozenset()
    id: Optional[UUID] = None
    version: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def stored_id(self) -> UUID:
        """ID assigned by the store. Records that were never stored have none."""
        if self.id is None:
            raise GameStateError(f"Session {self.code} has not been stored yet.")
        return self.id

    @property
    def players(self) -> dict[Side, Optional[PlayerIdentity]]:
        return {Side.WHITE: self.white, Side.BLACK: self.black}

    def side_of(self, player_id: str) -> Optional[Side]:
        """Which slot the identity occupies (if any)."""
        for side, player in self.players.items():
            if player is not None and player.id == player_id:
                return side
        return None

    def to_document(self) -> dict[str, Any]:
        """Fields as stored in the game record (excluding the store-managed id / version / timestamps)."""
        return {
            "code": self.code,
            "position": self.position,
            "move_log": list(self.move_log),
            "white": self.white.to_dict() if self.white else None,
            "black": self.black.to_dict() if self.black else None,
            "turn": self.turn.value,
            "status": self.status.value,
            "result": self.result.value if self.result else None,
            "immune_set": [piece.to_dict() for piece in sorted(self.immune_set)],
        }
