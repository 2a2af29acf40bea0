"""
Client projection: what one client shows, derived from the authoritative record.
----

Never patched: every notification throws the previous projection away and replays the full move log from the
starting position. A local (speculative) move lives only until the next rebuild, so a rejected move simply disappears.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Self
from uuid import UUID

import chess

from online_chess.chess import rules
from online_chess.chess.game import Game
from online_chess.chess.rules import MoveRecord
from online_chess.core.models import GameSessionModel, ImmunePiece, PlayerIdentity
from online_chess.core.shared_types import (
    GameResult,
    PieceType,
    Side,
    Status,
    turn_for_move_count,
)
from online_chess.sync.channel import OnChange, Subscription

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MoveRow:
    """One line of the move table: move number, white's move and (if played) black's reply."""

    number: int
    white: str
    black: Optional[str] = None


def pair_moves(records: list[MoveRecord]) -> list[MoveRow]:
    return [
        MoveRow(
            number=index // 2 + 1,
            white=records[index].san,
            black=records[index + 1].san if index + 1 < len(records) else None,
        )
        for index in range(0, len(records), 2)
    ]


@dataclass(frozen=True)
class ClientProjection:
    session_id: Optional[UUID]
    code: str
    position: str
    moves: list[MoveRecord]
    rows: list[MoveRow]
    turn: Side
    my_side: Optional[Side]
    is_my_turn: bool
    status: Status
    result: Optional[GameResult]
    checked_king: Optional[str]
    immune_set: frozenset[ImmunePiece]
    opponent: Optional[PlayerIdentity]
    version: int
    speculative: bool = False

    @classmethod
    def build(cls, model: GameSessionModel, viewer_id: str, speculative: bool = False) -> Self:
        """Replay the move log from the starting position and derive everything shown to the viewer."""
        board, records = rules.replay_verbose(model.move_log)
        if board.fen() != model.position:
            logger.warning(
                "Session %s: stored position differs from replayed move log, showing the replay",
                model.id,
            )

        turn = turn_for_move_count(len(records))
        my_side = model.side_of(viewer_id)
        return cls(
            session_id=model.id,
            code=model.code,
            position=board.fen(),
            moves=records,
            rows=pair_moves(records),
            turn=turn,
            my_side=my_side,
            is_my_turn=model.status == Status.ACTIVE and my_side == turn,
            status=model.status,
            result=model.result,
            checked_king=checked_king_square(board),
            immune_set=model.immune_set,
            opponent=model.players[my_side.opponent] if my_side else None,
            version=model.version,
            speculative=speculative,
        )

    def is_immune(self, side: Side, kind: PieceType) -> bool:
        return ImmunePiece(side, kind) in self.immune_set


def checked_king_square(board: chess.Board) -> Optional[str]:
    """Square of the side-to-move's king when it is in check (for highlighting)."""
    if not board.is_check():
        return None
    king = board.king(board.turn)
    return chess.square_name(king) if king is not None else None


@dataclass
class ProjectionClient:
    """
    Keeps one client's projection current.

    Attach it to a session (subscribe) and it rebuilds on every change notification,
    calling on_update with the fresh projection (None once the session is gone).
    """

    viewer_id: str
    on_update: Optional[Callable[[Optional[ClientProjection]], None]] = None
    projection: Optional[ClientProjection] = None
    authoritative: Optional[GameSessionModel] = None
    rebuilds: int = field(default=0, init=False)

    def attach(self, subscribe: Callable[[UUID, OnChange], Subscription], session_id: UUID) -> Subscription:
        return subscribe(session_id, self.on_change)

    def on_change(self, snapshot: Optional[GameSessionModel]) -> None:
        self.authoritative = snapshot
        self._rebuild()

    def apply_local_move(
        self, notation: str, promote_to: Optional[PieceType] = None
    ) -> ClientProjection:
        """
        Show a move before the store confirmed it.
        Checked with the same rules (and immune set) as the authoritative submission, so obvious mistakes fail early.
        """
        if self.authoritative is None:
            raise LookupError("No session attached yet.")
        game = Game.from_model(self.authoritative)
        game.make_move(notation, self.viewer_id, promote_to)
        self.projection = ClientProjection.build(game.to_model(), self.viewer_id, speculative=True)
        return self.projection

    def revert(self) -> Optional[ClientProjection]:
        """Drop any speculative move and go back to the last authoritative record."""
        self._rebuild()
        return self.projection

    def _rebuild(self) -> None:
        self.projection = (
            ClientProjection.build(self.authoritative, self.viewer_id)
            if self.authoritative is not None
            else None
        )
        self.rebuilds += 1
        if self.on_update is not None:
            self.on_update(self.projection)
