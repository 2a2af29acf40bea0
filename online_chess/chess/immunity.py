"""
Invincibility house rule.
----

Players can mark (side, piece type) pairs as immune. An immune piece cannot be captured, so every move taking it is illegal.
The set is metadata of the live session: it is never written into the position or into the move log.

All legality / end-of-game questions asked while the house rule is in play go through ImmuneSet,
which post-filters what the rules adapter (chess/rules.py) reports.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Self

import chess

from online_chess.chess import rules
from online_chess.core.models import ImmunePiece
from online_chess.core.shared_types import PieceType, Side


@dataclass(frozen=True)
class ImmuneSet:
    pieces: frozenset[ImmunePiece] = frozenset()

    @classmethod
    def of(cls, pieces: Iterable[ImmunePiece]) -> Self:
        return cls(frozenset(pieces))

    def __contains__(self, piece: object) -> bool:
        return piece in self.pieces

    def __len__(self) -> int:
        return len(self.pieces)

    def toggled(self, side: Side, kind: PieceType) -> Self:
        """Flip membership of the pair. Returns a new set."""
        piece = ImmunePiece(side, kind)
        if piece in self.pieces:
            return type(self)(self.pieces - {piece})
        return type(self)(self.pieces | {piece})

    def is_immune(self, side: Side, kind: PieceType) -> bool:
        return ImmunePiece(side, kind) in self.pieces

    # -- LEGALITY ---
    def captured_piece(self, board: chess.Board, move: chess.Move) -> Optional[ImmunePiece]:
        """The opposing piece taken by the move, if any (en passant takes a pawn that is not on the target square)."""
        if board.is_en_passant(move):
            return ImmunePiece(rules.side_of(not board.turn), PieceType.PAWN)
        target = board.piece_at(move.to_square)
        if target is None or target.color == board.turn:
            return None
        return ImmunePiece(rules.side_of(target.color), rules.CHESS_TO_PIECE[target.piece_type])

    def protects(self, board: chess.Board, move: chess.Move) -> bool:
        """True if the move would capture an immune piece."""
        captured = self.captured_piece(board, move)
        return captured is not None and captured in self.pieces

    def legal_moves(self, board: chess.Board, from_square: Optional[str] = None) -> list[chess.Move]:
        """Engine legal moves minus captures of immune pieces."""
        return [
            move
            for move in rules.board_legal_moves(board, from_square)
            if not self.protects(board, move)
        ]

    def is_legal(self, board: chess.Board, move: chess.Move) -> bool:
        return rules.is_legal(board, move) and not self.protects(board, move)

    # --- CHECKS FOR ENDING THE GAME ---
    def has_legal_response(self, board: chess.Board) -> bool:
        return any(not self.protects(board, move) for move in board.legal_moves)

    def is_checkmate(self, board: chess.Board) -> bool:
        """In check, and every way out (if any) would capture an immune piece."""
        return board.is_check() and not self.has_legal_response(board)

    def is_stalemate(self, board: chess.Board) -> bool:
        return not board.is_check() and not self.has_legal_response(board)
