"""
Rules adapter: the only module talking to the chess engine (python-chess).

Positions are exchanged as FEN strings, moves are recorded in SAN. Everything in here is plain chess:
the invincibility overlay (chess/immunity.py) post-filters on top of these functions.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

import chess

from online_chess.core.exceptions import IllegalMoveError
from online_chess.core.models import STARTING_POSITION
from online_chess.core.shared_types import PieceType, Side

# python-chess piece types use the same order as PieceType (pawn=1 ... king=6)
PIECE_TO_CHESS: dict[PieceType, chess.PieceType] = {
    PieceType.PAWN: chess.PAWN,
    PieceType.KNIGHT: chess.KNIGHT,
    PieceType.BISHOP: chess.BISHOP,
    PieceType.ROOK: chess.ROOK,
    PieceType.QUEEN: chess.QUEEN,
    PieceType.KING: chess.KING,
}
CHESS_TO_PIECE: dict[chess.PieceType, PieceType] = {
    value: key for key, value in PIECE_TO_CHESS.items()
}

UCI_PATTERN = re.compile(r"^[a-h][1-8][a-h][1-8][qrbn]?$")


def side_of(color: chess.Color) -> Side:
    return Side.WHITE if color == chess.WHITE else Side.BLACK


def color_of(side: Side) -> chess.Color:
    return chess.WHITE if side == Side.WHITE else chess.BLACK


@dataclass(frozen=True)
class MoveRecord:
    """Full move metadata, recovered by replaying SAN from the starting position."""

    ply: int
    san: str
    uci: str
    side: Side
    piece: PieceType
    from_square: str
    to_square: str
    captured: Optional[PieceType] = None
    promotion: Optional[PieceType] = None
    is_check: bool = False

    @property
    def move_number(self) -> int:
        return self.ply // 2 + 1


def load_board(position: str = STARTING_POSITION) -> chess.Board:
    """Parse a FEN into a board. Raises IllegalMoveError on a malformed position."""
    try:
        return chess.Board(position)
    except ValueError as e:
        raise IllegalMoveError(f"Cannot interpret position {position!r}: {e}") from e


def legal_moves(position: str, from_square: Optional[str] = None) -> list[chess.Move]:
    """Legal moves in the position, optionally only those of the piece standing on from_square."""
    board = load_board(position)
    return board_legal_moves(board, from_square)


def board_legal_moves(board: chess.Board, from_square: Optional[str] = None) -> list[chess.Move]:
    if from_square is None:
        return list(board.legal_moves)
    square = chess.parse_square(from_square)
    return [move for move in board.legal_moves if move.from_square == square]


def parse_move(
    board: chess.Board, notation: str, promote_to: Optional[PieceType] = None
) -> chess.Move:
    """
    Interpret a candidate move given either in SAN ("e4", "Nxf7+", "exd8=Q") or coordinates ("e2e4", "e7e8q").
    ----

    A pawn move onto the last rank written without a promotion piece is returned WITHOUT a promotion,
    so the caller can find out a choice is still needed (see requires_promotion).
    `promote_to` only fills in that missing piece: it is ignored for any other move,
    and a piece written in the notation itself wins over it.
    Does NOT check legality of the returned move.
    """
    notation = notation.strip()
    move = _parse_notation(board, notation)
    if promote_to is not None and requires_promotion(board, move):
        return chess.Move(move.from_square, move.to_square, promotion=PIECE_TO_CHESS[promote_to])
    return move


def _parse_notation(board: chess.Board, notation: str) -> chess.Move:
    if UCI_PATTERN.match(notation):
        return chess.Move.from_uci(notation)

    try:
        return board.parse_san(notation)
    except ValueError:
        pass

    # a bare pawn move onto the last rank: parse it as a queen promotion to locate the squares
    if "=" not in notation:
        try:
            as_queen = board.parse_san(f"{notation.rstrip('+#')}=Q")
        except ValueError:
            as_queen = None
        if as_queen is not None:
            return chess.Move(as_queen.from_square, as_queen.to_square)

    raise IllegalMoveError(f"Move not allowed: {notation!r}")


def requires_promotion(board: chess.Board, move: chess.Move) -> bool:
    """A pawn reaching the last rank without a chosen promotion piece."""
    if move.promotion is not None:
        return False
    if board.piece_type_at(move.from_square) != chess.PAWN:
        return False
    return chess.square_rank(move.to_square) in (0, 7)


def is_legal(board: chess.Board, move: chess.Move) -> bool:
    return board.is_legal(move)


def apply_move(position: str, notation: str) -> Optional[str]:
    """Resulting position after the move, None if the move is illegal in this position."""
    board = load_board(position)
    try:
        move = parse_move(board, notation)
    except IllegalMoveError:
        return None
    if not board.is_legal(move):
        return None
    board.push(move)
    return board.fen()


def is_in_check(position: str, side: Side) -> bool:
    """Is the king of the given side attacked (independent of whose turn it is)."""
    board = load_board(position)
    king = board.king(color_of(side))
    if king is None:
        return False
    return board.is_attacked_by(not color_of(side), king)


def is_checkmate(position: str) -> bool:
    return load_board(position).is_checkmate()


def is_stalemate(position: str) -> bool:
    return load_board(position).is_stalemate()


def is_draw(board: chess.Board) -> bool:
    """Draws other than stalemate. Repetition needs the move stack, so pass a replayed board."""
    return (
        board.is_insufficient_material()
        or board.is_repetition(3)
        or board.is_fifty_moves()
    )


def replay(move_log: Iterable[str], position: str = STARTING_POSITION) -> chess.Board:
    """Push every SAN move of the log onto a fresh board. The board keeps the move stack."""
    board = load_board(position)
    for ply, san in enumerate(move_log):
        try:
            board.push_san(san)
        except ValueError as e:
            raise IllegalMoveError(
                f"Move log cannot be replayed: {san!r} at ply {ply} is not legal."
            ) from e
    return board


def describe_move(board: chess.Board, move: chess.Move, ply: int) -> MoveRecord:
    """Snapshot of the move metadata BEFORE the move gets pushed onto the board."""
    piece = board.piece_at(move.from_square)
    if piece is None:
        raise IllegalMoveError(f"No piece on {chess.square_name(move.from_square)} to move.")

    captured: Optional[PieceType] = None
    if board.is_en_passant(move):
        captured = PieceType.PAWN
    elif board.is_capture(move):
        captured_type = board.piece_type_at(move.to_square)
        captured = CHESS_TO_PIECE[captured_type] if captured_type else None

    return MoveRecord(
        ply=ply,
        san=board.san(move),
        uci=move.uci(),
        side=side_of(board.turn),
        piece=CHESS_TO_PIECE[piece.piece_type],
        from_square=chess.square_name(move.from_square),
        to_square=chess.square_name(move.to_square),
        captured=captured,
        promotion=CHESS_TO_PIECE[move.promotion] if move.promotion else None,
        is_check=board.gives_check(move),
    )


def replay_verbose(move_log: Iterable[str]) -> tuple[chess.Board, list[MoveRecord]]:
    """Replay the log and rebuild the move-annotated history on the way."""
    board = load_board(STARTING_POSITION)
    records: list[MoveRecord] = []
    for ply, san in enumerate(move_log):
        try:
            move = board.parse_san(san)
        except ValueError as e:
            raise IllegalMoveError(
                f"Move log cannot be replayed: {san!r} at ply {ply} is not legal."
            ) from e
        records.append(describe_move(board, move, ply))
        board.push(move)
    return board, records
