"""
The Game class is the entrypoint into the domain layer for the service layer.
It is responsible for orchestrating all the business logic required to play a turn in a shared session -->
passes this information to the service layer, which persists it and lets the sync channel fan it out.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Self
from uuid import UUID

import chess

from online_chess.chess import rules
from online_chess.chess.immunity import ImmuneSet
from online_chess.chess.rules import MoveRecord
from online_chess.core.exceptions import (
    GameOverError,
    GameStateError,
    IllegalMoveError,
    NotAParticipantError,
    NotYourTurnError,
    PromotionRequiredError,
    SessionFullError,
)
from online_chess.core.models import (
    GameSessionModel,
    ImmunePiece,
    PlayerIdentity,
    utc_now,
)
from online_chess.core.shared_types import (
    ALLOWED_TRANSITIONS,
    OPEN_STATUSES,
    PROMOTION_TYPES,
    GameResult,
    PieceType,
    Side,
    Status,
    turn_for_move_count,
)

logger = logging.getLogger(__name__)


@dataclass
class Game:
    # --- DOMAIN LAYER API CALLED BY SERVICES ---

    code: str
    board: chess.Board
    move_log: list[str]
    players: dict[Side, PlayerIdentity]
    status: Status
    result: Optional[GameResult] = None
    immune: ImmuneSet = field(default_factory=ImmuneSet)
    id: Optional[UUID] = None
    version: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_model(cls, model: GameSessionModel) -> Self:
        """Rebuild the Game from a stored record. The board is replayed from the move log, not parsed from the position."""

        board = rules.replay(model.move_log)

        # Validation: the record must be self-consistent
        if board.fen() != model.position:
            raise GameStateError(
                f"Position {model.position!r} does not match the replayed move log ({board.fen()!r})."
            )
        if model.turn != turn_for_move_count(len(model.move_log)):
            raise GameStateError(
                f"Turn {model.turn} does not match a move log of length {len(model.move_log)}."
            )

        players = {
            side: player for side, player in model.players.items() if player is not None
        }
        return cls(
            code=model.code,
            board=board,
            move_log=list(model.move_log),
            players=players,
            status=model.status,
            result=model.result,
            immune=ImmuneSet.of(model.immune_set),
            id=model.id,
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def to_model(self) -> GameSessionModel:
        """Encode back into a format the Service layer uses"""

        return GameSessionModel(
            code=self.code,
            position=self.board.fen(),
            move_log=list(self.move_log),
            white=self.players.get(Side.WHITE),
            black=self.players.get(Side.BLACK),
            turn=self.turn,
            status=self.status,
            result=self.result,
            immune_set=self.immune.pieces,
            id=self.id,
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def new_game(cls, code: str, player: PlayerIdentity, side: Side) -> Self:
        """To start a new session with the player using the pieces of the indicated side."""
        return cls(
            code=code,
            board=rules.load_board(),
            move_log=[],
            players={side: player},
            status=Status.WAITING,
        )

    @property
    def turn(self) -> Side:
        return turn_for_move_count(len(self.move_log))

    @property
    def is_over(self) -> bool:
        return self.status in (Status.COMPLETED, Status.ABANDONED)

    def side_of(self, player_id: str) -> Optional[Side]:
        return next(
            (side for side, player in self.players.items() if player.id == player_id),
            None,
        )

    def register_player(self, player: PlayerIdentity) -> Side:
        """
        Seat a player in this session.
        ----

        1. Already seated? Nothing changes (a reconnecting client).
        2. Otherwise take whichever slot is empty. Both slots filled --> the game becomes active.
        3. Both slots taken by others --> SessionFullError.
        """
        if self.status not in OPEN_STATUSES:
            raise GameStateError(
                f"Cannot join this game. Game is not accepting players. status: {self.status}"
            )

        seated = self.side_of(player.id)
        if seated is not None:
            return seated

        free = [side for side in (Side.WHITE, Side.BLACK) if side not in self.players]
        if not free:
            raise SessionFullError(f"Session {self.code} already has two players.")

        side = free[0]
        self.players[side] = player
        if len(self.players) == 2:
            self._change_status(Status.ACTIVE)
        return side

    def legal_moves(self, player_id: str, from_square: Optional[str] = None) -> list[str]:
        """Moves (coordinate notation) the player could make right now. Captures of immune pieces are excluded."""
        self._assert_can_move(player_id)
        return [move.uci() for move in self.immune.legal_moves(self.board, from_square)]

    def promotion_choices(self, notation: str, player_id: str) -> tuple[PieceType, ...]:
        """
        Piece types a pawn move onto the last rank can promote into.
        Rejected upfront if the target square holds an immune piece (checked on the position BEFORE the move).
        """
        self._assert_can_move(player_id)
        move = rules.parse_move(self.board, notation)
        if self.immune.protects(self.board, move):
            raise IllegalMoveError(f"Cannot capture an immune piece: {notation!r}")
        if not rules.requires_promotion(self.board, move):
            return ()
        return tuple(
            kind
            for kind in PROMOTION_TYPES
            if self.board.is_legal(
                chess.Move(move.from_square, move.to_square, rules.PIECE_TO_CHESS[kind])
            )
        )

    def make_move(
        self, notation: str, player_id: str, promote_to: Optional[PieceType] = None
    ) -> MoveRecord:
        """
        Attempt to make a move
        -----

        1. the game must be in progress and it must be your turn
        2. interpret the move against the CURRENT position
        3. captures of immune pieces are illegal (before even asking for a promotion piece)
        4. a pawn reaching the last rank needs a promotion piece
        5. update the board and the move log
        6. update game status (if the move ends the game)
        """
        self._assert_can_move(player_id)

        move = rules.parse_move(self.board, notation, promote_to)
        if self.immune.protects(self.board, move):
            raise IllegalMoveError(f"Cannot capture an immune piece: {notation!r}")

        if rules.requires_promotion(self.board, move):
            choices = self.promotion_choices(notation, player_id)
            if not choices:
                raise IllegalMoveError(f"Move not allowed: {notation!r}")
            raise PromotionRequiredError(
                f"Choose a piece to promote into for {notation!r}.",
                choices=tuple(kind.value for kind in choices),
            )

        if not self.immune.is_legal(self.board, move):
            raise IllegalMoveError(f"Move not allowed: {notation!r}")

        # Store move info before update
        record = rules.describe_move(self.board, move, ply=len(self.move_log))
        self.board.push(move)
        self.move_log.append(record.san)

        self._update_game_status()
        return record

    def toggle_immune(self, player_id: str, side: Side, kind: PieceType) -> ImmuneSet:
        """Either participant may flip a piece type's immunity at any time, regardless of whose turn it is."""
        self._assert_can_edit(player_id)
        self.immune = self.immune.toggled(side, kind)
        return self.immune

    def set_immune(self, player_id: str, pieces: Iterable[ImmunePiece]) -> ImmuneSet:
        self._assert_can_edit(player_id)
        self.immune = ImmuneSet.of(pieces)
        return self.immune

    def finish(
        self, player_id: str, status: Status, result: Optional[GameResult] = None
    ) -> None:
        """A participant ends the session: completed (with a result) or abandoned."""
        self._assert_participant(player_id)
        if status not in ALLOWED_TRANSITIONS[self.status]:
            if self.is_over:
                raise GameOverError(f"Game is already over. status: {self.status}")
            raise GameStateError(f"Cannot move from {self.status} to {status}.")

        if status == Status.COMPLETED:
            if result is None:
                raise GameStateError("A completed game needs a result.")
            self._end(result)
        elif status == Status.ABANDONED:
            # result is only recorded for completed games
            self._change_status(Status.ABANDONED)
            self.result = None
        else:
            raise GameStateError(f"Participants cannot set status {status}.")

    def is_check(self) -> bool:
        """Side to move is in check."""
        return self.board.is_check()

    # -- PRIVATE HELPERS ---
    def _assert_participant(self, player_id: str) -> Side:
        side = self.side_of(player_id)
        if side is None:
            raise NotAParticipantError(f"Player {player_id!r} is not part of session {self.code}.")
        return side

    def _assert_can_edit(self, player_id: str) -> None:
        self._assert_participant(player_id)
        if self.is_over:
            raise GameOverError(f"Game is over. status: {self.status}")

    def _assert_can_move(self, player_id: str) -> None:
        """Game in progress, you are seated, and it is your turn."""
        if self.is_over:
            raise GameOverError(f"Game is over. status: {self.status}")
        side = self._assert_participant(player_id)
        if self.status != Status.ACTIVE:
            raise GameStateError(f"Game is not in progress. status: {self.status}")
        if side != self.turn:
            raise NotYourTurnError(
                f"It is not your turn. Waiting for {self.turn} to make a move first."
            )

    def _update_game_status(self) -> None:
        """Performs checks to see if game has ended and changes status accordingly.

        NOTE the move has already been pushed. At this point the side to move is the opponent of the player who just moved.
        """
        mover = self.turn.opponent
        if self.immune.is_checkmate(self.board):
            self._end(mover.wins)
        elif self.immune.is_stalemate(self.board) or rules.is_draw(self.board):
            self._end(GameResult.DRAW)

    def _end(self, result: GameResult) -> None:
        self._change_status(Status.COMPLETED)
        self.result = result
        logger.info("Game %s completed: %s", self.code, result)

    def _change_status(self, new_status: Status) -> None:
        self.status = new_status
