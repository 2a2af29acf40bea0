"""Turn / move coordination: validating a proposed move against the authoritative record and committing it."""

import logging
from typing import Optional

from online_chess.api.models import (
    LegalMovesRequest,
    LegalMovesResponse,
    MoveRequest,
    MoveResponse,
    PromotionChoicesRequest,
    PromotionChoicesResponse,
    SessionResponse,
)
from online_chess.chess.game import Game
from online_chess.core.config import Settings, get_settings
from online_chess.db.repository import GameRepository
from online_chess.services.commit import commit_with_retry, fetch_session
from online_chess.services.identity import IdentityProvider, require_identity

logger = logging.getLogger(__name__)


class MoveCoordinator:
    """Submits moves on behalf of one client."""

    def __init__(
        self,
        repository: GameRepository,
        identity: IdentityProvider,
        settings: Optional[Settings] = None,
    ) -> None:
        self.repo = repository
        self.identity = identity
        self.settings = settings or get_settings()

    def submit_move(self, request: MoveRequest) -> MoveResponse:
        """
        Make a move attempt.
        ----

        1. fetch the authoritative record (NotFoundError if absent)
        2. game over / not seated / not your turn --> rejected, whatever the move
        3. legality is checked against the STORED position, with the session's immune set applied
        4. move log, position, turn and (if the move ends the game) status + result are written in ONE conditional update
        5. a stale write is redone once from step 1, a second ConflictError goes back to the caller
        """
        player = require_identity(self.identity)

        record, stored = commit_with_retry(
            self.repo,
            request.session_id,
            lambda game: game.make_move(request.move, player.id, request.promote_to),
            retries=self.settings.commit_retries,
        )
        logger.info(
            "Session %s: %s played %s (ply %d)", stored.id, record.side, record.san, record.ply + 1
        )
        if stored.result is not None:
            logger.info("Session %s finished: %s", stored.id, stored.result)
        return MoveResponse(san=record.san, session=SessionResponse.from_model(stored))

    def legal_moves(self, request: LegalMovesRequest) -> LegalMovesResponse:
        """Retrieve the set of legal moves for the caller (only on their turn)."""
        player = require_identity(self.identity)
        model = fetch_session(self.repo, request.session_id)
        game = Game.from_model(model)
        moves = game.legal_moves(player.id, request.from_square)
        return LegalMovesResponse(
            session_id=request.session_id, side=game.turn, legal_moves=moves
        )

    def promotion_choices(self, request: PromotionChoicesRequest) -> PromotionChoicesResponse:
        """Piece types offered for a pawn move onto the last rank (empty if the move is no promotion)."""
        player = require_identity(self.identity)
        game = Game.from_model(fetch_session(self.repo, request.session_id))
        choices = game.promotion_choices(request.move, player.id)
        return PromotionChoicesResponse(session_id=request.session_id, choices=list(choices))
