"""Invincibility overlay edits. Not moves: either participant may edit the set, whoever's turn it is."""

import logging
from typing import Optional

from online_chess.api.models import SessionResponse, SetImmuneRequest, ToggleImmuneRequest
from online_chess.core.config import Settings, get_settings
from online_chess.db.repository import GameRepository
from online_chess.services.commit import commit_with_retry
from online_chess.services.identity import IdentityProvider, require_identity

logger = logging.getLogger(__name__)


class ImmunityService:
    def __init__(
        self,
        repository: GameRepository,
        identity: IdentityProvider,
        settings: Optional[Settings] = None,
    ) -> None:
        self.repo = repository
        self.identity = identity
        self.settings = settings or get_settings()

    def toggle_immune(self, request: ToggleImmuneRequest) -> SessionResponse:
        player = require_identity(self.identity)
        immune, stored = commit_with_retry(
            self.repo,
            request.session_id,
            lambda game: game.toggle_immune(player.id, request.side, request.kind),
            retries=self.settings.commit_retries,
        )
        logger.info(
            "Session %s: %s toggled %s %s (now %d immune)",
            stored.id,
            player.id,
            request.side,
            request.kind,
            len(immune),
        )
        return SessionResponse.from_model(stored)

    def set_immune(self, request: SetImmuneRequest) -> SessionResponse:
        player = require_identity(self.identity)
        pieces = [piece.to_domain() for piece in request.pieces]
        _, stored = commit_with_retry(
            self.repo,
            request.session_id,
            lambda game: game.set_immune(player.id, pieces),
            retries=self.settings.commit_retries,
        )
        logger.info("Session %s: %s replaced the immune set", stored.id, player.id)
        return SessionResponse.from_model(stored)
