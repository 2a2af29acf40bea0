"""Session lifecycle: creating sessions, handing out join codes, seating the second player, and ending sessions."""

import logging
import secrets
import string
from typing import Optional
from uuid import UUID

from online_chess.api.models import (
    CreateSessionRequest,
    CreateSessionResponse,
    GetSessionRequest,
    JoinSessionRequest,
    JoinSessionResponse,
    SessionResponse,
    UpdateStatusRequest,
)
from online_chess.chess.game import Game
from online_chess.core.config import Settings, get_settings
from online_chess.core.exceptions import ConflictError, NotFoundError
from online_chess.core.models import GameSessionModel
from online_chess.core.shared_types import OPEN_STATUSES, Side
from online_chess.db.repository import GameRepository
from online_chess.services.commit import commit_with_retry, fetch_session
from online_chess.services.identity import IdentityProvider, require_identity
from online_chess.sync.channel import OnChange, SessionStream, Subscription

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_code(length: int = 6) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


class SessionService:
    """Orchestration of layers for the session lifecycle, on behalf of one client (its identity provider)."""

    def __init__(
        self,
        repository: GameRepository,
        identity: IdentityProvider,
        settings: Optional[Settings] = None,
    ) -> None:
        self.repo = repository
        self.identity = identity
        self.settings = settings or get_settings()

    def create_session(self, request: CreateSessionRequest) -> CreateSessionResponse:
        """
        First player creates a session and sits at the chosen side.
        The join code is regenerated whenever it collides with a code of a waiting / active session.
        """
        creator = require_identity(self.identity)

        for _ in range(self.settings.code_attempts):
            code = generate_code(self.settings.code_length)
            new_game = Game.new_game(code=code, player=creator, side=request.side)
            try:
                stored = self.repo.create_session(new_game.to_model())
            except ConflictError:
                logger.info("Code %s is in use, generating another one", code)
                continue

            logger.info(
                "Player %s created session %s (%s) as %s", creator.id, stored.id, stored.code, request.side
            )
            return CreateSessionResponse(session_id=stored.stored_id, code=stored.code, side=request.side)

        raise ConflictError(
            f"No free game code found after {self.settings.code_attempts} attempts."
        )

    def join_session(self, request: JoinSessionRequest) -> JoinSessionResponse:
        """
        Second player joins using the code.
        ----

        Already seated --> succeed without writing anything (reconnecting).
        Otherwise take the free slot. Two players racing for the same slot: the store accepts only one write,
        the other one re-reads and either lands in the remaining slot or gets SessionFullError.
        """
        joiner = require_identity(self.identity)
        model = self._find_open(request.code)
        session_id = model.stored_id

        seated = model.side_of(joiner.id)
        if seated is not None:
            logger.info("Player %s rejoined session %s as %s", joiner.id, session_id, seated)
            return JoinSessionResponse(session_id=session_id, side=seated)

        side, stored = commit_with_retry(
            self.repo,
            session_id,
            lambda game: game.register_player(joiner),
            retries=self.settings.commit_retries,
        )
        logger.info("Player %s joined session %s as %s (status %s)", joiner.id, session_id, side, stored.status)
        return JoinSessionResponse(session_id=session_id, side=side)

    def get_session(self, request: GetSessionRequest) -> SessionResponse:
        """Retrieve current session state."""
        return SessionResponse.from_model(fetch_session(self.repo, request.session_id))

    def get_session_by_code(self, code: str) -> SessionResponse:
        """Look up a session by its join code, whatever its status (most recent first)."""
        found = self.repo.find_by_code(code)
        if not found:
            raise NotFoundError(f"No session with code {code.upper()!r}.")
        return SessionResponse.from_model(found[0])

    def my_sessions(self) -> list[SessionResponse]:
        """Sessions the caller is seated in."""
        player = require_identity(self.identity)
        return [SessionResponse.from_model(model) for model in self.repo.find_by_player(player.id)]

    def update_status(self, request: UpdateStatusRequest) -> SessionResponse:
        """A participant ends the session (completed with a result, or abandoned)."""
        player = require_identity(self.identity)
        _, stored = commit_with_retry(
            self.repo,
            request.session_id,
            lambda game: game.finish(player.id, request.status, request.result),
            retries=self.settings.commit_retries,
        )
        logger.info("Player %s set session %s to %s (%s)", player.id, stored.id, stored.status, stored.result)
        return SessionResponse.from_model(stored)

    def subscribe(self, session_id: UUID, on_change: OnChange) -> Subscription:
        """on_change gets the current record right away, then every committed change."""
        return self.repo.subscribe(session_id, on_change)

    def stream(self, session_id: UUID) -> SessionStream:
        return SessionStream(self.repo.subscribe, session_id)

    def seat_of(self, session_id: UUID) -> Optional[Side]:
        player = require_identity(self.identity)
        return fetch_session(self.repo, session_id).side_of(player.id)

    # -- Internal helpers --
    def _find_open(self, code: str) -> GameSessionModel:
        found = self.repo.find_by_code(code, OPEN_STATUSES)
        if not found:
            raise NotFoundError(f"No open session with code {code.upper()!r}.")
        return found[0]
