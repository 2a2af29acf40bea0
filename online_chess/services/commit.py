"""
Read-modify-write against the game record store.
----

No locks: every write is conditioned on the version that was read, and the store rejects stale writes (ConflictError).
A rejected attempt is redone from a fresh read, at most `retries` more times. Any other GameError ends the attempt.
"""

import logging
from typing import Callable, TypeVar
from uuid import UUID

from online_chess.chess.game import Game
from online_chess.core.exceptions import ConflictError, NotFoundError
from online_chess.core.models import GameSessionModel
from online_chess.db.repository import GameRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


def fetch_session(repo: GameRepository, session_id: UUID) -> GameSessionModel:
    """Attempt to find the session in the repository and raise error if it fails."""
    model = repo.get_session(session_id)
    if model is None:
        raise NotFoundError(f"Session with {session_id=} not found.")
    return model


def changed_fields(before: GameSessionModel, after: GameSessionModel) -> dict:
    """Document fields that differ, i.e. what goes into the partial update."""
    old = before.to_document()
    return {key: value for key, value in after.to_document().items() if old[key] != value}


def commit_with_retry(
    repo: GameRepository,
    session_id: UUID,
    change: Callable[[Game], T],
    retries: int = 1,
) -> tuple[T, GameSessionModel]:
    """
    Apply `change` to a freshly read Game and write the result back conditioned on the version read.
    Returns whatever `change` returned together with the stored record.
    """
    attempt = 0
    while True:
        model = fetch_session(repo, session_id)
        game = Game.from_model(model)
        outcome = change(game)

        changes = changed_fields(model, game.to_model())
        if not changes:
            return outcome, model

        try:
            stored = repo.update_session(session_id, changes, expected_version=model.version)
        except ConflictError:
            if attempt >= retries:
                logger.warning("Giving up on session %s after %d conflict(s)", session_id, attempt + 1)
                raise
            attempt += 1
            logger.info("Session %s changed underneath us, retrying (%d/%d)", session_id, attempt, retries)
            continue
        return outcome, stored
