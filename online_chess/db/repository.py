"""Protocol repository: the document store holding one record per game session."""

from typing import Any, Iterable, Optional, Protocol
from uuid import UUID

from online_chess.core.models import GameSessionModel
from online_chess.core.shared_types import Status
from online_chess.sync.channel import OnChange, Subscription


class GameRepository(Protocol):
    """Persistence layer orchestration"""

    def create_session(self, session: GameSessionModel) -> GameSessionModel:
        """
        Store a new session and return it with its store-assigned id / version.
        Raises ConflictError if a waiting or active session already uses the same code.
        """
        ...

    def get_session(self, session_id: UUID) -> GameSessionModel | None:
        """Get session by ID, if record exists."""
        ...

    def find_by_code(
        self, code: str, statuses: Optional[Iterable[Status]] = None
    ) -> list[GameSessionModel]:
        """Sessions with the given join code, optionally restricted to some statuses (newest first)."""
        ...

    def find_by_player(self, player_id: str) -> list[GameSessionModel]:
        """Sessions where the identity occupies either slot (newest first)."""
        ...

    def update_session(
        self, session_id: UUID, changes: dict[str, Any], expected_version: int
    ) -> GameSessionModel:
        """
        Atomically write the listed fields, if the record is still at expected_version.
        Raises NotFoundError for an unknown ID and ConflictError when the record changed since it was read.
        """
        ...

    def subscribe(self, session_id: UUID, on_change: OnChange) -> Subscription:
        """Receive the current record immediately, then every committed change, in commit order."""
        ...
