"""Implementation of (Game)Repository using SQLAlchemy"""

import logging
import threading
import weakref
from datetime import datetime, timezone
from typing import Any, Iterable, Optional
from uuid import UUID, uuid4

from sqlalchemy import Connection, Engine, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from online_chess.core.exceptions import ConflictError, NotFoundError
from online_chess.core.models import (
    GameSessionModel,
    ImmunePiece,
    PlayerIdentity,
    utc_now,
)
from online_chess.core.shared_types import OPEN_STATUSES, GameResult, Side, Status
from online_chess.db.schema import DBGameSession
from online_chess.sync.channel import LiveSyncChannel, OnChange, Subscription

logger = logging.getLogger(__name__)

# Fields a caller may change through update_session(). id / version / timestamps are managed here.
DOCUMENT_FIELDS = frozenset(
    ["code", "position", "move_log", "white", "black", "turn", "status", "result", "immune_set"]
)


# One live sync channel per store (engine), shared by every repository writing to it in this process.
_channels: "weakref.WeakKeyDictionary[Engine, LiveSyncChannel]" = weakref.WeakKeyDictionary()
_channels_lock = threading.Lock()


def channel_for(bind: Engine | Connection) -> LiveSyncChannel:
    engine = bind.engine if isinstance(bind, Connection) else bind
    with _channels_lock:
        channel = _channels.get(engine)
        if channel is None:
            channel = _channels[engine] = LiveSyncChannel()
        return channel


class SQLGameRepository:
    """Data stored using SQL / methods implemented using SQLAlchemy"""

    def __init__(self, db_session: Session, channel: Optional[LiveSyncChannel] = None) -> None:
        self.db = db_session
        self.channel = channel or channel_for(db_session.get_bind())

    def create_session(self, session: GameSessionModel) -> GameSessionModel:
        """Store new session and return the stored data (with newly created ID)."""
        code = session.code.upper()
        if self.find_by_code(code, OPEN_STATUSES):
            raise ConflictError(f"Code {code} is already used by an open session.")

        new_id = uuid4()
        now = utc_now()
        session_db = DBGameSession(
            id=new_id,
            version=0,
            created_at=now,
            updated_at=now,
            **{**session.to_document(), "code": code},
        )
        self.db.add(session_db)
        try:
            self.db.commit()
        except IntegrityError as e:
            # another writer claimed the same open code in between
            self.db.rollback()
            raise ConflictError(f"Code {code} is already used by an open session.") from e
        self.db.refresh(session_db)
        logger.info("Created session %s with code %s", new_id, code)
        return self._to_model(session_db)

    def get_session(self, session_id: UUID) -> GameSessionModel | None:
        """Get session by ID, if record exists."""
        session_db = self._fetch_session(session_id)
        if session_db:
            return self._to_model(session_db)
        return None

    def find_by_code(
        self, code: str, statuses: Optional[Iterable[Status]] = None
    ) -> list[GameSessionModel]:
        query = select(DBGameSession).where(DBGameSession.code == code.strip().upper())
        if statuses is not None:
            query = query.where(DBGameSession.status.in_([s.value for s in statuses]))
        query = query.order_by(DBGameSession.created_at.desc()).execution_options(
            populate_existing=True
        )
        return [self._to_model(row) for row in self.db.scalars(query)]

    def find_by_player(self, player_id: str) -> list[GameSessionModel]:
        query = (
            select(DBGameSession)
            .where(
                or_(
                    DBGameSession.white["id"].as_string() == player_id,
                    DBGameSession.black["id"].as_string() == player_id,
                )
            )
            .order_by(DBGameSession.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return [self._to_model(row) for row in self.db.scalars(query)]

    def update_session(
        self, session_id: UUID, changes: dict[str, Any], expected_version: int
    ) -> GameSessionModel:
        """
        Conditional write: UPDATE ... WHERE id = :id AND version = :expected_version.
        ----

        Only the listed fields change. Zero rows matched means somebody else wrote first (or the record is gone).
        The write and its publication happen in one sequenced block, so subscribers see commits in order.
        """
        unknown = set(changes) - DOCUMENT_FIELDS
        if unknown:
            raise ValueError(f"Cannot update unknown field(s): {', '.join(sorted(unknown))}")

        with self.channel.sequenced(session_id):
            statement = (
                update(DBGameSession)
                .where(
                    DBGameSession.id == session_id,
                    DBGameSession.version == expected_version,
                )
                .values(**changes, version=expected_version + 1, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(statement)
            if result.rowcount == 0:
                self.db.rollback()
                if self._fetch_session(session_id) is None:
                    raise NotFoundError(f"Session with {session_id=} not found.")
                logger.warning(
                    "Stale write on session %s (expected version %s)", session_id, expected_version
                )
                raise ConflictError(f"Session {session_id} changed since version {expected_version}.")
            self.db.commit()

            session_db = self._fetch_session(session_id)
            if session_db is None:
                raise NotFoundError(f"Session with {session_id=} vanished after the update.")
            stored = self._to_model(session_db)
            self.channel.publish(stored)
        return stored

    def subscribe(self, session_id: UUID, on_change: OnChange) -> Subscription:
        """Current state first, then every committed write (see sync/channel.py)."""
        return self.channel.subscribe(
            session_id, on_change, current=lambda: self.get_session(session_id)
        )

    def _fetch_session(self, session_id: UUID) -> DBGameSession | None:
        query = (
            select(DBGameSession)
            .where(DBGameSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        return self.db.scalar(query)

    def _to_model(self, session_db: DBGameSession) -> GameSessionModel:
        """Convert SQLAlchemy model to data transfer model."""
        return GameSessionModel(
            id=session_db.id,
            code=session_db.code,
            position=session_db.position,
            move_log=list(session_db.move_log),
            white=PlayerIdentity.from_dict(session_db.white) if session_db.white else None,
            black=PlayerIdentity.from_dict(session_db.black) if session_db.black else None,
            turn=Side(session_db.turn),
            status=Status(session_db.status),
            result=GameResult(session_db.result) if session_db.result else None,
            immune_set=frozenset(ImmunePiece.from_dict(p) for p in session_db.immune_set),
            version=session_db.version,
            created_at=_as_utc(session_db.created_at),
            updated_at=_as_utc(session_db.updated_at),
        )


def _as_utc(moment: datetime) -> datetime:
    """SQLite hands back naive datetimes."""
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)
