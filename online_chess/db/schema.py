"""Database tables / schema"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from online_chess.core.models import STARTING_POSITION, utc_now
from online_chess.core.shared_types import OPEN_STATUSES, Side, Status

OPEN_CODE_CONDITION = "status IN ({})".format(
    ", ".join(f"'{status.value}'" for status in OPEN_STATUSES)
)


class Base(DeclarativeBase):
    pass


class DBGameSession(Base):
    __tablename__ = "game_sessions"
    __table_args__ = (
        Index("ix_game_sessions_code_status", "code", "status"),
        # a join code is unique among waiting / active sessions only
        Index(
            "uq_game_sessions_open_code",
            "code",
            unique=True,
            sqlite_where=text(OPEN_CODE_CONDITION),
            postgresql_where=text(OPEN_CODE_CONDITION),
        ),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True)
    code: Mapped[str]
    position: Mapped[str] = mapped_column(default=STARTING_POSITION)
    move_log: Mapped[list[str]] = mapped_column(JSON, default=list)
    white: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    black: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    turn: Mapped[str] = mapped_column(default=Side.WHITE.value)
    status: Mapped[str] = mapped_column(default=Status.WAITING.value)
    result: Mapped[Optional[str]]
    immune_set: Mapped[list[dict[str, str]]] = mapped_column(JSON, default=list)
    # bumped by every write; writes are conditioned on the version that was read
    version: Mapped[int] = mapped_column(default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
