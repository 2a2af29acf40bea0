"""Generate database sessions"""

from functools import lru_cache
from typing import Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from online_chess.core.config import get_settings
from online_chess.db.schema import Base
from online_chess.db.sql_repository import channel_for
from online_chess.sync.channel import LiveSyncChannel
from online_chess.sync.poller import StorePoller


@lru_cache
def get_engine() -> Engine:
    settings = get_settings()
    connect_args = (
        {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
    )
    engine = create_engine(
        settings.database_url, echo=settings.database_echo, connect_args=connect_args
    )
    # Ensure all tables are created
    Base.metadata.create_all(bind=engine)
    return engine


def get_sessionmaker() -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine())


def get_channel() -> LiveSyncChannel:
    """The live sync channel of the configured store, shared by all repositories on it."""
    return channel_for(get_engine())


@lru_cache
def get_poller() -> StorePoller:
    """Feeds writes of other processes into get_channel(). Call start() to run it in the background."""
    return StorePoller(get_sessionmaker(), get_channel(), get_settings().poll_interval)


def get_db() -> Generator[Session, None, None]:
    db = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()
