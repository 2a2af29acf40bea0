"""
Pytest will auto-discover / import this file called 'conftest.py'.
This file defines fixtures/variables required for testing multiple layers.
"""

from dataclasses import dataclass
from typing import Callable, Generator, Optional

import pytest
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from online_chess.core.config import Settings
from online_chess.core.models import PlayerIdentity
from online_chess.db.repository import GameRepository
from online_chess.db.schema import Base
from online_chess.db.sql_repository import SQLGameRepository
from online_chess.services.identity import StaticIdentityProvider
from online_chess.services.move_coordinator import MoveCoordinator
from online_chess.services.overlay_service import ImmunityService
from online_chess.services.session_service import SessionService
from online_chess.sync.channel import LiveSyncChannel

# Setup an in-memory SQLite database for testing
DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autoflush=False, bind=engine)

TEST_SETTINGS = Settings(database_url=DATABASE_URL, commit_retries=1)


@dataclass
class Client:
    """Everything one connected player uses, all bound to the same identity."""

    identity: Optional[PlayerIdentity]
    sessions: SessionService
    moves: MoveCoordinator
    immunity: ImmunityService


ClientFactory = Callable[..., Client]


def build_client(
    repository: GameRepository,
    identity: Optional[PlayerIdentity],
    settings: Settings = TEST_SETTINGS,
) -> Client:
    provider = StaticIdentityProvider(identity)
    return Client(
        identity=identity,
        sessions=SessionService(repository, provider, settings),
        moves=MoveCoordinator(repository, provider, settings),
        immunity=ImmunityService(repository, provider, settings),
    )


@pytest.fixture
def db_session_repo() -> Generator[Session, None, None]:
    """Connection to a test database. Tables are removed at teardown to make unit tests of repository independent of each other."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def channel() -> LiveSyncChannel:
    return LiveSyncChannel()


@pytest.fixture
def repository(db_session_repo: Session, channel: LiveSyncChannel) -> SQLGameRepository:
    return SQLGameRepository(db_session_repo, channel)


@pytest.fixture
def client_factory(repository: SQLGameRepository) -> ClientFactory:
    """Build a client for any identity (None = signed out), optionally on another repository / settings."""

    def factory(
        identity: Optional[PlayerIdentity],
        repo: Optional[GameRepository] = None,
        settings: Settings = TEST_SETTINGS,
    ) -> Client:
        return build_client(repo or repository, identity, settings)

    return factory


@pytest.fixture
def alice(client_factory: ClientFactory) -> Client:
    return client_factory(
        PlayerIdentity(id="uid-alice", display_name="Alice", email="alice@example.com")
    )


@pytest.fixture
def bob(client_factory: ClientFactory) -> Client:
    return client_factory(
        PlayerIdentity(id="uid-bob", display_name="Bob", email="bob@example.com")
    )


@pytest.fixture
def carol(client_factory: ClientFactory) -> Client:
    return client_factory(
        PlayerIdentity(id="uid-carol", display_name="Carol", email="carol@example.com")
    )
