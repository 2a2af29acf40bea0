"""Settings read from the environment (a local .env file is picked up as well)."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./online_chess.sqlite3"
    database_echo: bool = False
    code_length: int = 6
    code_attempts: int = 10
    commit_retries: int = 1
    poll_interval: float = 1.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("CHESS_DATABASE_URL", cls.database_url),
            database_echo=_env_bool("CHESS_DATABASE_ECHO", cls.database_echo),
            code_length=int(os.getenv("CHESS_CODE_LENGTH", cls.code_length)),
            code_attempts=int(os.getenv("CHESS_CODE_ATTEMPTS", cls.code_attempts)),
            commit_retries=int(os.getenv("CHESS_COMMIT_RETRIES", cls.commit_retries)),
            poll_interval=float(os.getenv("CHESS_POLL_INTERVAL", cls.poll_interval)),
            log_level=os.getenv("CHESS_LOG_LEVEL", cls.log_level).upper(),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # SQL echo goes through its own logger, keep it quiet unless asked for
    if not settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
