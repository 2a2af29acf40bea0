"""
Change feed for writes made by other processes.
----

The live sync channel only sees writes made through repositories of this process. A StorePoller re-reads every
session that has subscribers here, and publishes any version newer than the last one it saw.
Subscriptions already drop versions they delivered, so writes made in this process are not delivered twice.
"""

import logging
import threading
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from online_chess.db.sql_repository import SQLGameRepository
from online_chess.sync.channel import LiveSyncChannel

logger = logging.getLogger(__name__)


class StorePoller:
    def __init__(
        self,
        make_session: Callable[[], Session],
        channel: LiveSyncChannel,
        interval: float = 1.0,
    ) -> None:
        self.make_session = make_session
        self.channel = channel
        self.interval = interval
        self._seen: dict[UUID, int] = {}
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def poll_once(self) -> int:
        """Read every subscribed session once. Returns the number of snapshots published."""
        watched = self.channel.subscribed_sessions()
        # forget sessions nobody listens to anymore
        self._seen = {session_id: v for session_id, v in self._seen.items() if session_id in watched}

        published = 0
        with self.make_session() as db:
            repo = SQLGameRepository(db, self.channel)
            for session_id in watched:
                stored = repo.get_session(session_id)
                if stored is None or stored.version <= self._seen.get(session_id, -1):
                    continue
                self._seen[session_id] = stored.version
                self.channel.publish(stored)
                published += 1
        if published:
            logger.debug("Published %d snapshot(s) read from the store", published)
        return published

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="store-poller", daemon=True)
        self._thread.start()
        logger.info("Polling the store every %ss", self.interval)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        logger.info("Stopped polling the store")

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.poll_once()
            except Exception:
                # the next tick retries
                logger.exception("Polling the store failed")

    def __enter__(self) -> "StorePoller":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
