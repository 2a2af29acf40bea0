"""
Live sync channel: pushes every committed change of a game session to all attached subscribers.
----

* A new subscriber first receives the current record (or None when it does not exist), then one call per committed write.
* Writes to a session and their publication happen under the same per-session lock, so delivery follows commit order.
  Each subscription additionally drops anything not newer than what it already delivered.
* Unsubscribing waits for an in-flight delivery to that subscriber to finish; nothing is delivered afterwards.
"""

import logging
import queue
import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Callable, Iterator, Optional
from uuid import UUID

from online_chess.core.models import GameSessionModel

logger = logging.getLogger(__name__)

OnChange = Callable[[Optional[GameSessionModel]], None]


class Subscription:
    """Handle returned by subscribe(). Call unsubscribe() (or use it as a context manager) to stop receiving updates."""

    def __init__(self, channel: "LiveSyncChannel", session_id: UUID, on_change: OnChange) -> None:
        self.channel = channel
        self.session_id = session_id
        self._on_change = on_change
        self._lock = threading.RLock()
        self._active = True
        self._last_version = -1

    @property
    def active(self) -> bool:
        return self._active

    def deliver(self, snapshot: Optional[GameSessionModel]) -> None:
        with self._lock:
            if not self._active:
                return
            if snapshot is not None:
                if snapshot.version <= self._last_version:
                    logger.debug(
                        "Dropping stale snapshot v%s of %s", snapshot.version, self.session_id
                    )
                    return
                self._last_version = snapshot.version
            self._on_change(snapshot)

    def unsubscribe(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self.channel._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()


class LiveSyncChannel:
    """In-process fan-out of session snapshots, keyed by session ID."""

    def __init__(self) -> None:
        self._subscribers: dict[UUID, list[Subscription]] = defaultdict(list)
        self._registry_lock = threading.Lock()
        self._session_locks: dict[UUID, threading.RLock] = defaultdict(threading.RLock)

    @contextmanager
    def sequenced(self, session_id: UUID) -> Iterator[None]:
        """Hold while committing a write and publishing it, so subscribers see writes in commit order."""
        with self._registry_lock:
            lock = self._session_locks[session_id]
        with lock:
            yield

    def subscribe(
        self,
        session_id: UUID,
        on_change: OnChange,
        current: Callable[[], Optional[GameSessionModel]],
    ) -> Subscription:
        """Attach a subscriber and immediately hand it the current state (fetched via `current`)."""
        subscription = Subscription(self, session_id, on_change)
        with self.sequenced(session_id):
            with self._registry_lock:
                self._subscribers[session_id].append(subscription)
            subscription.deliver(current())
        logger.info("Subscribed to session %s", session_id)
        return subscription

    def publish(self, snapshot: GameSessionModel) -> None:
        """
        Hand a committed snapshot to every subscriber of its session.
        A failing subscriber is logged and skipped: the write is already committed and the others still get it.
        """
        session_id = snapshot.stored_id
        with self._registry_lock:
            subscribers = list(self._subscribers.get(session_id, []))
        logger.debug(
            "Publishing v%s of %s to %d subscriber(s)",
            snapshot.version,
            session_id,
            len(subscribers),
        )
        for subscription in subscribers:
            try:
                subscription.deliver(snapshot)
            except Exception:
                logger.exception(
                    "Subscriber of session %s failed on v%s", session_id, snapshot.version
                )

    def subscribed_sessions(self) -> list[UUID]:
        """Sessions that currently have at least one subscriber."""
        with self._registry_lock:
            return [session_id for session_id, subs in self._subscribers.items() if subs]

    def subscriber_count(self, session_id: UUID) -> int:
        with self._registry_lock:
            return len(self._subscribers.get(session_id, []))

    def _remove(self, subscription: Subscription) -> None:
        with self._registry_lock:
            subscribers = self._subscribers.get(subscription.session_id, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscribers.pop(subscription.session_id, None)
        logger.info("Unsubscribed from session %s", subscription.session_id)


_CLOSED = object()


class StreamClosed(Exception):
    pass


class SessionStream:
    """
    Iterator over the snapshots of one session.

    with SessionStream(service.subscribe, session_id) as stream:
        for snapshot in stream: ...
    """

    def __init__(
        self,
        subscribe: Callable[[UUID, OnChange], Subscription],
        session_id: UUID,
        maxsize: int = 0,
    ) -> None:
        self.session_id = session_id
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._subscription = subscribe(session_id, self._queue.put)

    def __iter__(self) -> Iterator[Optional[GameSessionModel]]:
        return self

    def __next__(self) -> Optional[GameSessionModel]:
        try:
            return self.get()
        except StreamClosed:
            raise StopIteration from None

    def get(self, timeout: Optional[float] = None) -> Optional[GameSessionModel]:
        """Next snapshot. Raises queue.Empty after timeout and StreamClosed once closed."""
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            raise StreamClosed(f"Stream of session {self.session_id} is closed.")
        return item

    def close(self) -> None:
        self._subscription.unsubscribe()
        self._queue.put(_CLOSED)

    def __enter__(self) -> "SessionStream":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
