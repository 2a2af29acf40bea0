"""Unit tests for online_chess/sync/channel.py"""

import threading
from dataclasses import replace
from typing import Optional
from uuid import UUID, uuid4

import pytest

from online_chess.core.exceptions import GameStateError
from online_chess.core.models import GameSessionModel
from online_chess.sync.channel import LiveSyncChannel, SessionStream, StreamClosed

SESSION_ID = uuid4()


def snapshot(version: int, *moves: str) -> GameSessionModel:
    return GameSessionModel(code="ABC123", id=SESSION_ID, version=version, move_log=list(moves))


class Recorder:
    def __init__(self) -> None:
        self.seen: list[Optional[GameSessionModel]] = []

    def __call__(self, model: Optional[GameSessionModel]) -> None:
        self.seen.append(model)

    @property
    def versions(self) -> list[Optional[int]]:
        return [model.version if model else None for model in self.seen]


def test_current_state_is_delivered_first() -> None:
    channel = LiveSyncChannel()
    recorder = Recorder()
    channel.subscribe(SESSION_ID, recorder, current=lambda: snapshot(3, "e4"))
    assert recorder.versions == [3]


def test_absent_session_is_delivered_as_none() -> None:
    channel = LiveSyncChannel()
    recorder = Recorder()
    channel.subscribe(uuid4(), recorder, current=lambda: None)
    assert recorder.seen == [None]


def test_updates_in_commit_order_to_every_subscriber() -> None:
    channel = LiveSyncChannel()
    first, second = Recorder(), Recorder()
    channel.subscribe(SESSION_ID, first, current=lambda: snapshot(0))
    channel.subscribe(SESSION_ID, second, current=lambda: snapshot(0))

    channel.publish(snapshot(1, "e4"))
    channel.publish(snapshot(2, "e4", "e5"))

    assert first.versions == [0, 1, 2]
    assert second.versions == [0, 1, 2]
    assert channel.subscriber_count(SESSION_ID) == 2


def test_older_snapshots_are_never_delivered_after_newer_ones() -> None:
    channel = LiveSyncChannel()
    recorder = Recorder()
    channel.subscribe(SESSION_ID, recorder, current=lambda: snapshot(0))

    channel.publish(snapshot(2, "e4", "e5"))
    channel.publish(snapshot(1, "e4"))
    channel.publish(snapshot(2, "e4", "e5"))

    assert recorder.versions == [0, 2]


def test_other_sessions_are_not_delivered() -> None:
    channel = LiveSyncChannel()
    recorder = Recorder()
    channel.subscribe(SESSION_ID, recorder, current=lambda: snapshot(0))
    channel.publish(replace(snapshot(1), id=uuid4()))
    assert recorder.versions == [0]


def test_failing_subscriber_does_not_stop_the_others(caplog) -> None:
    channel = LiveSyncChannel()
    first, second = Recorder(), Recorder()

    def broken(model: Optional[GameSessionModel]) -> None:
        first(model)
        if model is not None and model.version > 0:
            raise RuntimeError("subscriber went away")

    channel.subscribe(SESSION_ID, broken, current=lambda: snapshot(0))
    channel.subscribe(SESSION_ID, second, current=lambda: snapshot(0))

    channel.publish(snapshot(1, "e4"))
    channel.publish(snapshot(2, "e4", "e5"))

    assert first.versions == [0, 1, 2]
    assert second.versions == [0, 1, 2]
    assert "failed on v1" in caplog.text


def test_unsaved_record_cannot_be_published() -> None:
    with pytest.raises(GameStateError):
        LiveSyncChannel().publish(GameSessionModel(code="ABC123"))


def test_subscribed_sessions() -> None:
    channel = LiveSyncChannel()
    other = uuid4()
    subscription = channel.subscribe(SESSION_ID, Recorder(), current=lambda: None)
    channel.subscribe(other, Recorder(), current=lambda: None)
    assert set(channel.subscribed_sessions()) == {SESSION_ID, other}

    subscription.unsubscribe()
    assert channel.subscribed_sessions() == [other]


def test_unsubscribe_stops_delivery() -> None:
    channel = LiveSyncChannel()
    stays, leaves = Recorder(), Recorder()
    channel.subscribe(SESSION_ID, stays, current=lambda: snapshot(0))
    subscription = channel.subscribe(SESSION_ID, leaves, current=lambda: snapshot(0))

    subscription.unsubscribe()
    subscription.unsubscribe()
    channel.publish(snapshot(1, "e4"))

    assert not subscription.active
    assert leaves.versions == [0]
    assert stays.versions == [0, 1]
    assert channel.subscriber_count(SESSION_ID) == 1


def test_unsubscribe_from_inside_the_callback() -> None:
    channel = LiveSyncChannel()
    seen: list[int] = []

    def once(model: Optional[GameSessionModel]) -> None:
        assert model is not None
        seen.append(model.version)
        if model.version == 1:
            subscription.unsubscribe()

    subscription = channel.subscribe(SESSION_ID, once, current=lambda: snapshot(0))
    channel.publish(snapshot(1, "e4"))
    channel.publish(snapshot(2, "e4", "e5"))

    assert seen == [0, 1]
    assert channel.subscriber_count(SESSION_ID) == 0


def test_unsubscribe_waits_for_an_inflight_delivery() -> None:
    """Once unsubscribe() returned, the callback is not running and will not run again."""
    channel = LiveSyncChannel()
    entered, release = threading.Event(), threading.Event()
    seen: list[int] = []

    def slow(model: Optional[GameSessionModel]) -> None:
        assert model is not None
        if model.version == 1:
            entered.set()
            release.wait(timeout=5)
        seen.append(model.version)

    subscription = channel.subscribe(SESSION_ID, slow, current=lambda: snapshot(0))
    publisher = threading.Thread(target=channel.publish, args=(snapshot(1, "e4"),))
    publisher.start()
    assert entered.wait(timeout=5)

    leaving = threading.Thread(target=subscription.unsubscribe)
    leaving.start()
    leaving.join(timeout=0.2)
    assert leaving.is_alive()

    release.set()
    leaving.join(timeout=5)
    publisher.join(timeout=5)
    assert not leaving.is_alive()

    channel.publish(snapshot(2, "e4", "e5"))
    assert seen == [0, 1]


def test_subscription_as_context_manager() -> None:
    channel = LiveSyncChannel()
    recorder = Recorder()
    with channel.subscribe(SESSION_ID, recorder, current=lambda: snapshot(0)):
        channel.publish(snapshot(1, "e4"))
    channel.publish(snapshot(2, "e4", "e5"))
    assert recorder.versions == [0, 1]


# -- STREAM --
def test_stream_yields_snapshots_until_closed() -> None:
    channel = LiveSyncChannel()

    def subscribe(session_id: UUID, on_change):
        return channel.subscribe(session_id, on_change, current=lambda: snapshot(0))

    stream = SessionStream(subscribe, SESSION_ID)
    channel.publish(snapshot(1, "e4"))

    first = stream.get(timeout=1)
    second = stream.get(timeout=1)
    assert first is not None and first.version == 0
    assert second is not None and second.move_log == ["e4"]

    stream.close()
    channel.publish(snapshot(2, "e4", "e5"))
    with pytest.raises(StreamClosed):
        stream.get(timeout=1)
    assert channel.subscriber_count(SESSION_ID) == 0


def test_stream_iteration_ends_on_close() -> None:
    channel = LiveSyncChannel()

    def subscribe(session_id: UUID, on_change):
        return channel.subscribe(session_id, on_change, current=lambda: snapshot(0))

    with SessionStream(subscribe, SESSION_ID) as stream:
        channel.publish(snapshot(1, "e4"))
        stream.close()
        assert [model.version for model in stream if model] == [0, 1]
