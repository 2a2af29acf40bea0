"""Unit tests for online_chess/services/projection.py"""

import logging
from uuid import UUID

import pytest

from online_chess.api.models import (
    CreateSessionRequest,
    JoinSessionRequest,
    MoveRequest,
    ToggleImmuneRequest,
)
from online_chess.chess import rules
from online_chess.core.exceptions import IllegalMoveError, NotYourTurnError
from online_chess.core.models import STARTING_POSITION, GameSessionModel, PlayerIdentity
from online_chess.core.shared_types import PieceType, Side, Status
from online_chess.services.projection import (
    ClientProjection,
    MoveRow,
    ProjectionClient,
    checked_king_square,
    pair_moves,
)


@pytest.fixture
def session_id(alice, bob) -> UUID:
    created = alice.sessions.create_session(CreateSessionRequest(side=Side.WHITE))
    bob.sessions.join_session(JoinSessionRequest(code=created.code))
    return created.session_id


def test_pair_moves() -> None:
    _, records = rules.replay_verbose(["e4", "e5", "Nf3"])
    assert pair_moves(records) == [MoveRow(1, "e4", "e5"), MoveRow(2, "Nf3", None)]
    assert pair_moves([]) == []


def test_checked_king_square() -> None:
    assert checked_king_square(rules.replay(["e4", "e5", "Qh5", "Nc6", "Qxf7+"])) == "e8"
    assert checked_king_square(rules.load_board()) is None


def test_build_for_each_viewer() -> None:
    white = PlayerIdentity(id="u1", display_name="White")
    black = PlayerIdentity(id="u2", display_name="Black")
    board = rules.replay(["e4"])
    model = GameSessionModel(
        code="ABC123",
        position=board.fen(),
        move_log=["e4"],
        white=white,
        black=black,
        turn=Side.BLACK,
        status=Status.ACTIVE,
        version=2,
    )

    for_black = ClientProjection.build(model, black.id)
    assert for_black.my_side == Side.BLACK
    assert for_black.is_my_turn
    assert for_black.opponent == white
    assert for_black.rows == [MoveRow(1, "e4", None)]
    assert for_black.version == 2
    assert not for_black.speculative

    for_white = ClientProjection.build(model, white.id)
    assert for_white.my_side == Side.WHITE
    assert not for_white.is_my_turn
    assert for_white.opponent == black

    spectator = ClientProjection.build(model, "someone-else")
    assert spectator.my_side is None
    assert not spectator.is_my_turn
    assert spectator.opponent is None


def test_position_always_comes_from_the_replay(caplog) -> None:
    model = GameSessionModel(
        code="ABC123", position=STARTING_POSITION, move_log=["e4"], turn=Side.BLACK
    )
    with caplog.at_level(logging.WARNING):
        projection = ClientProjection.build(model, "u1")
    assert projection.position == rules.replay(["e4"]).fen()
    assert "differs from replayed move log" in caplog.text


def test_rebuilt_on_every_notification(alice, bob, session_id) -> None:
    updates = []
    client = ProjectionClient(viewer_id=bob.identity.id, on_update=updates.append)
    subscription = client.attach(bob.sessions.subscribe, session_id)

    assert client.projection is not None
    assert client.projection.status == Status.ACTIVE
    assert not client.projection.is_my_turn

    alice.moves.submit_move(MoveRequest(session_id=session_id, move="e4"))
    assert client.projection.moves[-1].san == "e4"
    assert client.projection.is_my_turn
    assert client.projection.opponent == alice.identity

    alice.immunity.toggle_immune(
        ToggleImmuneRequest(session_id=session_id, side=Side.WHITE, kind=PieceType.QUEEN)
    )
    assert client.projection.is_immune(Side.WHITE, PieceType.QUEEN)

    subscription.unsubscribe()
    bob.moves.submit_move(MoveRequest(session_id=session_id, move="e5"))

    assert client.rebuilds == 3
    assert len(updates) == 3
    assert [len(p.moves) for p in updates] == [0, 1, 1]


def test_check_is_highlighted(alice, bob, session_id) -> None:
    client = ProjectionClient(viewer_id=bob.identity.id)
    with client.attach(bob.sessions.subscribe, session_id):
        for ply, move in enumerate(["e4", "e5", "Qh5", "Nc6", "Qxf7+"]):
            player = alice if ply % 2 == 0 else bob
            player.moves.submit_move(MoveRequest(session_id=session_id, move=move))
            assert client.projection is not None
            if ply < 4:
                assert client.projection.checked_king is None
    assert client.projection.checked_king == "e8"
    assert client.projection.rows[-1] == MoveRow(3, "Qxf7+", None)


def test_local_move_until_the_next_rebuild(alice, bob, session_id) -> None:
    client = ProjectionClient(viewer_id=alice.identity.id)
    with client.attach(alice.sessions.subscribe, session_id):
        local = client.apply_local_move("e4")
        assert local.speculative
        assert local.rows == [MoveRow(1, "e4", None)]
        assert not local.is_my_turn

        reverted = client.revert()
        assert reverted is not None
        assert not reverted.speculative
        assert reverted.moves == []

        client.apply_local_move("d4")
        alice.moves.submit_move(MoveRequest(session_id=session_id, move="e4"))

        # the authoritative record replaces the local guess
        assert client.projection is not None
        assert not client.projection.speculative
        assert [m.san for m in client.projection.moves] == ["e4"]


def test_local_move_uses_the_same_rules(alice, bob, session_id) -> None:
    client = ProjectionClient(viewer_id=bob.identity.id)
    with pytest.raises(LookupError):
        client.apply_local_move("e5")

    with client.attach(bob.sessions.subscribe, session_id):
        with pytest.raises(NotYourTurnError):
            client.apply_local_move("e5")
        alice.moves.submit_move(MoveRequest(session_id=session_id, move="e4"))
        with pytest.raises(IllegalMoveError):
            client.apply_local_move("e4")
        assert client.projection is not None
        assert not client.projection.speculative


def test_session_disappears() -> None:
    client = ProjectionClient(viewer_id="u1")
    client.on_change(None)
    assert client.projection is None
    assert client.rebuilds == 1
