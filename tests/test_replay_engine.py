"""Tests for replay_engine.py balance recalculation."""

import pytest

from wagerbook.game.game_event import EventType, GameEvent
from wagerbook.game.outcomes import FailureKind
from wagerbook.game.replay_engine import ReplayEngine


def _balances(session):
    return {p.name: p.balance for p in session.participants}


def _play_match(manager):
    session = manager.session
    manager.record_event(session.get_player("p1"), EventType.GOAL, minute=12)
    manager.record_event(session.get_player("p3"), EventType.YELLOW_CARD, minute=30)
    manager.record_custom_event(session.get_player("p5"), "Header", minute=55)


def test_replay_matches_incremental_balances(manager):
    _play_match(manager)
    incremental = _balances(manager.session)

    report = ReplayEngine().recalculate(manager.session)

    assert report.replayed == 3
    assert report.no_ops == []
    for name, balance in incremental.items():
        assert _balances(manager.session)[name] == pytest.approx(balance)


def test_replay_is_deterministic(manager):
    _play_match(manager)
    engine = ReplayEngine()

    first = engine.recalculate(manager.session).balances
    second = engine.recalculate(manager.session).balances

    assert first == second


def test_replay_resets_drifted_balances(manager):
    _play_match(manager)
    expected = _balances(manager.session)
    manager.session.participants[0].balance = 999.0

    ReplayEngine().recalculate(manager.session)

    assert _balances(manager.session) == pytest.approx(expected)
    assert manager.session.total_balance() == pytest.approx(0.0)


def test_replay_skips_substitution_entries(manager):
    session = manager.session
    manager.record_event(session.get_player("p1"), EventType.GOAL)
    manager.substitute(session.get_player("p1"), session.get_player("b1"), minute=60)

    report = ReplayEngine().recalculate(session)

    assert report.replayed == 1
    assert report.skipped_timeline == 1


def test_replay_uses_current_wager_amounts(manager):
    session = manager.session
    manager.record_event(session.get_player("p1"), EventType.GOAL)
    session.replace_standard_wagers({EventType.GOAL: 1, EventType.YELLOW_CARD: -5})

    ReplayEngine().recalculate(session)

    assert _balances(session) == {"Alice": 2.0, "Bob": -1.0, "Carol": -1.0}


# ---------------------------------------------------------------------------
# Recorded partition vs current roster
# ---------------------------------------------------------------------------

def _move_p1_to_bob(session):
    alice, bob, _ = session.participants
    p1 = session.get_player("p1")
    alice.active_players = [p for p in alice.active_players if p.player_id != "p1"]
    bob.active_players.append(p1)


def test_replay_uses_recorded_partition_by_default(manager):
    session = manager.session
    manager.record_event(session.get_player("p1"), EventType.GOAL)
    _move_p1_to_bob(session)

    ReplayEngine().recalculate(session)

    assert _balances(session) == {"Alice": 20.0, "Bob": -10.0, "Carol": -10.0}


def test_replay_against_current_roster(manager):
    session = manager.session
    manager.record_event(session.get_player("p1"), EventType.GOAL)
    _move_p1_to_bob(session)

    ReplayEngine(use_recorded_partitions=False).recalculate(session)

    assert _balances(session) == {"Alice": -10.0, "Bob": 20.0, "Carol": -10.0}
    assert session.events[0].settlement.with_player == [session.participants[1].participant_id]


def test_event_without_record_settles_against_current_roster(session):
    session.events.append(GameEvent(player=session.get_player("p3"), event_type=EventType.GOAL))

    report = ReplayEngine().recalculate(session)

    assert report.replayed == 1
    assert session.events[0].settlement is not None
    assert _balances(session) == {"Alice": -10.0, "Bob": 20.0, "Carol": -10.0}


def test_unsettleable_event_reported_as_no_op(session):
    session.events.append(GameEvent(player=session.get_player("p6"), event_type=EventType.GOAL))
    session.events.append(GameEvent(player=session.get_player("p1"), event_type=EventType.ASSIST))

    report = ReplayEngine().recalculate(session)

    assert report.replayed == 0
    assert [n.kind for n in report.no_ops] == [FailureKind.EMPTY_GROUP, FailureKind.LOOKUP_FAILURE]
    assert all(e.settlement is None for e in session.events)
    assert all(p.balance == 0.0 for p in session.participants)
