"""Tests for game_state_manager.py: recording, undo, substitutions and observers."""

import random
import threading

import pytest

from wagerbook.game.game_event import EventType, GameEvent, Player, SubstitutionSource, Team
from wagerbook.game.game_state_manager import GameStateManager
from wagerbook.game.outcomes import FailureKind, NoOp, Settlement, SubstitutionStatus


def _balances(session):
    return {p.name: p.balance for p in session.participants}


@pytest.fixture
def changes(manager):
    received = []
    manager.subscribe(received.append)
    return received


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------

def test_record_event_settles_and_appends(manager):
    session = manager.session
    outcome = manager.record_event(session.get_player("p1"), EventType.GOAL, minute=9)

    assert isinstance(outcome, Settlement)
    assert session.events == [outcome.event]
    assert outcome.event.settlement is outcome.record
    assert _balances(session) == {"Alice": 20.0, "Bob": -10.0, "Carol": -10.0}
    assert manager.can_undo


def test_unsettled_event_is_kept_on_timeline(manager, changes):
    session = manager.session
    outcome = manager.record_event(session.get_player("p6"), EventType.GOAL, minute=12)

    assert isinstance(outcome, NoOp)
    assert outcome.kind == FailureKind.EMPTY_GROUP
    assert [e.player.player_id for e in session.events] == ["p6"]
    assert session.events[0].settlement is None
    assert _balances(session) == {"Alice": 0.0, "Bob": 0.0, "Carol": 0.0}
    assert changes == []
    assert not manager.can_undo


def test_unsettled_event_closes_previous_undo_window(manager):
    session = manager.session
    manager.record_event(session.get_player("p1"), EventType.GOAL)
    manager.record_event(session.get_player("p1"), EventType.ASSIST)

    outcome = manager.undo_last_event()

    assert outcome.kind == FailureKind.INVARIANT_VIOLATION
    assert len(session.events) == 2
    assert _balances(session)["Alice"] == 20.0


def test_events_recorded_before_their_wager_settle_on_recalculate(manager):
    session = manager.session
    manager.record_event(session.get_player("p6"), EventType.GOAL, minute=5)
    manager.record_event(session.get_player("p1"), EventType.ASSIST, minute=30)
    assert session.total_balance() == 0.0

    manager.add_wager(EventType.ASSIST, 3)
    session.participants[2].active_players.append(session.get_player("p6"))
    report = manager.recalculate()

    assert report.replayed == 2
    assert report.no_ops == []
    assert all(e.settlement is not None for e in session.events)
    # assist: Alice +6, Bob -3, Carol -3; goal now Carol's: Carol +20, others -10
    assert _balances(session) == {"Alice": -4.0, "Bob": -13.0, "Carol": 17.0}


def test_record_custom_event(manager):
    session = manager.session
    outcome = manager.record_custom_event(session.get_player("p5"), "Header", minute=40)

    assert outcome.ok
    assert outcome.event.display_name == "Header"
    assert _balances(session)["Carol"] == 8.0


def test_record_custom_event_unknown_label(manager):
    outcome = manager.record_custom_event(manager.session.get_player("p5"), "Scorpion kick")

    assert outcome.kind == FailureKind.LOOKUP_FAILURE
    assert manager.session.events[0].display_name == "Scorpion kick"
    assert manager.session.events[0].settlement is None


# ---------------------------------------------------------------------------
# Undo
# ---------------------------------------------------------------------------

def test_undo_restores_balances_exactly(manager):
    session = manager.session
    manager.record_event(session.get_player("p1"), EventType.GOAL)
    before = _balances(session)
    manager.record_event(session.get_player("p3"), EventType.YELLOW_CARD)

    outcome = manager.undo_last_event()

    assert outcome.ok
    assert _balances(session) == before
    assert len(session.events) == 1


def test_undo_depth_is_one(manager):
    session = manager.session
    manager.record_event(session.get_player("p1"), EventType.GOAL)
    manager.record_event(session.get_player("p3"), EventType.GOAL)

    assert manager.undo_last_event().ok
    second = manager.undo_last_event()

    assert isinstance(second, NoOp)
    assert second.kind == FailureKind.INVARIANT_VIOLATION
    assert len(session.events) == 1


def test_undo_with_nothing_recorded(manager, changes):
    outcome = manager.undo_last_event()

    assert outcome.kind == FailureKind.INVARIANT_VIOLATION
    assert changes == []


def test_substitution_closes_undo_window(manager):
    session = manager.session
    manager.record_event(session.get_player("p1"), EventType.GOAL)
    manager.substitute(session.get_player("p1"), session.get_player("b1"))

    outcome = manager.undo_last_event()

    assert outcome.kind == FailureKind.INVARIANT_VIOLATION
    assert len(session.events) == 2
    assert _balances(session)["Alice"] == 20.0


def test_rejected_substitution_keeps_undo_window(manager):
    session = manager.session
    manager.record_event(session.get_player("p1"), EventType.GOAL)
    result = manager.substitute(session.get_player("p1"), session.get_player("p3"))

    assert result.status == SubstitutionStatus.REJECTED
    assert manager.undo_last_event().ok


def test_assignment_closes_undo_window(manager):
    session = manager.session
    manager.record_event(session.get_player("p1"), EventType.GOAL)
    manager.assign_players_randomly(random.Random(1))
    assert not manager.can_undo


# ---------------------------------------------------------------------------
# Substitutions
# ---------------------------------------------------------------------------

def test_substitute_then_goal_credits_original_owner(manager):
    session = manager.session
    manager.substitute(session.get_player("p1"), session.get_player("b1"), minute=70)

    outcome = manager.record_event(session.get_player("p1"), EventType.GOAL, minute=75)

    assert outcome.ok
    assert _balances(session)["Alice"] == 20.0


def test_substitute_from_feed(manager):
    result = manager.substitute_from_feed("e3", "e102", 64, "t2")

    assert result.status == SubstitutionStatus.APPLIED
    assert result.substitution.source == SubstitutionSource.LIVE_FEED
    assert manager.remaining_substitutions("t2") == 4
    assert not manager.is_player_active(manager.session.get_player("p3"))


def test_substitution_refused_when_session_already_inconsistent(manager, changes, ids):
    session = manager.session
    alice = session.participant(ids["Alice"])
    alice.active_players.append(session.get_player("b1"))      # active but never selected
    active_before = [p.player_id for p in alice.active_players]

    result = manager.substitute(session.get_player("p1"), session.get_player("b2"), minute=60)

    assert result.status == SubstitutionStatus.REJECTED
    assert result.kind == FailureKind.INVARIANT_VIOLATION
    assert [p.player_id for p in alice.active_players] == active_before
    assert alice.substituted_players == []
    assert session.events == []
    assert session.substitutions == []
    assert changes == []


def test_active_players_query(manager, ids):
    session = manager.session
    manager.substitute(session.get_player("p4"), session.get_player("b2"))
    assert [p.player_id for p in manager.active_players(ids["Bob"])] == ["p3", "b2"]


# ---------------------------------------------------------------------------
# Observers
# ---------------------------------------------------------------------------

def test_observer_notified_once_per_mutation(manager, changes):
    session = manager.session
    manager.record_event(session.get_player("p1"), EventType.GOAL)
    manager.undo_last_event()
    manager.substitute(session.get_player("p1"), session.get_player("b1"))
    manager.recalculate()

    assert [c.kind for c in changes] == ["event_recorded", "event_undone", "substitution", "recalculated"]
    assert all(c.session is session for c in changes)


def test_observer_not_notified_for_rejections(manager, changes):
    session = manager.session
    manager.substitute(session.get_player("p1"), session.get_player("p1"))
    manager.record_event(session.get_player("p1"), EventType.ASSIST)
    assert changes == []


def test_observer_sees_committed_state(manager):
    session = manager.session
    seen = []
    manager.subscribe(lambda change: seen.append((len(change.session.events), session.participants[0].balance)))

    manager.record_event(session.get_player("p1"), EventType.GOAL)

    assert seen == [(1, 20.0)]


def test_failing_observer_does_not_roll_back(manager, changes):
    def broken(change):
        raise RuntimeError("display offline")

    manager.subscribe(broken)
    outcome = manager.record_event(manager.session.get_player("p1"), EventType.GOAL)

    assert outcome.ok
    assert len(manager.session.events) == 1
    assert len(changes) == 1


def test_unsubscribe(manager):
    received = []
    unsubscribe = manager.subscribe(received.append)
    unsubscribe()

    manager.record_event(manager.session.get_player("p1"), EventType.GOAL)
    assert received == []


# ---------------------------------------------------------------------------
# Setup and player stats
# ---------------------------------------------------------------------------

def test_setup_methods_update_session_and_notify(manager, changes):
    session = manager.session
    dave = manager.add_participant("Dave")
    watkins = Player(player_id="b3", name="Ollie Watkins", team=Team(team_id="t1", name="Rovers"))
    manager.add_players([watkins], select=False)
    wager = manager.add_wager(EventType.ASSIST, 3)

    assert session.participants[-1] is dave
    assert session.get_player("b3") is not None
    assert "b3" not in [p.player_id for p in session.selected_players]
    assert session.wager_for(GameEvent(player=session.get_player("p1"), event_type=EventType.ASSIST)) is wager
    assert [c.kind for c in changes] == ["session_updated"] * 3


def test_duplicate_unlabelled_custom_wager_not_added(manager, changes):
    assert manager.add_wager(EventType.CUSTOM, 1) is None
    assert changes == []


def test_setup_waits_for_lock(manager):
    done = threading.Event()

    def add():
        manager.add_participant("Dave")
        done.set()

    with manager._lock:
        worker = threading.Thread(target=add)
        worker.start()
        assert not done.wait(timeout=0.2)
        assert len(manager.session.participants) == 3

    worker.join(timeout=5)
    assert done.is_set()
    assert manager.session.participants[-1].name == "Dave"


def test_player_stats_follow_timeline(manager):
    session = manager.session
    kane = session.get_player("p1")
    manager.record_event(kane, EventType.GOAL)
    manager.record_event(kane, EventType.GOAL)
    manager.record_event(kane, EventType.YELLOW_CARD)
    manager.record_event(session.get_player("p3"), EventType.GOAL)

    assert manager.player_stats(kane) == {EventType.GOAL: 2, EventType.YELLOW_CARD: 1}

    manager.undo_last_event()          # p3's goal
    manager.substitute(kane, session.get_player("b1"))

    assert manager.player_stats(kane) == {EventType.GOAL: 2, EventType.YELLOW_CARD: 1}
    assert manager.player_stats(session.get_player("p3")) == {}
    assert manager.player_stats(session.get_player("b1")) == {}


def test_player_stats_drop_undone_event(manager):
    kane = manager.session.get_player("p1")
    manager.record_event(kane, EventType.GOAL)
    manager.record_event(kane, EventType.YELLOW_CARD)

    manager.undo_last_event()

    assert manager.player_stats(kane) == {EventType.GOAL: 1}


# ---------------------------------------------------------------------------
# Concurrency and snapshots
# ---------------------------------------------------------------------------

def test_concurrent_records_stay_zero_sum(manager):
    session = manager.session
    players = [session.get_player(pid) for pid in ("p1", "p3", "p5")]

    def worker(player):
        for _ in range(50):
            manager.record_event(player, EventType.GOAL)

    threads = [threading.Thread(target=worker, args=(p,)) for p in players]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(session.events) == 150
    assert session.total_balance() == pytest.approx(0.0, abs=1e-6)


def test_from_snapshot_restores_state_without_undo(manager):
    session = manager.session
    manager.record_event(session.get_player("p1"), EventType.GOAL)

    restored = GameStateManager.from_snapshot(session.to_dict())

    assert restored.balances() == manager.balances()
    assert len(restored.session.events) == 1
    assert not restored.can_undo
