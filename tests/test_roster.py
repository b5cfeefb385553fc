"""Tests for roster.py ownership queries and player assignment."""

import random

import pytest

from wagerbook.game.game_event import EventType, GameEvent, PlayerStatus
from wagerbook.game.roster import Roster, assign_players_randomly, calculate_player_distribution


def test_owner_of_active_player(session, ids):
    roster = Roster(session)
    assert roster.owner_of(session.get_player("p3")) == ids["Bob"]
    assert roster.owner_of(session.get_player("p6")) is None


def test_owner_of_includes_substituted_players(session, ids):
    alice = session.participants[0]
    p1 = session.get_player("p1")
    alice.active_players = [session.get_player("p2")]
    alice.substituted_players = [p1]

    roster = Roster(session)
    assert roster.owner_of(p1) == ids["Alice"]
    assert roster.active_owner_of(p1) is None


def test_is_active(session):
    roster = Roster(session)
    p1 = session.get_player("p1")
    assert roster.is_active(p1)

    p1.status = PlayerStatus.SUBSTITUTED_OFF
    assert not roster.is_active(p1)


def test_is_active_false_when_held_in_substituted_set(session):
    session.participants[0].substituted_players = [session.get_player("p1")]
    assert not Roster(session).is_active(session.get_player("p1"))


def test_partition_preserves_session_order(session):
    bob = session.participants[1]
    bob.active_players.append(session.get_player("p6"))
    session.participants[2].active_players.append(session.get_player("p6"))

    with_player, without_player = Roster(session).partition(session.get_player("p6"))

    assert [p.name for p in with_player] == ["Bob", "Carol"]
    assert [p.name for p in without_player] == ["Alice"]


def test_event_counts_skip_timeline_entries(session):
    kane = session.get_player("p1")
    session.events.extend([
        GameEvent(player=kane, event_type=EventType.GOAL),
        GameEvent(player=kane, event_type=EventType.ASSIST),
        GameEvent(player=kane, event_type=EventType.GOAL),
        GameEvent(player=kane, event_type=EventType.CUSTOM, custom_label="Sub off", wagering=False),
        GameEvent(player=session.get_player("p3"), event_type=EventType.RED_CARD),
    ])

    roster = Roster(session)

    assert roster.event_counts(kane) == {EventType.GOAL: 2, EventType.ASSIST: 1}
    assert roster.event_counts(session.get_player("p2")) == {}


def test_active_and_substituted_players(session, ids):
    roster = Roster(session)
    assert [p.player_id for p in roster.active_players(ids["Alice"])] == ["p1", "p2"]
    assert roster.substituted_players(ids["Alice"]) == []


def test_unknown_participant_raises(session):
    with pytest.raises(ValueError):
        Roster(session).active_players("nobody")


def test_active_players_returns_copy(session, ids):
    players = Roster(session).active_players(ids["Alice"])
    players.clear()
    assert len(session.participants[0].active_players) == 2


# ---------------------------------------------------------------------------
# Player lookup
# ---------------------------------------------------------------------------

def test_find_in_selected_and_available(session):
    roster = Roster(session)
    assert roster.find_in_selected("e1").player_id == "p1"
    assert roster.find_in_selected("e101") is None
    assert roster.find_in_available("e101").player_id == "b1"
    assert roster.find_in_available("missing") is None
    assert roster.find_in_available("") is None


def test_find_by_name_exact_is_case_insensitive(session):
    assert Roster(session).find_by_name("harry kane").player_id == "p1"


def test_find_by_name_fuzzy(session):
    assert Roster(session).find_by_name("Dijk Virgil van").player_id == "p4"


def test_find_by_name_rejects_low_confidence(session):
    assert Roster(session).find_by_name("Lionel Messi") is None
    assert Roster(session).find_by_name("") is None


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("total,participants,expected", [
    (6, 3, (2, 0)),
    (7, 3, (2, 1)),
    (2, 3, (0, 2)),
])
def test_calculate_player_distribution(total, participants, expected):
    assert calculate_player_distribution(total, participants) == expected


def test_assign_players_randomly_deals_every_player_once(session):
    assert assign_players_randomly(session, random.Random(7))

    dealt = [p.player_id for participant in session.participants for p in participant.active_players]
    assert sorted(dealt) == sorted(p.player_id for p in session.selected_players)
    assert [len(p.active_players) for p in session.participants] == [2, 2, 2]
    session.validate()


def test_assign_players_randomly_is_seeded(session, session_factory):
    other = session_factory()
    assign_players_randomly(session, random.Random(3))
    assign_players_randomly(other, random.Random(3))

    assert (
        [[p.player_id for p in x.active_players] for x in session.participants]
        == [[p.player_id for p in x.active_players] for x in other.participants]
    )


def test_assign_players_randomly_needs_participants(session):
    session.participants = []
    assert assign_players_randomly(session) is False
