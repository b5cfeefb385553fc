"""Shared fixtures: a small two-team match with three participants."""

import pytest

from wagerbook.game.game_event import EventType, Player, Session, Team
from wagerbook.game.game_state_manager import GameStateManager


HOME = Team(team_id="t1", name="Rovers", short_name="ROV")
AWAY = Team(team_id="t2", name="United", short_name="UTD")


def make_player(player_id, name, team, external_id=None):
    return Player(player_id=player_id, name=name, team=team, external_id=external_id)


def build_session():
    """
    Alice backs p1 and p2, Bob backs p3 and p4, Carol backs p5.
    p6 is in play but unowned. b1 and b2 are on the bench.
    """
    session = Session()
    alice = session.add_participant("Alice")
    bob = session.add_participant("Bob")
    carol = session.add_participant("Carol")

    session.select_players([
        make_player("p1", "Harry Kane", HOME, "e1"),
        make_player("p2", "Bukayo Saka", HOME, "e2"),
        make_player("p3", "Mohamed Salah", AWAY, "e3"),
        make_player("p4", "Virgil van Dijk", AWAY, "e4"),
        make_player("p5", "Declan Rice", HOME, "e5"),
        make_player("p6", "Darwin Nunez", AWAY, "e6"),
    ])
    session.add_players([
        make_player("b1", "Jarrod Bowen", HOME, "e101"),
        make_player("b2", "Cody Gakpo", AWAY, "e102"),
    ])

    alice.active_players = [session.get_player("p1"), session.get_player("p2")]
    bob.active_players = [session.get_player("p3"), session.get_player("p4")]
    carol.active_players = [session.get_player("p5")]

    session.add_wager(EventType.GOAL, 10)
    session.add_wager(EventType.YELLOW_CARD, -5)
    session.add_custom_wager("Header", 4)
    return session


@pytest.fixture
def session():
    return build_session()


@pytest.fixture
def manager(session):
    return GameStateManager(session)


@pytest.fixture
def ids(session):
    """Participant ids by name."""
    return {p.name: p.participant_id for p in session.participants}


@pytest.fixture
def two_player_session():
    """P1 owns X, P2 owns nothing."""
    session = Session()
    p1 = session.add_participant("P1")
    session.add_participant("P2")
    session.select_players([
        make_player("x", "Player X", HOME, "ex"),
        make_player("z", "Player Z", HOME, "ez"),
    ])
    p1.active_players = [session.get_player("x")]
    session.selected_players = [session.get_player("x")]
    return session


@pytest.fixture
def session_factory():
    """Build independent copies of the shared match setup."""
    return build_session
