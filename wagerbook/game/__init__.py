"""
Live match settlement subsystem.

Records scoring events against participants' player slips, settles
balances through the event ledger, and tracks substitutions so a player
keeps counting for whoever backed them after leaving the pitch.
"""

from .game_event import EventType, GameEvent, Participant, Player, Session, Team, Wager
from .outcomes import FailureKind, NoOp, Settlement, SubstitutionResult, SubstitutionStatus
from .event_ledger import EventLedger
from .roster import Roster
from .substitution_coordinator import SubstitutionCoordinator
from .replay_engine import ReplayEngine
from .game_state_manager import GameStateManager, StateChange
from .session_store import SessionStore
from .feed_client import LiveFeedClient
from .live_match_engine import LiveMatchEngine

__all__ = [
    'EventType',
    'GameEvent',
    'Participant',
    'Player',
    'Session',
    'Team',
    'Wager',
    'FailureKind',
    'NoOp',
    'Settlement',
    'SubstitutionResult',
    'SubstitutionStatus',
    'EventLedger',
    'Roster',
    'SubstitutionCoordinator',
    'ReplayEngine',
    'GameStateManager',
    'StateChange',
    'SessionStore',
    'LiveFeedClient',
    'LiveMatchEngine',
]
