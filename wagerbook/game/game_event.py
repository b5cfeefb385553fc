"""
Core data structures for game events and session state.

These dataclasses represent a betting slip session: the participants and the
players they back, the wagers attached to each event type, and the
append-only timeline of events that drives settlement.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
import json
import logging
import uuid

logger = logging.getLogger(__name__)


def new_id() -> str:
    """Generate a fresh identifier."""
    return str(uuid.uuid4())


class EventType(str, Enum):
    """Sporting event types a wager can be attached to."""

    GOAL = 'goal'
    ASSIST = 'assist'
    YELLOW_CARD = 'yellow_card'
    RED_CARD = 'red_card'
    OWN_GOAL = 'own_goal'
    PENALTY = 'penalty'
    PENALTY_MISSED = 'penalty_missed'
    CLEAN_SHEET = 'clean_sheet'
    CUSTOM = 'custom'

    @property
    def display_name(self) -> str:
        return _EVENT_DISPLAY_NAMES[self]


_EVENT_DISPLAY_NAMES = {
    EventType.GOAL: 'Goal',
    EventType.ASSIST: 'Assist',
    EventType.YELLOW_CARD: 'Yellow Card',
    EventType.RED_CARD: 'Red Card',
    EventType.OWN_GOAL: 'Own Goal',
    EventType.PENALTY: 'Penalty Scored',
    EventType.PENALTY_MISSED: 'Penalty Missed',
    EventType.CLEAN_SHEET: 'Clean Sheet',
    EventType.CUSTOM: 'Custom Event',
}


class PlayerStatus(str, Enum):
    ACTIVE = 'active'
    SUBSTITUTED_OFF = 'substituted_off'


class SubstitutionSource(str, Enum):
    """Where a substitution came from."""

    MANUAL = 'manual'
    LIVE_FEED = 'live_feed'


@dataclass
class Team:
    """A real-world football team."""

    team_id: str
    name: str
    short_name: str = ''

    def to_dict(self) -> dict:
        return {
            'team_id': self.team_id,
            'name': self.name,
            'short_name': self.short_name
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Team':
        return cls(
            team_id=data['team_id'],
            name=data['name'],
            short_name=data.get('short_name', '')
        )


@dataclass
class Player:
    """A footballer that participants can back."""

    player_id: str                      # Local identifier
    name: str                           # Display name
    team: Team                          # Club the player belongs to
    external_id: Optional[str] = None   # Live feed identifier, if known
    position: Optional[str] = None      # goalkeeper / defender / midfielder / forward
    status: PlayerStatus = PlayerStatus.ACTIVE

    @property
    def is_substituted_off(self) -> bool:
        return self.status == PlayerStatus.SUBSTITUTED_OFF

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'player_id': self.player_id,
            'name': self.name,
            'team': self.team.to_dict(),
            'external_id': self.external_id,
            'position': self.position,
            'status': self.status.value
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Player':
        """Create Player from dictionary (JSON deserialization)."""
        return cls(
            player_id=data['player_id'],
            name=data['name'],
            team=Team.from_dict(data['team']),
            external_id=data.get('external_id'),
            position=data.get('position'),
            status=PlayerStatus(data.get('status', PlayerStatus.ACTIVE.value))
        )


@dataclass
class Participant:
    """A person in the wager group with a running balance."""

    participant_id: str
    name: str
    balance: float = 0.0
    active_players: List[Player] = field(default_factory=list)       # Ordered, currently on the pitch
    substituted_players: List[Player] = field(default_factory=list)  # Ordered, subbed off but still owned

    def has_active(self, player_id: str) -> bool:
        return any(p.player_id == player_id for p in self.active_players)

    def has_substituted(self, player_id: str) -> bool:
        return any(p.player_id == player_id for p in self.substituted_players)

    def owns(self, player_id: str) -> bool:
        """True if the player is attributed to this participant, active or not."""
        return self.has_active(player_id) or self.has_substituted(player_id)

    def to_dict(self) -> dict:
        return {
            'participant_id': self.participant_id,
            'name': self.name,
            'balance': self.balance,
            'active_players': [p.player_id for p in self.active_players],
            'substituted_players': [p.player_id for p in self.substituted_players]
        }


@dataclass
class Wager:
    """A signed amount tied to one event type."""

    event_type: EventType
    amount: float
    label: Optional[str] = None     # Name of a custom wager
    wager_id: str = field(default_factory=new_id)

    @property
    def display_name(self) -> str:
        if self.event_type == EventType.CUSTOM:
            return self.label or EventType.CUSTOM.display_name
        return self.event_type.display_name

    def to_dict(self) -> dict:
        return {
            'wager_id': self.wager_id,
            'event_type': self.event_type.value,
            'amount': self.amount,
            'label': self.label
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Wager':
        return cls(
            wager_id=data['wager_id'],
            event_type=EventType(data['event_type']),
            amount=float(data['amount']),
            label=data.get('label')
        )


@dataclass
class SettlementRecord:
    """Ownership partition and balance deltas captured when an event was settled."""

    amount: float
    with_player: List[str]
    without_player: List[str]
    deltas: Dict[str, float]

    def total(self) -> float:
        return sum(self.deltas.values())

    def to_dict(self) -> dict:
        return {
            'amount': self.amount,
            'with_player': list(self.with_player),
            'without_player': list(self.without_player),
            'deltas': dict(self.deltas)
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'SettlementRecord':
        return cls(
            amount=float(data['amount']),
            with_player=list(data['with_player']),
            without_player=list(data['without_player']),
            deltas={k: float(v) for k, v in data['deltas'].items()}
        )


@dataclass
class GameEvent:
    """A single entry on the session timeline."""

    player: Player
    event_type: EventType
    timestamp: datetime = field(default_factory=datetime.now)
    minute: Optional[int] = None
    custom_label: Optional[str] = None
    wagering: bool = True                           # False for substitution timeline entries
    settlement: Optional[SettlementRecord] = None   # Filled in once settled
    event_id: str = field(default_factory=new_id)

    @property
    def display_name(self) -> str:
        if self.event_type == EventType.CUSTOM:
            return self.custom_label or EventType.CUSTOM.display_name
        return self.event_type.display_name

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'event_id': self.event_id,
            'player_id': self.player.player_id,
            'event_type': self.event_type.value,
            'timestamp': self.timestamp.isoformat(),
            'minute': self.minute,
            'custom_label': self.custom_label,
            'wagering': self.wagering,
            'settlement': self.settlement.to_dict() if self.settlement else None
        }

    @classmethod
    def from_dict(cls, data: dict, players: Dict[str, Player]) -> 'GameEvent':
        """
        Create GameEvent from dictionary.

        Args:
            data: Serialized event
            players: player_id -> Player registry of the owning session

        Raises:
            KeyError: If the referenced player is not in the registry
        """
        settlement = data.get('settlement')
        return cls(
            event_id=data['event_id'],
            player=players[data['player_id']],
            event_type=EventType(data['event_type']),
            timestamp=datetime.fromisoformat(data['timestamp']),
            minute=data.get('minute'),
            custom_label=data.get('custom_label'),
            wagering=data.get('wagering', True),
            settlement=SettlementRecord.from_dict(settlement) if settlement else None
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class Substitution:
    """A player swap on the pitch."""

    player_off: Player
    player_on: Player
    team: Team
    timestamp: datetime = field(default_factory=datetime.now)
    minute: Optional[int] = None
    source: SubstitutionSource = SubstitutionSource.MANUAL
    substitution_id: str = field(default_factory=new_id)

    def to_dict(self) -> dict:
        return {
            'substitution_id': self.substitution_id,
            'player_off': self.player_off.player_id,
            'player_on': self.player_on.player_id,
            'team': self.team.to_dict(),
            'timestamp': self.timestamp.isoformat(),
            'minute': self.minute,
            'source': self.source.value
        }

    @classmethod
    def from_dict(cls, data: dict, players: Dict[str, Player]) -> 'Substitution':
        return cls(
            substitution_id=data['substitution_id'],
            player_off=players[data['player_off']],
            player_on=players[data['player_on']],
            team=Team.from_dict(data['team']),
            timestamp=datetime.fromisoformat(data['timestamp']),
            minute=data.get('minute'),
            source=SubstitutionSource(data.get('source', SubstitutionSource.MANUAL.value))
        )


@dataclass
class Session:
    """Complete state of one betting slip game."""

    participants: List[Participant] = field(default_factory=list)
    events: List[GameEvent] = field(default_factory=list)            # Append-only timeline
    wagers: List[Wager] = field(default_factory=list)
    selected_players: List[Player] = field(default_factory=list)     # Players in play
    available_players: List[Player] = field(default_factory=list)    # Every known player
    substitutions: List[Substitution] = field(default_factory=list)
    session_id: str = field(default_factory=new_id)

    # ----- Setup -----

    def add_participant(self, name: str) -> Participant:
        participant = Participant(participant_id=new_id(), name=name)
        self.participants.append(participant)
        return participant

    def add_players(self, players: List[Player]) -> None:
        """Add players to the available pool, skipping ids already present."""
        known = {p.player_id for p in self.available_players}
        for player in players:
            if player.player_id not in known:
                self.available_players.append(player)
                known.add(player.player_id)

    def select_players(self, players: List[Player]) -> None:
        """Put players in play. Unknown players are added to the available pool too."""
        self.add_players(players)
        selected = {p.player_id for p in self.selected_players}
        for player in players:
            if player.player_id not in selected:
                self.selected_players.append(self.get_player(player.player_id))
                selected.add(player.player_id)

    def participant(self, participant_id: str) -> Participant:
        """
        Look up a participant by id.

        Raises:
            ValueError: If no participant has that id
        """
        for participant in self.participants:
            if participant.participant_id == participant_id:
                return participant
        raise ValueError(f"Unknown participant_id: {participant_id}")

    def get_player(self, player_id: str) -> Optional[Player]:
        for player in self.available_players:
            if player.player_id == player_id:
                return player
        return None

    # ----- Wagers -----

    def add_wager(self, event_type: EventType, amount: float, label: Optional[str] = None) -> Optional[Wager]:
        """
        Add a wager for an event type.

        An unlabelled custom wager is skipped when named custom wagers already
        exist, since it could never be matched.
        """
        if event_type == EventType.CUSTOM and label is None and self.custom_wagers():
            logger.warning("Skipping duplicate custom wager - custom events already exist")
            return None

        wager = Wager(event_type=event_type, amount=float(amount), label=label)
        self.wagers.append(wager)
        logger.debug(f"Added wager: {wager.display_name} = {wager.amount}")
        return wager

    def add_custom_wager(self, label: str, amount: float) -> Wager:
        wager = Wager(event_type=EventType.CUSTOM, amount=float(amount), label=label)
        self.wagers.append(wager)
        return wager

    def remove_custom_wager(self, wager_id: str) -> bool:
        before = len(self.wagers)
        self.wagers = [
            w for w in self.wagers
            if not (w.wager_id == wager_id and w.event_type == EventType.CUSTOM)
        ]
        return len(self.wagers) < before

    def custom_wagers(self) -> List[Wager]:
        return [w for w in self.wagers if w.event_type == EventType.CUSTOM and w.label]

    def replace_standard_wagers(self, amounts: Dict[EventType, float]) -> None:
        """Rebuild all non-custom wagers from a mapping, keeping custom ones."""
        custom = [w for w in self.wagers if w.event_type == EventType.CUSTOM]
        standard = [
            Wager(event_type=EventType(event_type), amount=float(amount))
            for event_type, amount in amounts.items()
            if EventType(event_type) != EventType.CUSTOM
        ]
        self.wagers = standard + custom
        logger.info(f"Recreated wagers: {len(standard)} standard, {len(custom)} custom")

    def wager_for(self, event: GameEvent) -> Optional[Wager]:
        """Find the wager that settles an event, or None."""
        if event.event_type == EventType.CUSTOM:
            for wager in self.wagers:
                if wager.event_type == EventType.CUSTOM and wager.label == event.custom_label:
                    return wager
            for wager in self.wagers:
                if wager.event_type == EventType.CUSTOM and wager.label is None:
                    return wager
            return None

        for wager in self.wagers:
            if wager.event_type == event.event_type:
                return wager
        return None

    # ----- Integrity -----

    def total_balance(self) -> float:
        return sum(p.balance for p in self.participants)

    def validate(self) -> None:
        """
        Validate session consistency.

        Raises:
            ValueError: If state is inconsistent
        """
        active_owner: Dict[str, str] = {}
        for participant in self.participants:
            for player in participant.active_players:
                if player.player_id in active_owner:
                    raise ValueError(
                        f"Player {player.player_id} ({player.name}) is active for "
                        f"{active_owner[player.player_id]} and {participant.name}"
                    )
                active_owner[player.player_id] = participant.name

        selected_ids = [p.player_id for p in self.selected_players]
        if len(selected_ids) != len(set(selected_ids)):
            raise ValueError("selected_players contains duplicate players")

        missing = set(active_owner) - set(selected_ids)
        if missing:
            raise ValueError(f"Active players missing from selected_players: {sorted(missing)}")

    # ----- Serialization -----

    def to_dict(self) -> dict:
        """Plain snapshot for persistence."""
        return {
            'session_id': self.session_id,
            'participants': [p.to_dict() for p in self.participants],
            'events': [e.to_dict() for e in self.events],
            'wagers': [w.to_dict() for w in self.wagers],
            'selected_players': [p.player_id for p in self.selected_players],
            'available_players': [p.to_dict() for p in self.available_players],
            'substitutions': [s.to_dict() for s in self.substitutions]
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Session':
        """
        Restore a session from a snapshot.

        Players are shared by id, so every list referencing a player holds the
        same object.
        """
        players = {}
        for player_data in data.get('available_players', []):
            player = Player.from_dict(player_data)
            players[player.player_id] = player

        participants = []
        for p in data.get('participants', []):
            participants.append(Participant(
                participant_id=p['participant_id'],
                name=p['name'],
                balance=float(p.get('balance', 0.0)),
                active_players=[players[pid] for pid in p.get('active_players', [])],
                substituted_players=[players[pid] for pid in p.get('substituted_players', [])]
            ))

        return cls(
            session_id=data.get('session_id') or new_id(),
            participants=participants,
            events=[GameEvent.from_dict(e, players) for e in data.get('events', [])],
            wagers=[Wager.from_dict(w) for w in data.get('wagers', [])],
            selected_players=[players[pid] for pid in data.get('selected_players', [])],
            available_players=list(players.values()),
            substitutions=[Substitution.from_dict(s, players) for s in data.get('substitutions', [])]
        )

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'Session':
        return cls.from_dict(json.loads(json_str))
