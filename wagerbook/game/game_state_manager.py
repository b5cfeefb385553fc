"""
Manage a session and apply game events.

The GameStateManager is the single entry point for mutating a session:
- Recording scoring events and settling them through the EventLedger
- Undoing the most recent settled event (depth 1, no redo)
- Routing manual and live-feed substitutions through the SubstitutionCoordinator
- Recalculating balances through the ReplayEngine
- Setup calls (participants, players, wagers) so they share the same lock
- Notifying observers once per successful mutation

All mutations run under one lock so a session only ever has one writer.
"""

import logging
import random
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union

from .event_ledger import EventLedger
from .game_event import EventType, GameEvent, Participant, Player, Session, SubstitutionSource, Wager
from .outcomes import FailureKind, NoOp, ReplayReport, Settlement, SubstitutionResult
from .replay_engine import ReplayEngine
from .roster import Roster, assign_players_randomly
from .substitution_coordinator import SubstitutionCoordinator

logger = logging.getLogger(__name__)


@dataclass
class StateChange:
    """Payload delivered to observers after a successful mutation."""

    kind: str           # event_recorded / event_undone / substitution / recalculated /
                        # players_assigned / session_updated
    session: Session
    detail: object = None


Observer = Callable[[StateChange], None]


class GameStateManager:
    """Serialized mutation entry points and read-only queries for one session."""

    def __init__(
        self,
        session: Session,
        ledger: Optional[EventLedger] = None,
        coordinator: Optional[SubstitutionCoordinator] = None,
        replay_engine: Optional[ReplayEngine] = None
    ):
        """
        Initialize state manager with a session.

        Args:
            session: Starting session (fresh or restored from a snapshot)
        """
        self.session = session
        self.ledger = ledger or EventLedger()
        self.coordinator = coordinator or SubstitutionCoordinator()
        self.replay_engine = replay_engine or ReplayEngine(self.ledger)

        self._lock = threading.RLock()
        self._last_event: Optional[GameEvent] = None
        self._observers: List[Observer] = []

    # ----- Observers -----

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """
        Register a callback for state changes.

        Returns:
            Function that removes the callback again
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self, kind: str, detail: object = None) -> None:
        change = StateChange(kind=kind, session=self.session, detail=detail)
        for observer in list(self._observers):
            try:
                observer(change)
            except Exception as e:
                logger.error(f"Observer failed on {kind}: {e}", exc_info=True)

    # ----- Mutations -----

    @property
    def can_undo(self) -> bool:
        return self._last_event is not None

    def record_event(
        self,
        player: Player,
        event_type: EventType,
        minute: Optional[int] = None,
        custom_label: Optional[str] = None
    ) -> Union[Settlement, NoOp]:
        """
        Record a scoring event and settle it.

        The event is always appended to the timeline. When it cannot be
        settled (no wager yet, or nobody owns the player) it stays on the
        timeline with no settlement, balances are untouched, observers are
        not notified and the returned NoOp says why. A later recalculate
        settles it once a wager or owner exists.

        An unsettled event is never an undo target, and appending it closes
        the undo window of the event before it.
        """
        event = GameEvent(
            player=player,
            event_type=EventType(event_type),
            minute=minute,
            custom_label=custom_label
        )
        minute_str = f"{minute}'" if minute is not None else "unknown time"

        with self._lock:
            outcome = self.ledger.settle(event, self.session)
            self.session.events.append(event)

            if isinstance(outcome, NoOp):
                event.settlement = None
                self._last_event = None
                logger.warning(
                    f"Event kept unsettled: {event.display_name} for {player.name} "
                    f"at {minute_str} ({outcome.message})"
                )
                return outcome

            event.settlement = outcome.record
            self._last_event = event
            logger.info(f"Event recorded: {event.display_name} for {player.name} at {minute_str}")

        self._notify('event_recorded', outcome)
        return outcome

    def record_custom_event(self, player: Player, label: str, minute: Optional[int] = None) -> Union[Settlement, NoOp]:
        """Record an event against a named custom wager."""
        return self.record_event(player, EventType.CUSTOM, minute=minute, custom_label=label)

    def undo_last_event(self) -> Union[Settlement, NoOp]:
        """
        Reverse and remove the most recent settled event.

        Only valid immediately after that event was recorded: any later
        append (such as a substitution) closes the undo window.
        """
        with self._lock:
            event = self._last_event
            if event is None or not self.session.events or self.session.events[-1] is not event:
                logger.warning("No events to undo")
                return NoOp(FailureKind.INVARIANT_VIOLATION, "Nothing to undo")

            outcome = self.ledger.reverse_settle(event, self.session)
            if isinstance(outcome, NoOp):
                logger.warning(f"Undo failed: {outcome.message}")
                return outcome

            self.session.events.pop()
            self._last_event = None
            logger.info(f"Undid event: {event.display_name} for {event.player.name}")

        self._notify('event_undone', outcome)
        return outcome

    def substitute(self, player_off: Player, player_on: Player, minute: Optional[int] = None) -> SubstitutionResult:
        """Apply a manually entered substitution."""
        return self._run_substitution(
            lambda: self.coordinator.substitute(
                player_off, player_on, minute, SubstitutionSource.MANUAL, self.session
            )
        )

    def substitute_from_feed(
        self,
        player_out_external_id: str,
        player_in_external_id: str,
        minute: Optional[int],
        team_id: str
    ) -> SubstitutionResult:
        """Apply a substitution reported by the live feed."""
        return self._run_substitution(
            lambda: self.coordinator.substitute_from_feed(
                player_out_external_id, player_in_external_id, minute, team_id, self.session
            )
        )

    def _run_substitution(self, apply: Callable[[], SubstitutionResult]) -> SubstitutionResult:
        with self._lock:
            try:
                self.session.validate()
            except ValueError as e:
                logger.error(f"Substitution refused, session is inconsistent: {e}")
                return SubstitutionResult.rejected(FailureKind.INVARIANT_VIOLATION, str(e))

            result = apply()
            if not result.ok:
                logger.warning(f"Substitution rejected: {result.message}")
                return result

            self._last_event = None

        self._notify('substitution', result)
        return result

    def recalculate(self) -> ReplayReport:
        """Rebuild every balance from the event history."""
        with self._lock:
            report = self.replay_engine.recalculate(self.session)

        self._notify('recalculated', report)
        return report

    # ----- Setup -----

    def add_participant(self, name: str) -> Participant:
        with self._lock:
            participant = self.session.add_participant(name)

        self._notify('session_updated', participant)
        return participant

    def add_players(self, players: List[Player], select: bool = True) -> None:
        """
        Add players to the pool.

        Args:
            players: Players to add
            select: Also put them in play (available for assignment)
        """
        with self._lock:
            if select:
                self.session.select_players(players)
            else:
                self.session.add_players(players)

        self._notify('session_updated', players)

    def add_wager(self, event_type: EventType, amount: float, label: Optional[str] = None) -> Optional[Wager]:
        """Add a wager. Events already on the timeline only pick it up on recalculate."""
        with self._lock:
            wager = self.session.add_wager(EventType(event_type), amount, label)
            if wager is None:
                return None

        self._notify('session_updated', wager)
        return wager

    def assign_players_randomly(self, rng: Optional[random.Random] = None) -> bool:
        """Deal selected players to participants. Setup only; clears undo."""
        with self._lock:
            if not assign_players_randomly(self.session, rng):
                return False
            self._last_event = None
            self.session.validate()

        self._notify('players_assigned')
        return True

    # ----- Queries -----

    def active_players(self, participant_id: str) -> List[Player]:
        return Roster(self.session).active_players(participant_id)

    def remaining_substitutions(self, team_id: str) -> int:
        return self.coordinator.remaining(team_id, self.session)

    def is_player_active(self, player: Player) -> bool:
        return Roster(self.session).is_active(player)

    def player_stats(self, player: Player) -> Dict[EventType, int]:
        return Roster(self.session).event_counts(player)

    def balances(self) -> Dict[str, float]:
        return {p.participant_id: p.balance for p in self.session.participants}

    @classmethod
    def from_snapshot(cls, data: dict) -> 'GameStateManager':
        """Restore a manager from a plain snapshot. Undo is not available after a restore."""
        session = Session.from_dict(data)
        logger.info(
            f"Restored session {session.session_id}: {len(session.participants)} participants, "
            f"{len(session.events)} events"
        )
        return cls(session)
