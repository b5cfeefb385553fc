"""
Single pipeline for manual and live-feed substitutions.

Every substitution, whatever its source, goes through `substitute()`:
1. Validate the swap (advisory; cross-team swaps only warn)
2. Find the participant whose active set holds the outgoing player
3. Move the outgoing player to that participant's substituted set and
   the incoming player to its active set
4. Keep the session's selected pool in step
5. Record the Substitution and a timeline-only GameEvent

Substitution limits are reported through `remaining()` and never enforced
here.
"""

import logging
from datetime import datetime
from typing import List, Optional

from .. import config
from .game_event import (
    EventType,
    GameEvent,
    Player,
    PlayerStatus,
    Session,
    Substitution,
    SubstitutionSource,
)
from .outcomes import FailureKind, SubstitutionResult, SubstitutionStatus
from .roster import Roster

logger = logging.getLogger(__name__)


def substitution_label(player_off: Player, player_on: Player) -> str:
    return config.SUBSTITUTION_LABEL_FORMAT.format(off=player_off.name, on=player_on.name)


class SubstitutionCoordinator:
    """Stateless substitution service. The session is passed explicitly."""

    def substitute(
        self,
        player_off: Player,
        player_on: Player,
        minute: Optional[int],
        source: SubstitutionSource,
        session: Session
    ) -> SubstitutionResult:
        """
        Swap one player for another on whoever backs the outgoing player.

        Args:
            player_off: Player leaving the pitch
            player_on: Player coming on
            minute: Match minute, if known
            source: Manual entry or live feed
            session: Session to mutate

        Returns:
            SubstitutionResult (APPLIED, TIMELINE_ONLY or REJECTED)
        """
        logger.debug(f"Processing substitution: {player_off.name} → {player_on.name} ({source.value})")
        roster = Roster(session)

        if player_off.player_id == player_on.player_id:
            return SubstitutionResult.rejected(
                FailureKind.INVARIANT_VIOLATION,
                f"Cannot substitute {player_off.name} for themselves"
            )

        if not roster.is_active(player_off):
            logger.warning(f"Player {player_off.name} is already substituted off")
            return SubstitutionResult.rejected(
                FailureKind.INVARIANT_VIOLATION,
                f"{player_off.name} is already substituted off"
            )

        if not roster.is_active(player_on):
            logger.warning(f"Player {player_on.name} was substituted off and cannot return")
            return SubstitutionResult.rejected(
                FailureKind.INVARIANT_VIOLATION,
                f"{player_on.name} has already been substituted off"
            )

        if roster.is_active_elsewhere(player_on):
            logger.warning(f"Player {player_on.name} is already in the game")
            return SubstitutionResult.rejected(
                FailureKind.INVARIANT_VIOLATION,
                f"{player_on.name} is already active for a participant"
            )

        warnings = []
        if player_off.team.team_id != player_on.team.team_id:
            warning = (
                f"Players are from different teams: {player_off.name} ({player_off.team.name}), "
                f"{player_on.name} ({player_on.team.name})"
            )
            logger.warning(warning)
            warnings.append(warning)

        owner = roster.active_owner_of(player_off)
        if owner is None:
            logger.warning(f"Player {player_off.name} not found in any participant's roster")
            result = self._timeline_only(
                player_off, player_on, minute, session, FailureKind.LOOKUP_FAILURE
            )
            result.warnings.extend(warnings)
            return result

        # Work with the session's own instances so every list sees the status change
        off = next(p for p in owner.active_players if p.player_id == player_off.player_id)
        session.add_players([player_on])
        on = session.get_player(player_on.player_id)

        owner.active_players = [p for p in owner.active_players if p.player_id != off.player_id]
        off.status = PlayerStatus.SUBSTITUTED_OFF
        pooled_off = session.get_player(off.player_id)
        if pooled_off is not None:
            pooled_off.status = PlayerStatus.SUBSTITUTED_OFF
        owner.substituted_players.append(off)

        on.status = PlayerStatus.ACTIVE
        owner.active_players.append(on)

        session.selected_players = [p for p in session.selected_players if p.player_id != off.player_id]
        if not any(p.player_id == on.player_id for p in session.selected_players):
            session.selected_players.append(on)

        substitution = Substitution(
            player_off=off,
            player_on=on,
            team=off.team,
            minute=minute,
            source=source
        )
        session.substitutions.append(substitution)

        timeline_event = _timeline_event(off, on, minute, substitution.timestamp)
        session.events.append(timeline_event)

        logger.info(
            f"Substitution applied for {owner.name}: {timeline_event.custom_label}"
            f"{f' ({minute})' if minute is not None else ''} | "
            f"{len(owner.active_players)} active, {len(owner.substituted_players)} substituted"
        )

        return SubstitutionResult(
            status=SubstitutionStatus.APPLIED,
            message=timeline_event.custom_label,
            substitution=substitution,
            timeline_event=timeline_event,
            participant_id=owner.participant_id,
            warnings=warnings
        )

    def substitute_from_feed(
        self,
        player_out_external_id: str,
        player_in_external_id: str,
        minute: Optional[int],
        team_id: str,
        session: Session
    ) -> SubstitutionResult:
        """
        Process a substitution reported by the live feed.

        The outgoing player is resolved against the players in play, the
        incoming one against every known player. If either lookup fails the
        roster is left untouched and, when both ids are at least known, only
        a timeline entry is written.
        """
        roster = Roster(session)
        player_out = roster.find_in_selected(player_out_external_id)
        player_in = roster.find_in_available(player_in_external_id)

        if player_out is not None and player_in is not None:
            logger.debug(f"Found both players: {player_out.name} OUT, {player_in.name} IN")
            return self.substitute(player_out, player_in, minute, SubstitutionSource.LIVE_FEED, session)

        logger.warning(
            f"Live substitution not fully resolved (team {team_id}): "
            f"out={player_out_external_id} {'found' if player_out else 'missing'}, "
            f"in={player_in_external_id} {'found' if player_in else 'missing'}"
        )

        known_out = roster.find_in_available(player_out_external_id)
        known_in = player_in or roster.find_in_available(player_in_external_id)
        if known_out is None or known_in is None:
            return SubstitutionResult.rejected(
                FailureKind.EXTERNAL_RESOLUTION,
                f"Unknown feed players {player_out_external_id} → {player_in_external_id}"
            )

        return self._timeline_only(known_out, known_in, minute, session, FailureKind.EXTERNAL_RESOLUTION)

    def _timeline_only(
        self,
        player_off: Player,
        player_on: Player,
        minute: Optional[int],
        session: Session,
        kind: FailureKind
    ) -> SubstitutionResult:
        """Write the timeline entry without touching any roster, if both players are known."""
        off = session.get_player(player_off.player_id)
        on = session.get_player(player_on.player_id)
        if off is None or on is None:
            return SubstitutionResult.rejected(
                kind,
                f"Cannot record {player_off.name} → {player_on.name}: players not in the available pool"
            )

        timeline_event = _timeline_event(off, on, minute, datetime.now())
        session.events.append(timeline_event)
        logger.info(f"Created timeline event for substitution (players not in active game): {timeline_event.custom_label}")

        return SubstitutionResult(
            status=SubstitutionStatus.TIMELINE_ONLY,
            message=timeline_event.custom_label,
            kind=kind,
            timeline_event=timeline_event
        )

    # ----- Policy queries -----

    def substitution_count(self, team_id: str, session: Session) -> int:
        return sum(1 for s in session.substitutions if s.team.team_id == team_id)

    def remaining(self, team_id: str, session: Session) -> int:
        """Substitutions a team has left under SUBSTITUTION_LIMIT."""
        return max(0, config.SUBSTITUTION_LIMIT - self.substitution_count(team_id, session))

    def can_substitute(self, team_id: str, session: Session) -> bool:
        return self.remaining(team_id, session) > 0

    def timeline(self, session: Session) -> List[GameEvent]:
        """Substitution entries on the timeline, in append order."""
        return [e for e in session.events if not e.wagering]


def _timeline_event(player_off: Player, player_on: Player, minute: Optional[int], timestamp: datetime) -> GameEvent:
    return GameEvent(
        player=player_off,
        event_type=EventType.CUSTOM,
        timestamp=timestamp,
        minute=minute,
        custom_label=substitution_label(player_off, player_on),
        wagering=False
    )
