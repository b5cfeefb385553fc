"""
Read-only ownership queries over a session.

The Roster answers "who backs which player" questions. Ownership covers both
a participant's active players and the players they had substituted off, so
a player keeps earning (or costing) for the same participant after leaving
the pitch.
"""

import logging
import random
from typing import Dict, List, Optional, Tuple

from fuzzywuzzy import fuzz, process

from .. import config
from .game_event import EventType, Participant, Player, Session

logger = logging.getLogger(__name__)


class Roster:
    """Pure queries over a session's participants and player pools."""

    def __init__(self, session: Session):
        self.session = session

    def owner_of(self, player: Player) -> Optional[str]:
        """
        Find the participant a player is attributed to.

        Returns:
            participant_id, or None if nobody backs the player
        """
        for participant in self.session.participants:
            if participant.owns(player.player_id):
                return participant.participant_id
        return None

    def active_owner_of(self, player: Player) -> Optional[Participant]:
        """Participant whose active set currently holds the player."""
        for participant in self.session.participants:
            if participant.has_active(player.player_id):
                return participant
        return None

    def is_active(self, player: Player) -> bool:
        """True unless the player has been substituted off."""
        pooled = self.session.get_player(player.player_id) or player
        if pooled.is_substituted_off:
            return False
        return not any(
            p.has_substituted(player.player_id) for p in self.session.participants
        )

    def is_active_elsewhere(self, player: Player) -> bool:
        return self.active_owner_of(player) is not None

    def active_players(self, participant_id: str) -> List[Player]:
        return list(self.session.participant(participant_id).active_players)

    def substituted_players(self, participant_id: str) -> List[Player]:
        return list(self.session.participant(participant_id).substituted_players)

    def partition(self, player: Player) -> Tuple[List[Participant], List[Participant]]:
        """
        Split participants by ownership of a player.

        Returns:
            (with_player, without_player), both in session order
        """
        with_player = []
        without_player = []
        for participant in self.session.participants:
            if participant.owns(player.player_id):
                with_player.append(participant)
            else:
                without_player.append(participant)
        return with_player, without_player

    def event_counts(self, player: Player) -> Dict[EventType, int]:
        """
        Count the wagering events on the timeline for one player.

        Counts come from the timeline itself, so an undone event is no
        longer counted. Unsettled events still count; they happened even
        if nothing was wagered on them.

        Returns:
            EventType -> count, only for types that occurred
        """
        counts: Dict[EventType, int] = {}
        for event in self.session.events:
            if event.wagering and event.player.player_id == player.player_id:
                counts[event.event_type] = counts.get(event.event_type, 0) + 1
        return counts

    # ----- Player lookup -----

    def find_in_selected(self, external_id: str) -> Optional[Player]:
        """Resolve a live feed id against the players currently in play."""
        return _first_with_external_id(self.session.selected_players, external_id)

    def find_in_available(self, external_id: str) -> Optional[Player]:
        """Resolve a live feed id against every known player."""
        player = _first_with_external_id(self.session.available_players, external_id)
        if player is None:
            logger.debug(f"No player with external id {external_id} in available players")
        return player

    def find_by_name(self, name: str) -> Optional[Player]:
        """
        Match a feed player name against the available pool.

        Tries a case-insensitive exact match first, then a fuzzy match that
        must score at least FUZZY_MATCH_THRESHOLD.
        """
        if not name:
            return None

        lowered = name.strip().lower()
        for player in self.session.available_players:
            if player.name.lower() == lowered:
                return player

        names = [p.name for p in self.session.available_players]
        if not names:
            return None

        match_result = process.extractOne(name, names, scorer=fuzz.token_sort_ratio)
        if match_result is None:
            return None

        matched_name, score = match_result[0], match_result[1]
        if score < config.FUZZY_MATCH_THRESHOLD:
            logger.warning(f"Low confidence match for '{name}' → '{matched_name}' ({score}%)")
            return None

        logger.debug(f"Matched: '{name}' → '{matched_name}' ({score}%)")
        return next(p for p in self.session.available_players if p.name == matched_name)


def _first_with_external_id(players: List[Player], external_id: str) -> Optional[Player]:
    if not external_id:
        return None
    for player in players:
        if player.external_id == external_id:
            return player
    return None


def calculate_player_distribution(total_players: int, total_participants: int) -> Tuple[int, int]:
    """
    Work out how many players each participant receives.

    Returns:
        (players_per_participant, participants_getting_one_extra)
    """
    return total_players // total_participants, total_players % total_participants


def assign_players_randomly(session: Session, rng: Optional[random.Random] = None) -> bool:
    """
    Deal the selected players out to participants.

    Existing active sets are cleared. The first `len % n` participants
    receive one extra player.

    Returns:
        False if there are no participants or no selected players
    """
    if not session.participants or not session.selected_players:
        logger.warning("Cannot assign players - no participants or no selected players")
        return False

    rng = rng or random.Random()
    players = list(session.selected_players)
    rng.shuffle(players)

    per_participant, remaining = calculate_player_distribution(
        len(players), len(session.participants)
    )

    player_index = 0
    for i, participant in enumerate(session.participants):
        count = per_participant + 1 if i < remaining else per_participant
        participant.active_players = players[player_index:player_index + count]
        player_index += count

        names = ", ".join(p.name for p in participant.active_players)
        logger.debug(f"{participant.name}: {len(participant.active_players)} players - {names}")

    logger.info(
        f"Assigned {len(players)} players to {len(session.participants)} participants "
        f"({per_participant} each, {remaining} extra)"
    )
    return True
