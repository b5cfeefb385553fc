"""
Balance settlement for scoring events.

The EventLedger is responsible for:
- Finding the wager that applies to an event
- Splitting participants into those who back the event's player and those who don't
- Moving money between the two groups so the total is always zero
- Reversing a settlement exactly for undo

Positive wagers (amount >= 0): everyone without the player pays `amount`,
and the pot is shared equally among the participants with the player.

Negative wagers (amount < 0): everyone with the player pays `|amount|` to
each participant without the player.
"""

import logging
from typing import Dict, List, Union

from .. import config
from .game_event import GameEvent, Participant, Session, SettlementRecord, Wager
from .outcomes import FailureKind, NoOp, Settlement
from .roster import Roster

logger = logging.getLogger(__name__)


class EventLedger:
    """Stateless settlement service. The session is passed explicitly."""

    def settle(self, event: GameEvent, session: Session) -> Union[Settlement, NoOp]:
        """
        Apply the balance mutation for an event.

        Does not append the event to the timeline; the caller owns that.

        Args:
            event: Event to settle
            session: Session whose balances are mutated

        Returns:
            Settlement with the captured partition and deltas, or NoOp
        """
        if not event.wagering:
            return NoOp(FailureKind.LOOKUP_FAILURE, f"{event.display_name} is a timeline-only entry")

        wager = session.wager_for(event)
        if wager is None:
            logger.warning(f"No wager found for event type: {event.display_name}")
            return NoOp(FailureKind.LOOKUP_FAILURE, f"No wager for {event.display_name}")

        with_player, without_player = Roster(session).partition(event.player)
        if not with_player or not without_player:
            logger.info(
                f"Cannot settle {event.display_name} for {event.player.name} - "
                f"missing participants in one group "
                f"(with={len(with_player)}, without={len(without_player)})"
            )
            return NoOp(
                FailureKind.EMPTY_GROUP,
                f"Need participants with and without {event.player.name}"
            )

        deltas = compute_deltas(
            wager.amount,
            [p.participant_id for p in with_player],
            [p.participant_id for p in without_player]
        )
        _apply(session.participants, deltas, sign=1.0)

        record = SettlementRecord(
            amount=wager.amount,
            with_player=[p.participant_id for p in with_player],
            without_player=[p.participant_id for p in without_player],
            deltas=deltas
        )

        logger.debug(
            f"Settled {event.display_name} for {event.player.name}: "
            f"{len(without_player)} without, {len(with_player)} with, amount {wager.amount}"
        )
        return Settlement(event=event, wager=wager, record=record)

    def reverse_settle(self, event: GameEvent, session: Session) -> Union[Settlement, NoOp]:
        """
        Undo the balance mutation of a previously settled event.

        When the event carries its SettlementRecord the recorded deltas are
        negated, which is exact even if ownership changed since. Otherwise the
        partition is recomputed against the current roster and the inverse of
        the wager's branch is applied.
        """
        if not event.wagering:
            return NoOp(FailureKind.LOOKUP_FAILURE, f"{event.display_name} is a timeline-only entry")

        wager = session.wager_for(event)

        if event.settlement is not None:
            record = event.settlement
            _apply(session.participants, record.deltas, sign=-1.0)
            logger.debug(f"Reversed recorded settlement of {event.display_name} for {event.player.name}")
            return Settlement(
                event=event,
                wager=wager or Wager(event_type=event.event_type, amount=record.amount, label=event.custom_label),
                record=record
            )

        if wager is None:
            logger.warning(f"No wager found to reverse event type: {event.display_name}")
            return NoOp(FailureKind.LOOKUP_FAILURE, f"No wager for {event.display_name}")

        with_player, without_player = Roster(session).partition(event.player)
        if not with_player or not without_player:
            return NoOp(
                FailureKind.EMPTY_GROUP,
                f"Need participants with and without {event.player.name}"
            )

        deltas = compute_deltas(
            wager.amount,
            [p.participant_id for p in with_player],
            [p.participant_id for p in without_player]
        )
        _apply(session.participants, deltas, sign=-1.0)

        record = SettlementRecord(
            amount=wager.amount,
            with_player=[p.participant_id for p in with_player],
            without_player=[p.participant_id for p in without_player],
            deltas=deltas
        )
        logger.debug(f"Reversed {event.display_name} for {event.player.name} against current roster")
        return Settlement(event=event, wager=wager, record=record)

    def settle_with_record(self, event: GameEvent, session: Session) -> Union[Settlement, NoOp]:
        """
        Re-apply an event using its recorded partition and the current wager amount.

        Used by replay so that roster changes after the event do not move money
        between different people than the original settlement did.
        """
        record = event.settlement
        if record is None:
            return self.settle(event, session)

        wager = session.wager_for(event)
        if wager is None:
            logger.warning(f"No wager found for event type: {event.display_name}")
            return NoOp(FailureKind.LOOKUP_FAILURE, f"No wager for {event.display_name}")

        known = {p.participant_id for p in session.participants}
        with_ids = [pid for pid in record.with_player if pid in known]
        without_ids = [pid for pid in record.without_player if pid in known]
        if not with_ids or not without_ids:
            return NoOp(
                FailureKind.EMPTY_GROUP,
                f"Recorded partition for {event.player.name} has an empty group"
            )

        deltas = compute_deltas(wager.amount, with_ids, without_ids)
        _apply(session.participants, deltas, sign=1.0)

        new_record = SettlementRecord(
            amount=wager.amount,
            with_player=with_ids,
            without_player=without_ids,
            deltas=deltas
        )
        return Settlement(event=event, wager=wager, record=new_record)


def compute_deltas(amount: float, with_ids: List[str], without_ids: List[str]) -> Dict[str, float]:
    """
    Balance change per participant for one settlement.

    Both branches are zero-sum by construction: total outflow equals total
    inflow for any group sizes.
    """
    with_count = len(with_ids)
    without_count = len(without_ids)
    deltas = {}

    if amount >= 0:
        per_winner = (without_count * amount) / with_count
        for pid in with_ids:
            deltas[pid] = per_winner
        for pid in without_ids:
            deltas[pid] = -amount
    else:
        pay = abs(amount)
        for pid in with_ids:
            deltas[pid] = -pay * without_count
        for pid in without_ids:
            deltas[pid] = pay * with_count

    total = sum(deltas.values())
    if abs(total) > config.BALANCE_EPSILON * max(1.0, abs(amount) * (with_count + without_count)):
        logger.error(f"Settlement not zero-sum: total {total}")

    return deltas


def _apply(participants: List[Participant], deltas: Dict[str, float], sign: float) -> None:
    for participant in participants:
        delta = deltas.get(participant.participant_id)
        if delta is not None:
            participant.balance += sign * delta
