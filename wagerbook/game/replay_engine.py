"""
Rebuild balances from the event history.

Replay is the recovery path when incremental balances may have drifted:
every balance goes back to the starting value and each wagering event is
settled again in append order. Substitution timeline entries are skipped.
"""

import logging
from typing import Optional

from .. import config
from .event_ledger import EventLedger
from .game_event import Session
from .outcomes import NoOp, ReplayReport

logger = logging.getLogger(__name__)


class ReplayEngine:
    """Recalculates session balances by replaying events through the ledger."""

    def __init__(self, ledger: Optional[EventLedger] = None, use_recorded_partitions: bool = True):
        """
        Args:
            ledger: Ledger used to settle each event
            use_recorded_partitions: Settle events against the ownership
                partition captured when they were first settled. When False,
                or for events without a record, the current roster decides.
        """
        self.ledger = ledger or EventLedger()
        self.use_recorded_partitions = use_recorded_partitions

    def recalculate(self, session: Session) -> ReplayReport:
        """
        Reset balances and replay every wagering event in append order.

        Each replayed event's settlement record is refreshed with the result.

        Returns:
            ReplayReport with counts, any no-ops and final balances
        """
        for participant in session.participants:
            participant.balance = config.STARTING_BALANCE

        report = ReplayReport()
        logger.info(f"Recalculating balances from {len(session.events)} events...")

        for event in session.events:
            if not event.wagering:
                report.skipped_timeline += 1
                continue

            if self.use_recorded_partitions:
                outcome = self.ledger.settle_with_record(event, session)
            else:
                outcome = self.ledger.settle(event, session)

            if isinstance(outcome, NoOp):
                report.no_ops.append(outcome)
                event.settlement = None
                continue

            event.settlement = outcome.record
            report.replayed += 1

        report.balances = {p.participant_id: p.balance for p in session.participants}

        logger.info(
            f"Balance recalculation complete: {report.replayed} settled, "
            f"{report.skipped_timeline} timeline entries skipped, {len(report.no_ops)} no-ops"
        )
        return report
