"""
Typed outcomes for ledger and roster operations.

Expected failures (missing wager, empty ownership group, unresolvable feed
ids, nothing to undo) are returned as values instead of being raised, so
callers can assert on the outcome directly.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .game_event import GameEvent, SettlementRecord, Substitution, Wager


class FailureKind(str, Enum):
    LOOKUP_FAILURE = 'lookup_failure'                 # Player or wager not resolvable
    EMPTY_GROUP = 'empty_group'                       # One ownership partition is empty
    EXTERNAL_RESOLUTION = 'external_resolution'       # Live feed id could not be mapped
    INVARIANT_VIOLATION = 'invariant_violation'       # e.g. undo with nothing to undo


@dataclass
class NoOp:
    """An operation that changed nothing."""

    kind: FailureKind
    message: str

    ok = False


@dataclass
class Settlement:
    """Balance mutation applied (or reversed) for one event."""

    event: GameEvent
    wager: Wager
    record: SettlementRecord

    ok = True

    @property
    def deltas(self) -> Dict[str, float]:
        return self.record.deltas


class SubstitutionStatus(str, Enum):
    APPLIED = 'applied'               # Roster mutated and timeline entry appended
    TIMELINE_ONLY = 'timeline_only'   # Owner unknown, only the timeline entry appended
    REJECTED = 'rejected'             # Nothing changed


@dataclass
class SubstitutionResult:
    status: SubstitutionStatus
    message: str = ''
    kind: Optional[FailureKind] = None
    substitution: Optional[Substitution] = None
    timeline_event: Optional[GameEvent] = None
    participant_id: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status != SubstitutionStatus.REJECTED

    @classmethod
    def rejected(cls, kind: FailureKind, message: str) -> 'SubstitutionResult':
        return cls(status=SubstitutionStatus.REJECTED, message=message, kind=kind)


@dataclass
class ReplayReport:
    """Summary of a full balance recalculation."""

    replayed: int = 0
    skipped_timeline: int = 0
    no_ops: List[NoOp] = field(default_factory=list)
    balances: Dict[str, float] = field(default_factory=dict)

    ok = True
