"""
FastAPI server for betting slip sessions.

Exposes the GameStateManager mutation entry points and read-only queries
over HTTP. Expected failures (no wager, empty ownership group, nothing to
undo, rejected substitution) come back as 409 responses carrying the
failure kind; unknown sessions, players and participants are 404s.

A scoring event that cannot be settled is still kept on the timeline, so
a 409 from /events means no money moved, not that the event was dropped.
"""

import logging
import random
from typing import Dict, List, Optional, Union
from pydantic import BaseModel, Field
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .feed_schemas import ScoringNotification, SubstitutionNotification
from .game_event import EventType, Player, Session, Team
from .game_state_manager import GameStateManager
from .live_match_engine import resolve_scoring_notification
from .outcomes import NoOp, Settlement, SubstitutionResult

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Wagerbook Session API",
    description="Record match events, substitutions and settle participant balances",
    version="1.0.0"
)

# CORS middleware for web UI access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# session_id -> manager
managers: Dict[str, GameStateManager] = {}


# ===== Pydantic Models =====

class PlayerPayload(BaseModel):
    player_id: str
    name: str
    team_id: str
    team_name: str
    external_id: Optional[str] = None
    position: Optional[str] = None

    def to_player(self) -> Player:
        return Player(
            player_id=self.player_id,
            name=self.name,
            team=Team(team_id=self.team_id, name=self.team_name),
            external_id=self.external_id,
            position=self.position
        )


class CreateSessionRequest(BaseModel):
    participants: List[str] = Field(default_factory=list, description="Participant names")
    players: List[PlayerPayload] = Field(default_factory=list, description="Players put in play")
    wagers: Dict[EventType, float] = Field(default_factory=dict, description="Amount per event type")


class ParticipantRequest(BaseModel):
    name: str = Field(..., min_length=1)


class AddPlayersRequest(BaseModel):
    players: List[PlayerPayload]
    select: bool = Field(True, description="Also put the players in play")


class WagerRequest(BaseModel):
    event_type: EventType
    amount: float
    label: Optional[str] = None


class AssignRequest(BaseModel):
    seed: Optional[int] = None


class EventRequest(BaseModel):
    player_id: str
    event_type: EventType
    minute: Optional[int] = Field(None, ge=0, le=150)
    custom_label: Optional[str] = None


class SubstitutionRequest(BaseModel):
    player_off_id: str
    player_on_id: str
    minute: Optional[int] = Field(None, ge=0, le=150)


# ===== Helpers =====

def get_manager(session_id: str) -> GameStateManager:
    manager = managers.get(session_id)
    if manager is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return manager


def get_player(manager: GameStateManager, player_id: str) -> Player:
    player = manager.session.get_player(player_id)
    if player is None:
        raise HTTPException(status_code=404, detail=f"Unknown player: {player_id}")
    return player


def settlement_response(outcome: Union[Settlement, NoOp]) -> dict:
    if isinstance(outcome, NoOp):
        raise HTTPException(
            status_code=409,
            detail={'kind': outcome.kind.value, 'message': outcome.message}
        )
    return {
        'event': outcome.event.to_dict(),
        'deltas': outcome.deltas,
    }


def substitution_response(result: SubstitutionResult) -> dict:
    if not result.ok:
        raise HTTPException(
            status_code=409,
            detail={'kind': result.kind.value if result.kind else None, 'message': result.message}
        )
    return {
        'status': result.status.value,
        'message': result.message,
        'participant_id': result.participant_id,
        'warnings': result.warnings,
        'timeline_event': result.timeline_event.to_dict() if result.timeline_event else None,
    }


# ===== Session setup =====

@app.post("/sessions")
def create_session(request: CreateSessionRequest):
    session = Session()
    for name in request.participants:
        session.add_participant(name)
    session.select_players([p.to_player() for p in request.players])
    for event_type, amount in request.wagers.items():
        session.add_wager(event_type, amount)

    managers[session.session_id] = GameStateManager(session)
    logger.info(
        f"Created session {session.session_id}: {len(session.participants)} participants, "
        f"{len(session.selected_players)} players, {len(session.wagers)} wagers"
    )
    return session.to_dict()


@app.get("/sessions/{session_id}")
def get_session(session_id: str):
    manager = get_manager(session_id)
    snapshot = manager.session.to_dict()
    snapshot['can_undo'] = manager.can_undo
    return snapshot


@app.post("/sessions/{session_id}/participants")
def add_participant(session_id: str, request: ParticipantRequest):
    manager = get_manager(session_id)
    return manager.add_participant(request.name).to_dict()


@app.post("/sessions/{session_id}/players")
def add_players(session_id: str, request: AddPlayersRequest):
    manager = get_manager(session_id)
    manager.add_players([p.to_player() for p in request.players], select=request.select)
    return {
        'available_players': len(manager.session.available_players),
        'selected_players': len(manager.session.selected_players),
    }


@app.post("/sessions/{session_id}/wagers")
def add_wager(session_id: str, request: WagerRequest):
    manager = get_manager(session_id)
    wager = manager.add_wager(request.event_type, request.amount, request.label)
    if wager is None:
        raise HTTPException(status_code=409, detail="Duplicate custom wager")
    return wager.to_dict()


@app.post("/sessions/{session_id}/assign")
def assign_players(session_id: str, request: AssignRequest):
    manager = get_manager(session_id)
    rng = random.Random(request.seed) if request.seed is not None else None
    if not manager.assign_players_randomly(rng):
        raise HTTPException(status_code=409, detail="No participants or no selected players")
    return {p.participant_id: [pl.player_id for pl in p.active_players] for p in manager.session.participants}


# ===== Mutations =====

@app.post("/sessions/{session_id}/events")
def record_event(session_id: str, request: EventRequest):
    manager = get_manager(session_id)
    player = get_player(manager, request.player_id)
    outcome = manager.record_event(
        player, request.event_type, minute=request.minute, custom_label=request.custom_label
    )
    return settlement_response(outcome)


@app.post("/sessions/{session_id}/undo")
def undo_last_event(session_id: str):
    manager = get_manager(session_id)
    return settlement_response(manager.undo_last_event())


@app.post("/sessions/{session_id}/substitutions")
def substitute(session_id: str, request: SubstitutionRequest):
    manager = get_manager(session_id)
    player_off = get_player(manager, request.player_off_id)
    player_on = get_player(manager, request.player_on_id)
    return substitution_response(manager.substitute(player_off, player_on, request.minute))


@app.post("/sessions/{session_id}/feed/substitutions")
def feed_substitution(session_id: str, notification: SubstitutionNotification):
    manager = get_manager(session_id)
    result = manager.substitute_from_feed(
        notification.player_out_external_id,
        notification.player_in_external_id,
        notification.minute,
        notification.team_id
    )
    return substitution_response(result)


@app.post("/sessions/{session_id}/feed/events")
def feed_event(session_id: str, notification: ScoringNotification):
    manager = get_manager(session_id)
    resolved = resolve_scoring_notification(notification, manager.session)
    if isinstance(resolved, NoOp):
        return settlement_response(resolved)
    player, event_type = resolved
    return settlement_response(manager.record_event(player, event_type, minute=notification.minute))


@app.post("/sessions/{session_id}/recalculate")
def recalculate(session_id: str):
    manager = get_manager(session_id)
    report = manager.recalculate()
    return {
        'replayed': report.replayed,
        'skipped_timeline': report.skipped_timeline,
        'no_ops': [{'kind': n.kind.value, 'message': n.message} for n in report.no_ops],
        'balances': report.balances,
    }


# ===== Queries =====

@app.get("/sessions/{session_id}/balances")
def get_balances(session_id: str):
    return get_manager(session_id).balances()


@app.get("/sessions/{session_id}/participants/{participant_id}/active-players")
def get_active_players(session_id: str, participant_id: str):
    manager = get_manager(session_id)
    try:
        players = manager.active_players(participant_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return [p.to_dict() for p in players]


@app.get("/sessions/{session_id}/teams/{team_id}/remaining-substitutions")
def get_remaining_substitutions(session_id: str, team_id: str):
    manager = get_manager(session_id)
    return {'team_id': team_id, 'remaining': manager.remaining_substitutions(team_id)}


@app.get("/sessions/{session_id}/players/{player_id}/active")
def get_player_active(session_id: str, player_id: str):
    manager = get_manager(session_id)
    player = get_player(manager, player_id)
    return {'player_id': player_id, 'active': manager.is_player_active(player)}


@app.get("/sessions/{session_id}/players/{player_id}/stats")
def get_player_stats(session_id: str, player_id: str):
    manager = get_manager(session_id)
    player = get_player(manager, player_id)
    counts = manager.player_stats(player)
    return {'player_id': player_id, 'events': {t.value: n for t, n in counts.items()}}


@app.get("/health")
def health_check():
    return {'status': 'healthy', 'sessions': len(managers)}
