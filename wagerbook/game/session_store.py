"""
Snapshot and event-log storage for sessions.

The core never persists anything itself; this store sits beside it as an
observer. Each session gets:
- A JSON checkpoint of the full snapshot, written atomically (temp file + rename)
- An append-only JSONL log of recorded events and undo markers since then

Roster and setup changes (substitutions, assignment, recalculation, new
participants, players or wagers) always write a fresh checkpoint, so the log
only ever carries scoring events on top of the latest checkpoint. Restoring
replays those events.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple

from .game_event import GameEvent, Session
from .game_state_manager import GameStateManager, StateChange
from .replay_engine import ReplayEngine

logger = logging.getLogger(__name__)


class SessionStore:
    """Checkpoint + append-only log persistence for sessions."""

    def __init__(self, base_dir: Path):
        """
        Initialize session store.

        Args:
            base_dir: Directory holding checkpoints and event logs
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        # session_id -> number of timeline entries already on disk
        self._logged_counts: Dict[str, int] = {}

    def checkpoint_path(self, session_id: str) -> Path:
        return self.base_dir / f"session_{session_id}.json"

    def log_path(self, session_id: str) -> Path:
        return self.base_dir / f"session_{session_id}_events.jsonl"

    # ----- Checkpoints -----

    def save_checkpoint(self, session: Session) -> Path:
        """
        Save the full session snapshot and start a fresh event log.

        Returns:
            Path of the checkpoint file
        """
        filepath = self.checkpoint_path(session.session_id)
        checkpoint_data = {
            'session': session.to_dict(),
            'event_count': len(session.events),
            'checkpoint_time': datetime.now().isoformat()
        }

        temp_path = filepath.with_suffix('.tmp')
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(checkpoint_data, f, indent=2)
        temp_path.replace(filepath)

        log_file = self.log_path(session.session_id)
        if log_file.exists():
            log_file.unlink()
        self._logged_counts[session.session_id] = len(session.events)

        logger.info(
            f"Saved checkpoint: {len(session.events)} events, "
            f"{len(session.participants)} participants → {filepath}"
        )
        return filepath

    def load_checkpoint(self, session_id: str) -> Session:
        """
        Load a session from its checkpoint.

        Raises:
            FileNotFoundError: If checkpoint doesn't exist
        """
        filepath = self.checkpoint_path(session_id)
        if not filepath.exists():
            raise FileNotFoundError(f"Checkpoint not found: {filepath}")

        with open(filepath, 'r', encoding='utf-8') as f:
            checkpoint_data = json.load(f)

        session = Session.from_dict(checkpoint_data['session'])
        logger.info(f"Loaded checkpoint: {len(session.events)} events ← {filepath}")
        return session

    # ----- Event log -----

    def append_event(self, session_id: str, event: GameEvent) -> None:
        """Append a recorded event to the log (JSONL)."""
        self._append_line(session_id, {'event': event.to_dict()})
        logger.debug(f"Appended event: {event.display_name} for {event.player.name}")

    def append_undo(self, session_id: str, event_id: str) -> None:
        """Mark a logged event as undone."""
        self._append_line(session_id, {'undo': event_id})

    def _append_line(self, session_id: str, payload: dict) -> None:
        with open(self.log_path(session_id), 'a', encoding='utf-8') as f:
            f.write(json.dumps(payload) + '\n')

    def load_logged_events(self, session: Session) -> List[GameEvent]:
        """
        Load events logged since the last checkpoint, minus undone ones.

        Lines that fail to parse, or that reference unknown players, are
        logged and skipped.
        """
        events, _ = self._read_log(session)
        return events

    def _read_log(self, session: Session) -> Tuple[List[GameEvent], Set[str]]:
        filepath = self.log_path(session.session_id)
        if not filepath.exists():
            return [], set()

        players = {p.player_id: p for p in session.available_players}
        events: List[GameEvent] = []
        undone: Set[str] = set()

        with open(filepath, 'r', encoding='utf-8') as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue

                try:
                    payload = json.loads(line)
                    if 'undo' in payload:
                        undone.add(payload['undo'])
                        events = [e for e in events if e.event_id != payload['undo']]
                    else:
                        events.append(GameEvent.from_dict(payload['event'], players))
                except (json.JSONDecodeError, KeyError, ValueError) as e:
                    logger.error(
                        f"Failed to parse event at line {line_num}: {e}\n"
                        f"Line content: {line}"
                    )

        logger.info(f"Loaded {len(events)} logged events from {filepath}")
        return events, undone

    # ----- Recovery -----

    def restore(self, session_id: str) -> Session:
        """
        Rebuild a session from its checkpoint plus the event log.

        Logged events not already in the checkpoint are appended in order
        and balances are recalculated.
        """
        session = self.load_checkpoint(session_id)
        logged, undone = self._read_log(session)

        # An undo can target the last event of the checkpoint itself
        undone_in_checkpoint = [e for e in session.events if e.event_id in undone]
        session.events = [e for e in session.events if e.event_id not in undone]

        known = {e.event_id for e in session.events}
        missing = [e for e in logged if e.event_id not in known]

        if missing or undone_in_checkpoint:
            session.events.extend(missing)
            ReplayEngine().recalculate(session)
            logger.info(
                f"Restored session {session_id}: {len(missing)} events from log, "
                f"{len(undone_in_checkpoint)} undone"
            )

        return session

    def attach(self, manager: GameStateManager) -> Callable[[], None]:
        """
        Keep this store in step with a manager's session.

        Events that were kept unsettled raise no notification, so each
        recorded event first logs any timeline entries the log has not
        seen yet.

        Returns:
            Function that detaches the store
        """
        session_id = manager.session.session_id
        self._logged_counts.setdefault(session_id, len(manager.session.events))

        def on_change(change: StateChange) -> None:
            session = change.session
            if change.kind == 'event_recorded':
                start = min(self._logged_counts.get(session_id, 0), len(session.events))
                for event in session.events[start:]:
                    self.append_event(session_id, event)
                self._logged_counts[session_id] = len(session.events)
            elif change.kind == 'event_undone':
                self.append_undo(session_id, change.detail.event.event_id)
                self._logged_counts[session_id] = len(session.events)
            else:
                self.save_checkpoint(session)

        return manager.subscribe(on_change)

    def list_sessions(self) -> List[str]:
        return sorted(
            p.stem[len('session_'):]
            for p in self.base_dir.glob('session_*.json')
        )

    def clear(self, session_id: Optional[str] = None) -> None:
        """
        Delete stored files for one session, or all sessions.

        WARNING: This deletes checkpoints and logs. Use with caution.
        """
        ids = [session_id] if session_id else self.list_sessions()
        for sid in ids:
            for path in (self.checkpoint_path(sid), self.log_path(sid)):
                if path.exists():
                    path.unlink()
            self._logged_counts.pop(sid, None)
            logger.warning(f"Cleared stored session: {sid}")
