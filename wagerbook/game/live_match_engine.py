"""
Orchestrator for live match mode.

The LiveMatchEngine connects the live feed to a session:
- Polls the feed for each followed match
- Skips feed events it has already processed
- Resolves feed identifiers to local players before any mutation
- Dispatches substitutions and scoring events to the GameStateManager
- Checkpoints the session after each poll that changed something
"""

import logging
import signal
import time
from typing import Callable, List, Optional, Set, Tuple, Union

from pydantic import ValidationError

from .. import config
from .feed_client import LiveFeedClient
from .feed_schemas import (
    Notification,
    RawFeedEvent,
    ScoringNotification,
    SubstitutionNotification,
    to_notification,
)
from .game_event import EventType, Player, Session
from .game_state_manager import GameStateManager
from .outcomes import FailureKind, NoOp, Settlement, SubstitutionResult
from .roster import Roster
from .session_store import SessionStore

logger = logging.getLogger(__name__)

Outcome = Union[Settlement, NoOp, SubstitutionResult]


def map_feed_event_type(feed_type: str) -> Optional[EventType]:
    """Translate a feed type string to an EventType, or None if unsupported."""
    value = config.FEED_EVENT_TYPE_MAP.get((feed_type or '').lower())
    return EventType(value) if value else None


def resolve_scoring_notification(
    notification: ScoringNotification,
    session: Session
) -> Union[Tuple[Player, EventType], NoOp]:
    """
    Resolve a scoring notification to a local player and event type.

    The player is looked up by feed id first, then by name.
    """
    event_type = map_feed_event_type(notification.event_type)
    if event_type is None:
        logger.warning(f"Unknown event type: {notification.event_type}")
        return NoOp(FailureKind.EXTERNAL_RESOLUTION, f"Unknown feed event type {notification.event_type}")

    roster = Roster(session)
    player = None
    if notification.player_external_id:
        player = roster.find_in_available(notification.player_external_id)
    if player is None and notification.player_name:
        player = roster.find_by_name(notification.player_name)

    if player is None:
        logger.warning(
            f"Could not find player for event: {notification.player_name or 'Unknown'} "
            f"(ID: {notification.player_external_id})"
        )
        return NoOp(
            FailureKind.EXTERNAL_RESOLUTION,
            f"Unknown feed player {notification.player_external_id or notification.player_name}"
        )

    return player, event_type


class LiveMatchEngine:
    """Main orchestrator for live match mode."""

    def __init__(
        self,
        manager: GameStateManager,
        match_ids: List[str],
        feed_client: Optional[LiveFeedClient] = None,
        api_key: Optional[str] = None,
        poll_interval: int = config.DEFAULT_POLL_INTERVAL,
        store: Optional[SessionStore] = None
    ):
        """
        Initialize live match engine.

        Args:
            manager: State manager owning the session
            match_ids: Feed match identifiers to follow
            feed_client: Client to poll (created from api_key if None)
            api_key: Feed authentication token
            poll_interval: Seconds between polls
            store: Optional store to checkpoint the session into
        """
        self.manager = manager
        self.match_ids = list(match_ids)
        self.feed_client = feed_client or LiveFeedClient(api_key=api_key)
        self.poll_interval = poll_interval
        self.store = store

        self.processed_event_keys: Set[str] = set()

        # Session state
        self.session_active = False
        self.shutdown_requested = False

    def process_feed_event(self, raw: RawFeedEvent) -> Optional[Outcome]:
        """
        Handle one raw feed event.

        Returns:
            Outcome of the dispatched mutation, or None for a duplicate
        """
        if raw.event_key in self.processed_event_keys:
            logger.debug(f"Duplicate event detected and skipped: {raw.event_key}")
            return None
        self.processed_event_keys.add(raw.event_key)

        try:
            notification = to_notification(raw)
        except ValidationError as e:
            logger.error(f"Invalid feed event {raw.event_key}: {e}")
            return NoOp(FailureKind.EXTERNAL_RESOLUTION, f"Invalid feed event {raw.event_key}")

        if notification is None:
            logger.warning(f"Substitution missing player ids: off={raw.player_off_id}, on={raw.player_on_id}")
            return NoOp(FailureKind.EXTERNAL_RESOLUTION, f"Incomplete substitution {raw.event_key}")

        logger.info(f"Processing new live event: {raw.type} at {raw.minute}' by {raw.player_name or 'Unknown'}")
        return self.handle_notification(notification)

    def handle_notification(self, notification: Notification) -> Outcome:
        """Dispatch an already-validated notification to the state manager."""
        if isinstance(notification, SubstitutionNotification):
            return self.manager.substitute_from_feed(
                notification.player_out_external_id,
                notification.player_in_external_id,
                notification.minute,
                notification.team_id
            )

        resolved = resolve_scoring_notification(notification, self.manager.session)
        if isinstance(resolved, NoOp):
            return resolved

        player, event_type = resolved
        return self.manager.record_event(player, event_type, minute=notification.minute)

    def poll_and_update(self) -> List[Outcome]:
        """
        Single poll cycle over all followed matches.

        Returns:
            Outcomes for feed events seen for the first time
        """
        outcomes: List[Outcome] = []
        events_before = len(self.manager.session.events)

        for match_id in self.match_ids:
            try:
                raw_data = self.feed_client.fetch_match_events(match_id)
            except Exception as e:
                logger.error(f"Failed to fetch events for match {match_id}: {e}")
                continue

            for raw in self.feed_client.normalize_events(raw_data):
                outcome = self.process_feed_event(raw)
                if outcome is not None:
                    outcomes.append(outcome)

        if outcomes:
            changed = sum(1 for o in outcomes if o.ok)
            logger.info(f"Processed {len(outcomes)} new feed event(s), {changed} applied")
            # Unsettled events still grow the timeline
            grew = len(self.manager.session.events) != events_before
            if (changed or grew) and self.store is not None:
                self.store.save_checkpoint(self.manager.session)

        return outcomes

    def run_live_session(
        self,
        duration_minutes: Optional[int] = None,
        output_callback: Optional[Callable] = None
    ) -> None:
        """
        Main polling loop for a live match session.

        Args:
            duration_minutes: Run for N minutes (None = run until interrupted)
            output_callback: Optional function called after each poll with new outcomes
                           Signature: callback(outcomes, session)
        """
        def signal_handler(sig, frame):
            logger.info("\nShutdown requested (Ctrl+C)")
            self.shutdown_requested = True

        signal.signal(signal.SIGINT, signal_handler)

        logger.info("="*60)
        logger.info("STARTING LIVE MATCH POLLING")
        logger.info("="*60)
        logger.info(f"Matches: {', '.join(self.match_ids)}")
        logger.info(f"Poll interval: {self.poll_interval}s")
        logger.info("Press Ctrl+C to stop")
        logger.info("="*60)

        self.session_active = True
        start_time = time.time()
        poll_count = 0

        while self.session_active and not self.shutdown_requested:
            if duration_minutes is not None:
                elapsed_minutes = (time.time() - start_time) / 60
                if elapsed_minutes >= duration_minutes:
                    logger.info(f"Duration limit reached ({duration_minutes} minutes)")
                    break

            poll_count += 1
            logger.debug(f"Poll #{poll_count}...")

            try:
                outcomes = self.poll_and_update()
                if outcomes and output_callback:
                    output_callback(outcomes, self.manager.session)
            except Exception as e:
                logger.error(f"Error during poll cycle: {e}", exc_info=True)

            time.sleep(self.poll_interval)

        self.session_active = False
        logger.info("="*60)
        logger.info("LIVE MATCH SESSION ENDED")
        logger.info("="*60)
        logger.info(f"Total polls: {poll_count}")
        logger.info(f"Feed events processed: {len(self.processed_event_keys)}")

    def clear_processed_events(self) -> None:
        self.processed_event_keys.clear()
        logger.info("Cleared processed events cache")

    def close(self) -> None:
        """Clean up resources."""
        if self.feed_client:
            self.feed_client.close()
