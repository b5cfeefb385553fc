"""
Main CLI entry point for the wagerbook settlement ledger.
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from . import config
from .game.game_event import Session
from .game.game_state_manager import GameStateManager
from .game.outcomes import Settlement, SubstitutionResult
from .game.session_store import SessionStore
from .summary_writer import SummaryWriter, balance_summary, player_event_summary


def setup_logging(verbose: bool = False):
    """
    Configure logging for the application.

    Args:
        verbose: Enable verbose (DEBUG) logging
    """
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL)
    logging.basicConfig(
        level=level,
        format=config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='Wagerbook match-day settlement ledger',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Print balances of a stored session
  python -m wagerbook.main --snapshot 3f2a...

  # Load a snapshot file, rebuild balances from history and export CSVs
  python -m wagerbook.main --snapshot session.json --recalculate --output matchday

  # Follow a live match and settle events as they arrive
  python -m wagerbook.main --snapshot 3f2a... --live --match-id 498123
        """
    )

    parser.add_argument(
        '--snapshot',
        type=str,
        required=True,
        help='Session snapshot: path to a JSON file or a stored session id'
    )

    parser.add_argument(
        '--sessions-dir',
        type=str,
        default=config.SESSIONS_DIR,
        help=f'Directory of stored sessions (default: {config.SESSIONS_DIR})'
    )

    parser.add_argument(
        '--recalculate',
        action='store_true',
        help='Rebuild all balances from the event history before reporting'
    )

    parser.add_argument(
        '--output',
        type=str,
        default=None,
        help='Base filename for CSV summaries (default: session_<timestamp>)'
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        default=config.OUTPUT_DIR,
        help=f'Directory for CSV summaries (default: {config.OUTPUT_DIR})'
    )

    parser.add_argument(
        '--no-export',
        action='store_true',
        help='Print summaries only, do not write CSV files'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    # Live match mode arguments
    parser.add_argument(
        '--live',
        action='store_true',
        help='Poll the live feed and settle events as they arrive'
    )

    parser.add_argument(
        '--match-id',
        type=str,
        action='append',
        default=[],
        help='Feed match id to follow (repeatable)'
    )

    parser.add_argument(
        '--feed-api-key',
        type=str,
        default=None,
        help=f'Feed API key (or set {config.FEED_API_KEY_ENV} environment variable)'
    )

    parser.add_argument(
        '--poll-interval',
        type=int,
        default=config.DEFAULT_POLL_INTERVAL,
        help=f'Polling interval in seconds for live mode (default: {config.DEFAULT_POLL_INTERVAL})'
    )

    parser.add_argument(
        '--duration',
        type=int,
        default=None,
        help='Stop live mode after N minutes (default: run until Ctrl+C)'
    )

    return parser.parse_args(argv)


def load_session(snapshot: str, store: SessionStore) -> Session:
    """
    Load a session from a snapshot file, or restore it from the store by id.

    Raises:
        FileNotFoundError: If neither a file nor a stored session exists
    """
    path = Path(snapshot)
    if path.is_file():
        with open(path, 'r', encoding='utf-8') as f:
            return Session.from_json(f.read())
    return store.restore(snapshot)


def report(session: Session, args) -> None:
    """Log the balance and event summaries and optionally export them."""
    logger = logging.getLogger(__name__)

    balances = balance_summary(session)
    events = player_event_summary(session)

    logger.info("\n" + "="*60)
    logger.info("BALANCES")
    logger.info("="*60)
    logger.info("\n" + balances.to_string(index=False))

    if not events.empty:
        logger.info("\n" + "="*60)
        logger.info("EVENTS BY PLAYER")
        logger.info("="*60)
        logger.info("\n" + events.to_string(index=False))

    logger.info(f"Total balance: {session.total_balance():.2f}")

    if not args.no_export:
        paths = SummaryWriter(args.output_dir).write(session, args.output)
        logger.info(f"Balances file: {paths['balances']}")
        logger.info(f"Events file: {paths['events']}")


def run_batch_mode(args):
    """Load a session, optionally recalculate, and report."""
    logger = logging.getLogger(__name__)

    logger.info("="*60)
    logger.info("Wagerbook Session Report")
    logger.info("="*60)

    try:
        store = SessionStore(Path(args.sessions_dir))
        session = load_session(args.snapshot, store)
        manager = GameStateManager(session)

        if args.recalculate:
            result = manager.recalculate()
            logger.info(
                f"Recalculated: {result.replayed} events settled, "
                f"{len(result.no_ops)} could not be settled"
            )
            store.save_checkpoint(session)

        report(session, args)

    except FileNotFoundError as e:
        logger.error(f"Session not found: {e}")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Error during execution: {e}")
        sys.exit(1)


def run_live_mode(args):
    """Run in live match mode (event-driven)."""
    from .game.live_match_engine import LiveMatchEngine

    logger = logging.getLogger(__name__)

    logger.info("="*60)
    logger.info("Wagerbook Live Match Mode")
    logger.info("="*60)

    if not args.match_id:
        logger.error("--match-id is required for live mode")
        sys.exit(1)

    api_key = args.feed_api_key or os.getenv(config.FEED_API_KEY_ENV)
    if not api_key:
        logger.warning(
            "No feed API key provided. "
            f"Set --feed-api-key or {config.FEED_API_KEY_ENV} environment variable if needed."
        )

    try:
        store = SessionStore(Path(args.sessions_dir))
        session = load_session(args.snapshot, store)
        manager = GameStateManager(session)
        store.attach(manager)

        engine = LiveMatchEngine(
            manager,
            match_ids=args.match_id,
            api_key=api_key,
            poll_interval=args.poll_interval,
            store=store
        )

        def print_outcomes(outcomes, session):
            for outcome in outcomes:
                if isinstance(outcome, Settlement):
                    logger.info(f"Settled: {outcome.event.display_name} for {outcome.event.player.name}")
                elif isinstance(outcome, SubstitutionResult) and outcome.ok:
                    logger.info(f"{outcome.status.value}: {outcome.message}")
            logger.info("\n" + balance_summary(session).to_string(index=False))

        engine.run_live_session(duration_minutes=args.duration, output_callback=print_outcomes)
        engine.close()

        store.save_checkpoint(session)
        report(session, args)

    except KeyboardInterrupt:
        logger.info("\nLive match session interrupted by user")
    except FileNotFoundError as e:
        logger.error(f"Session not found: {e}")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Error during live match: {e}")
        sys.exit(1)


def main(argv=None):
    """Main execution function with mode branching."""
    args = parse_arguments(argv)

    setup_logging(args.verbose)

    if args.live:
        run_live_mode(args)
    else:
        run_batch_mode(args)


if __name__ == '__main__':
    main()
