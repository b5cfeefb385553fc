"""
Generate balance and event summaries for a session.
"""

import logging
import pandas as pd
from pathlib import Path
from datetime import datetime

from . import config
from .game.game_event import Session

logger = logging.getLogger(__name__)

BALANCE_COLUMNS = ['participant_id', 'name', 'balance', 'active_players', 'substituted_players']
EVENT_COLUMNS = ['player_id', 'player_name', 'team', 'event_type', 'count']


def balance_summary(session: Session) -> pd.DataFrame:
    """
    One row per participant, highest balance first.

    Returns:
        DataFrame with participant_id, name, balance, active_players, substituted_players
    """
    rows = [
        {
            'participant_id': p.participant_id,
            'name': p.name,
            'balance': p.balance,
            'active_players': len(p.active_players),
            'substituted_players': len(p.substituted_players),
        }
        for p in session.participants
    ]
    df = pd.DataFrame(rows, columns=BALANCE_COLUMNS)
    return df.sort_values('balance', ascending=False, kind='mergesort').reset_index(drop=True)


def player_event_summary(session: Session) -> pd.DataFrame:
    """
    Count wagering events per player and event type.

    Substitution timeline entries are not counted.
    """
    rows = [
        {
            'player_id': e.player.player_id,
            'player_name': e.player.name,
            'team': e.player.team.name,
            'event_type': e.display_name,
        }
        for e in session.events
        if e.wagering
    ]
    if not rows:
        return pd.DataFrame(columns=EVENT_COLUMNS)

    df = pd.DataFrame(rows)
    counts = (
        df.groupby(['player_id', 'player_name', 'team', 'event_type'])
        .size()
        .reset_index(name='count')
    )
    return counts.sort_values(['count', 'player_name'], ascending=[False, True]).reset_index(drop=True)


class SummaryWriter:
    """Writes session summaries to CSV files."""

    def __init__(self, output_dir: str = None):
        """
        Initialize the summary writer.

        Args:
            output_dir: Directory to write output files (default from config)
        """
        self.output_dir = Path(output_dir or config.OUTPUT_DIR)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def write_csv(self, df: pd.DataFrame, filename: str) -> Path:
        output_path = self.output_dir / filename
        df.to_csv(output_path, index=False, float_format='%.2f')
        logger.info(f"Output written to: {output_path} ({len(df)} rows)")
        return output_path

    def write(self, session: Session, base_filename: str = None) -> dict:
        """
        Write balance and event summaries.

        Returns:
            Dictionary with paths to output files
        """
        if base_filename is None:
            timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
            base_filename = f"session_{timestamp}"

        return {
            'balances': self.write_csv(balance_summary(session), f"{base_filename}_balances.csv"),
            'events': self.write_csv(player_event_summary(session), f"{base_filename}_events.csv"),
        }
