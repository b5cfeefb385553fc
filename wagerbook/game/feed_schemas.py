"""
Live feed payload schemas.

Raw match events from the feed are validated here before anything touches
a session. A payload that fails validation is logged and skipped by the
caller; it never reaches the ledger.
"""

from typing import Optional, Union
from pydantic import BaseModel, Field

from .. import config


# ========== Notifications consumed by the game ==========

class SubstitutionNotification(BaseModel):
    """Substitution reported by the live feed."""
    player_out_external_id: str = Field(..., min_length=1)
    player_in_external_id: str = Field(..., min_length=1)
    minute: Optional[int] = Field(None, ge=0, le=150, description="Match minute")
    team_id: str = Field('', description="Feed team identifier")


class ScoringNotification(BaseModel):
    """Goal, card or other wager-relevant event reported by the live feed."""
    event_type: str = Field(..., description="Feed type string, e.g. 'yellow_card'")
    player_external_id: Optional[str] = None
    player_name: Optional[str] = Field(None, description="Used when the id can't be resolved")
    minute: Optional[int] = Field(None, ge=0, le=150)


Notification = Union[SubstitutionNotification, ScoringNotification]


# ========== Raw feed event ==========

class RawFeedEvent(BaseModel):
    """One item from the feed's match events endpoint."""
    id: str
    type: str
    minute: int = Field(..., ge=0, le=150)
    player_id: Optional[str] = Field(None, alias='playerId')
    player_name: Optional[str] = Field(None, alias='playerName')
    team_id: Optional[str] = Field(None, alias='teamId')
    player_off_id: Optional[str] = Field(None, alias='playerOffId')
    player_on_id: Optional[str] = Field(None, alias='playerOnId')

    @property
    def event_key(self) -> str:
        """Identity used to process each feed event at most once."""
        return f"{self.id}_{self.minute}_{self.type}_{self.player_id}"

    @property
    def is_substitution(self) -> bool:
        return self.type.lower() == config.FEED_SUBSTITUTION_TYPE


def to_notification(raw: RawFeedEvent) -> Optional[Notification]:
    """
    Convert a raw feed event to a notification.

    Returns:
        Notification, or None when a substitution lacks the incoming player
        or the outgoing player can't be identified at all

    Raises:
        pydantic.ValidationError: If the converted payload is malformed
    """
    if raw.is_substitution:
        player_off = raw.player_off_id or raw.player_id
        if not player_off or not raw.player_on_id:
            return None
        return SubstitutionNotification(
            player_out_external_id=player_off,
            player_in_external_id=raw.player_on_id,
            minute=raw.minute,
            team_id=raw.team_id or ''
        )

    return ScoringNotification(
        event_type=raw.type,
        player_external_id=raw.player_id,
        player_name=raw.player_name,
        minute=raw.minute
    )
