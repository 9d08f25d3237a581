from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field

from arena.models.bracket_model import MatchModel
from arena.models.tournament_model import BracketSettings, TournamentFormat


class TournamentCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=100)
    description: str = ""
    format: TournamentFormat
    max_participants: int = Field(default=64, ge=2)
    registration_start: Optional[datetime] = None
    registration_end: Optional[datetime] = None
    tournament_start: Optional[datetime] = None
    bracket_settings: BracketSettings = Field(default_factory=BracketSettings)


class ParticipantCreate(BaseModel):
    user_id: str
    username: str
    rating: float = 1000.0
    seed: Optional[int] = None


class MatchResultCreate(BaseModel):
    """Either a winner or a draw; draws are only accepted for round robin and Swiss."""
    winner_id: Optional[str] = None
    is_draw: bool = False


class MatchResultRead(BaseModel):
    changed_matches: List[MatchModel]
    champion_id: Optional[str] = None
    tournament_status: str
