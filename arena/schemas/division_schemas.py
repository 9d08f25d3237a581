from typing import Optional, List

from pydantic import BaseModel, Field

from arena.models.division_model import DivisionHistoryEntry, MatchResult, UserDivisionStatus


class MmrChangeRequest(BaseModel):
    user_mmr: int = Field(ge=0)
    opponent_mmr: int = Field(ge=0)
    result: MatchResult
    accuracy: float = Field(default=65.0, ge=0, le=100)
    current_streak: int = 0


class MmrChangeRead(BaseModel):
    mmr_change: int


class DivisionMatchRead(BaseModel):
    in_placement: bool
    placement_matches_remaining: int = 0
    status: Optional[UserDivisionStatus] = None
    mmr_change: int = 0
    events: List[DivisionHistoryEntry] = Field(default_factory=list)
