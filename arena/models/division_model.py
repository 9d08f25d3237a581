from datetime import datetime
from uuid import uuid4
from typing import List, Optional, Dict
from enum import Enum

from pydantic import BaseModel, Field


class DivisionTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"
    DIAMOND = "diamond"
    MASTER = "master"

    @property
    def rank(self) -> int:
        return DIVISION_ORDER.index(self)


DIVISION_ORDER: List[DivisionTier] = [
    DivisionTier.BRONZE,
    DivisionTier.SILVER,
    DivisionTier.GOLD,
    DivisionTier.PLATINUM,
    DivisionTier.DIAMOND,
    DivisionTier.MASTER,
]


class MatchResult(str, Enum):
    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"


class DivisionChangeType(str, Enum):
    PROMOTION = "promotion"
    DEMOTION = "demotion"
    PLACEMENT = "placement"


class PromotionRequirement(BaseModel):
    wins_required: int
    streak_required: Optional[int] = None
    min_accuracy: Optional[float] = None


class DemotionThreshold(BaseModel):
    max_losses: int
    streak: Optional[int] = None


class RewardBundle(BaseModel):
    xp: int = 0
    points: int = 0
    cosmetics: List[str] = Field(default_factory=list)
    titles: List[str] = Field(default_factory=list)


class DivisionRewards(BaseModel):
    season_end_rewards: RewardBundle = Field(default_factory=RewardBundle)
    monthly_rewards: RewardBundle = Field(default_factory=RewardBundle)


class DivisionPrivileges(BaseModel):
    exclusive_tournaments: bool = False
    priority_matchmaking: bool = False
    custom_cosmetics: bool = False
    advanced_analytics: bool = False


class DivisionModel(BaseModel):
    tier: DivisionTier
    name: str
    description: str = ""
    min_mmr: int
    max_mmr: int  # exclusive upper bound of the band
    promotion_requirement: PromotionRequirement
    demotion_threshold: DemotionThreshold
    rewards: DivisionRewards = Field(default_factory=DivisionRewards)
    privileges: DivisionPrivileges = Field(default_factory=DivisionPrivileges)

    @property
    def band_width(self) -> int:
        return self.max_mmr - self.min_mmr

    def contains(self, mmr: float) -> bool:
        return self.min_mmr <= mmr < self.max_mmr


class PromotionProgress(BaseModel):
    wins_needed: int = 3
    current_wins: int = 0
    current_streak: int = 0
    is_in_promotion: bool = False


class DemotionShield(BaseModel):
    is_active: bool = False
    games_remaining: int = 0


class SeasonStats(BaseModel):
    highest_division: DivisionTier = DivisionTier.BRONZE
    games_played: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    win_rate: float = 0.0
    average_accuracy: float = 0.0
    average_reaction_time: float = 0.0
    current_streak: int = 0  # positive = win streak, negative = loss streak
    longest_win_streak: int = 0
    longest_loss_streak: int = 0


class DivisionHistoryEntry(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    from_division: Optional[DivisionTier] = None
    to_division: DivisionTier
    type: DivisionChangeType
    reason: str
    mmr_change: int = 0
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    game_mode: Optional[str] = None

    class Config:
        frozen = True


class UserDivisionStatus(BaseModel):
    user_id: str
    current_division: DivisionTier
    current_mmr: int
    division_mmr: int = Field(ge=0, le=100)
    promotion_progress: PromotionProgress = Field(default_factory=PromotionProgress)
    demotion_shield: DemotionShield = Field(default_factory=DemotionShield)
    season_stats: SeasonStats = Field(default_factory=SeasonStats)
    history: List[DivisionHistoryEntry] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=datetime.utcnow)


class GameData(BaseModel):
    """Outcome of a single ranked match as reported by the game layer."""
    result: MatchResult
    opponent_mmr: Optional[int] = None
    accuracy: float = Field(default=0.0, ge=0, le=100)
    reaction_time: float = Field(default=0.0, ge=0)  # milliseconds
    current_streak: Optional[int] = None
    game_mode: Optional[str] = None


class DivisionUpdate(BaseModel):
    status: UserDivisionStatus
    mmr_change: int
    events: List[DivisionHistoryEntry] = Field(default_factory=list)

    @property
    def promoted(self) -> bool:
        return any(e.type == DivisionChangeType.PROMOTION for e in self.events)

    @property
    def demoted(self) -> bool:
        return any(e.type == DivisionChangeType.DEMOTION for e in self.events)


class SkillAssessment(BaseModel):
    user_id: str
    game_mode: Optional[str] = None
    overall_skill_rating: int = Field(ge=0, le=100)
    skill_breakdown: Dict[str, float] = Field(default_factory=dict)
    recommended_division: DivisionTier
    confidence: int = Field(default=0, ge=0, le=100)
    assessed_at: datetime = Field(default_factory=datetime.utcnow)


class PlacementState(BaseModel):
    user_id: str
    matches_played: int = 0
    matches_remaining: int = 10
    wins: int = 0
    accuracies: List[float] = Field(default_factory=list)
    reaction_times: List[float] = Field(default_factory=list)
    current_streak: int = 0
    longest_win_streak: int = 0
    longest_loss_streak: int = 0

    @property
    def is_complete(self) -> bool:
        return self.matches_remaining <= 0


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    current_mmr: int
    division_mmr: int
    win_rate: float
    games_played: int
