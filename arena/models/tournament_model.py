from datetime import datetime
from typing import Optional, List
from uuid import uuid4
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


class TournamentFormat(str, Enum):
    SINGLE_ELIMINATION = "single-elimination"
    DOUBLE_ELIMINATION = "double-elimination"
    ROUND_ROBIN = "round-robin"
    SWISS = "swiss"


class SeedingMethod(str, Enum):
    RANDOM = "random"
    ELO = "elo"
    MANUAL = "manual"


class TournamentStatus(str, Enum):
    REGISTRATION = "registration"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BracketSettings(BaseModel):
    best_of: int = Field(default=1, ge=1)
    seeding_method: SeedingMethod = SeedingMethod.RANDOM
    allow_late_registration: bool = False

    @field_validator("best_of")
    @classmethod
    def best_of_is_odd(cls, v):
        if v % 2 == 0:
            raise ValueError("best_of must be an odd number of games")
        return v


class ParticipantModel(BaseModel):
    user_id: str
    username: str
    rating: float = 1000.0
    seed: int = 0
    registered_at: datetime = Field(default_factory=datetime.utcnow)
    is_active: bool = True
    current_match_id: Optional[str] = None
    wins: int = 0
    losses: int = 0
    is_eliminated: bool = False

    class Config:
        from_attributes = True


class TournamentStanding(BaseModel):
    position: int
    user_id: str
    username: str
    wins: int
    losses: int
    draws: int = 0
    points: float = 0.0


class TournamentConfig(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(min_length=3, max_length=100)
    description: str = ""
    format: TournamentFormat
    status: TournamentStatus = TournamentStatus.REGISTRATION
    max_participants: int = Field(default=64, ge=2)

    registration_start: Optional[datetime] = None
    registration_end: Optional[datetime] = None
    tournament_start: datetime = Field(default_factory=datetime.utcnow)

    bracket_settings: BracketSettings = Field(default_factory=BracketSettings)

    participants: List[ParticipantModel] = Field(default_factory=list)
    current_round: int = 0
    total_rounds: int = 0

    winner_id: Optional[str] = None
    final_standings: List[TournamentStanding] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        from_attributes = True

    @model_validator(mode="after")
    def registration_window_is_ordered(self):
        if self.registration_start and self.registration_end and self.registration_end < self.registration_start:
            raise ValueError("Registration end must be after registration start")
        return self

    def get_participant(self, user_id: str) -> Optional[ParticipantModel]:
        return next((p for p in self.participants if p.user_id == user_id), None)
