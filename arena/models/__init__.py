from .tournament_model import (
    BracketSettings,
    ParticipantModel,
    SeedingMethod,
    TournamentConfig,
    TournamentFormat,
    TournamentStanding,
    TournamentStatus,
)
from .bracket_model import BracketModel, BracketNode, BracketSide, MatchModel, MatchStatus, ScheduleEntry
from .division_model import (
    DivisionModel,
    DivisionTier,
    DivisionUpdate,
    GameData,
    MatchResult,
    UserDivisionStatus,
)
