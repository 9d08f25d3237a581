from datetime import datetime
from uuid import uuid4
from typing import List, Optional, Dict, Tuple
from enum import Enum

from pydantic import BaseModel, Field, PrivateAttr

from arena.core.exceptions import InvalidAdvancementError, MatchNotFoundError
from arena.models.tournament_model import TournamentFormat


class MatchStatus(str, Enum):
    WAITING = "waiting"    # at least one slot still TBD
    PENDING = "pending"    # both slots resolved, not yet played
    ACTIVE = "active"
    FINISHED = "finished"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = [MatchStatus.WAITING, MatchStatus.PENDING, MatchStatus.ACTIVE, MatchStatus.FINISHED]


class BracketSide(str, Enum):
    WINNERS = "winners"
    LOSERS = "losers"
    GRAND_FINALS = "grand-finals"


class MatchModel(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    tournament_id: str
    round_number: int = Field(ge=1)
    match_in_round: int = Field(ge=1)

    player1_id: Optional[str] = None
    player2_id: Optional[str] = None

    winner_id: Optional[str] = None

    status: MatchStatus = MatchStatus.WAITING
    bracket: Optional[BracketSide] = None
    best_of: int = 1

    scheduled_time: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    # Winner routing; slot is 1 or 2
    next_match_id: Optional[str] = None
    winner_to_player_slot: Optional[int] = None
    # Loser routing (double elimination drop-down)
    loser_next_match_id: Optional[str] = None
    loser_to_player_slot: Optional[int] = None

    # A bye match never gets a second participant; its only participant advances.
    is_bye: bool = False
    is_draw: bool = False

    class Config:
        from_attributes = True

    @property
    def slots_filled(self) -> bool:
        return bool(self.player1_id and self.player2_id)

    @property
    def is_finished(self) -> bool:
        return self.status == MatchStatus.FINISHED

    @property
    def loser_id(self) -> Optional[str]:
        if not self.is_finished or self.is_bye or self.is_draw or not self.winner_id:
            return None
        return self.player2_id if self.winner_id == self.player1_id else self.player1_id

    def involves(self, player_id: str) -> bool:
        return player_id in (self.player1_id, self.player2_id)

    def set_slot(self, slot: int, player_id: str) -> None:
        if slot == 1:
            self.player1_id = player_id
        elif slot == 2:
            self.player2_id = player_id
        else:
            raise InvalidAdvancementError(f"Invalid player slot '{slot}' for match {self.id}.")

    def transition_to(self, new_status: MatchStatus) -> None:
        """Move the match forward through waiting -> pending -> active -> finished."""
        new_status = MatchStatus(new_status)
        if self.status == MatchStatus.FINISHED:
            raise InvalidAdvancementError(f"Match {self.id} is already finished.")
        if new_status.rank < self.status.rank:
            raise InvalidAdvancementError(
                f"Match {self.id} cannot move from '{self.status.value}' back to '{new_status.value}'."
            )
        self.status = new_status


class BracketNode(BaseModel):
    id: str
    match_id: str
    round_number: int
    match_in_round: int
    bracket: Optional[BracketSide] = None
    parent_id: Optional[str] = None
    child_ids: List[str] = Field(default_factory=list)


class ScheduleEntry(BaseModel):
    round_number: int
    bracket: Optional[BracketSide] = None
    match_ids: List[str] = Field(default_factory=list)
    estimated_start_time: datetime
    estimated_duration: int  # minutes


GridKey = Tuple[Optional[BracketSide], int, int]


class BracketModel(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    tournament_id: str
    format: TournamentFormat
    total_rounds: int

    matches: List[MatchModel] = Field(default_factory=list)
    tree: List[BracketNode] = Field(default_factory=list)
    schedule: List[ScheduleEntry] = Field(default_factory=list)

    rounds_structure: Dict[int, List[str]] = Field(default_factory=dict)  # round -> match ids

    champion_id: Optional[str] = None
    seeding: List[str] = Field(default_factory=list)  # user ids, best seed first

    _by_id: Dict[str, MatchModel] = PrivateAttr(default_factory=dict)
    _by_position: Dict[GridKey, MatchModel] = PrivateAttr(default_factory=dict)

    class Config:
        from_attributes = True

    def model_post_init(self, __context) -> None:
        self.reindex()

    def reindex(self) -> None:
        self._by_id = {m.id: m for m in self.matches}
        self._by_position = {(m.bracket, m.round_number, m.match_in_round): m for m in self.matches}
        self.rounds_structure = {}
        for m in self.matches:
            self.rounds_structure.setdefault(m.round_number, []).append(m.id)

    def add_matches(self, new_matches: List[MatchModel]) -> None:
        self.matches.extend(new_matches)
        self.reindex()

    def find_match(self, match_id: str) -> Optional[MatchModel]:
        return self._by_id.get(match_id)

    def get_match(self, match_id: str) -> MatchModel:
        match = self._by_id.get(match_id)
        if match is None:
            raise MatchNotFoundError(match_id)
        return match

    def match_at(self, round_number: int, position: int, bracket: Optional[BracketSide] = None) -> Optional[MatchModel]:
        return self._by_position.get((bracket, round_number, position))

    def seed_index(self, user_id: str) -> int:
        """Position in the seeding; late or unknown entrants rank after every seeded one."""
        try:
            return self.seeding.index(user_id)
        except ValueError:
            return len(self.seeding)

    def matches_in_round(self, round_number: int, bracket: Optional[BracketSide] = None) -> List[MatchModel]:
        return sorted(
            (m for m in self.matches if m.round_number == round_number and m.bracket == bracket),
            key=lambda m: m.match_in_round,
        )

    @property
    def is_complete(self) -> bool:
        return self.champion_id is not None
