import threading
from typing import Dict

from arena.core.exceptions import DivisionStatusMissingError, TournamentNotFoundError, TournamentStateError
from arena.models.bracket_model import BracketModel
from arena.models.division_model import PlacementState, UserDivisionStatus
from arena.models.tournament_model import TournamentConfig
from arena.services.division_service import DivisionService
from arena.services.tournament_service import TournamentService


class InMemoryStore:
    """Process-local state for the HTTP surface. Hold `lock` for any read-modify-write."""

    def __init__(self):
        self.lock = threading.Lock()
        self.tournaments: Dict[str, TournamentConfig] = {}
        self.brackets: Dict[str, BracketModel] = {}
        self.division_statuses: Dict[str, UserDivisionStatus] = {}
        self.placements: Dict[str, PlacementState] = {}

    def get_tournament(self, tournament_id: str) -> TournamentConfig:
        tournament = self.tournaments.get(tournament_id)
        if tournament is None:
            raise TournamentNotFoundError(tournament_id)
        return tournament

    def get_bracket(self, tournament_id: str) -> BracketModel:
        tournament = self.get_tournament(tournament_id)
        bracket = self.brackets.get(tournament.id)
        if bracket is None:
            raise TournamentStateError(f"Tournament {tournament_id} has not started yet.")
        return bracket

    def get_division_status(self, user_id: str) -> UserDivisionStatus:
        status = self.division_statuses.get(user_id)
        if status is None:
            raise DivisionStatusMissingError(user_id)
        return status


store = InMemoryStore()
tournament_service = TournamentService()
division_service = DivisionService()


def get_store() -> InMemoryStore:
    return store


def get_tournament_service() -> TournamentService:
    return tournament_service


def get_division_service() -> DivisionService:
    return division_service
