"""Error taxonomy for the bracket engine and the division ladder."""
from typing import List, Optional


class ArenaError(Exception):
    """Base error class. Carries the HTTP status the API layer answers with."""

    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


# Bracket errors
class InvalidFormatError(ArenaError):
    """Raised when an unsupported tournament format is requested."""

    def __init__(self, tournament_format):
        super().__init__(f"Unsupported tournament format: {tournament_format}")
        self.tournament_format = tournament_format


class InsufficientParticipantsError(ArenaError):
    """Raised when fewer than two participants are available at generation time."""

    def __init__(self, count: int, min_required: int = 2):
        super().__init__(
            f"At least {min_required} participants are required to generate a bracket (got {count})."
        )
        self.count = count
        self.min_required = min_required


class MatchNotFoundError(ArenaError):
    status_code = 404

    def __init__(self, match_id: str):
        super().__init__(f"Match with ID {match_id} not found.")
        self.match_id = match_id


class InvalidAdvancementError(ArenaError):
    """Raised when a match cannot be finished or moved to the requested status."""

    status_code = 409


class BracketIntegrityError(ArenaError):
    status_code = 500

    def __init__(self, errors: List[str]):
        super().__init__("Bracket failed validation: " + "; ".join(errors))
        self.errors = list(errors)


# Tournament lifecycle errors
class TournamentNotFoundError(ArenaError):
    status_code = 404

    def __init__(self, tournament_id: str):
        super().__init__(f"Tournament with ID {tournament_id} not found.")
        self.tournament_id = tournament_id


class TournamentStateError(ArenaError):
    status_code = 409


class RegistrationError(ArenaError):
    pass


# Division errors
class DivisionStatusMissingError(ArenaError):
    status_code = 404

    def __init__(self, user_id: str):
        super().__init__(f"No division status found for user {user_id}.")
        self.user_id = user_id
