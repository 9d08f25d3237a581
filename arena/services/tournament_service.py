import logging
import random
from datetime import datetime
from typing import List, Optional, Dict

from arena.core.config import Settings, settings as default_settings
from arena.core.exceptions import RegistrationError, TournamentStateError
from arena.models.bracket_model import BracketModel, BracketSide, MatchModel, MatchStatus
from arena.models.tournament_model import (
    ParticipantModel,
    TournamentConfig,
    TournamentFormat,
    TournamentStanding,
    TournamentStatus,
)
from arena.services.advancement_service import AdvancementService
from arena.services.bracket_service import BracketService
from arena.services.scheduling import assign_match_times, build_schedule
from arena.services.swiss_service import SwissService

logger = logging.getLogger(__name__)


class TournamentService:
    """Drives a tournament from registration to final standings on top of the bracket engine."""

    def __init__(self,
                 config: Settings = default_settings,
                 rng: Optional[random.Random] = None,
                 bracket_service: Optional[BracketService] = None,
                 advancement_service: Optional[AdvancementService] = None,
                 swiss_service: Optional[SwissService] = None):
        self.config = config
        self.swiss_service = swiss_service or SwissService()
        self.bracket_service = bracket_service or BracketService(config, rng, self.swiss_service)
        self.advancement_service = advancement_service or AdvancementService(self.swiss_service)

    # --- Registration ---------------------------------------------------------

    def is_registration_open(self, tournament: TournamentConfig, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        if len(tournament.participants) >= tournament.max_participants:
            return False
        if tournament.status == TournamentStatus.REGISTRATION:
            if tournament.registration_start and now < tournament.registration_start:
                return False
            if tournament.registration_end and now > tournament.registration_end:
                return False
            return True
        # Late entries can only join a Swiss event; they are paired from the next round on.
        return (
            tournament.status == TournamentStatus.ACTIVE
            and tournament.format == TournamentFormat.SWISS
            and tournament.bracket_settings.allow_late_registration
        )

    def register_participant(self,
                             tournament: TournamentConfig,
                             user_id: str,
                             username: str,
                             rating: float = 1000.0,
                             seed: Optional[int] = None,
                             now: Optional[datetime] = None) -> ParticipantModel:
        if tournament.get_participant(user_id):
            raise RegistrationError(f"User {user_id} is already registered for this tournament.")
        if len(tournament.participants) >= tournament.max_participants:
            raise RegistrationError("Tournament is full.")
        if not self.is_registration_open(tournament, now):
            raise RegistrationError("Registration is closed for this tournament.")

        participant = ParticipantModel(
            user_id=user_id,
            username=username,
            rating=rating,
            seed=seed if seed is not None else len(tournament.participants) + 1,
        )
        tournament.participants.append(participant)
        tournament.updated_at = datetime.utcnow()
        logger.info("User %s registered for tournament %s", user_id, tournament.id)
        return participant

    def unregister_participant(self, tournament: TournamentConfig, user_id: str) -> None:
        if tournament.status != TournamentStatus.REGISTRATION:
            raise TournamentStateError("Participants can only withdraw before the tournament starts.")
        participant = tournament.get_participant(user_id)
        if not participant:
            raise RegistrationError(f"User {user_id} is not registered for this tournament.")
        tournament.participants.remove(participant)
        tournament.updated_at = datetime.utcnow()

    # --- Play -------------------------------------------------------------------

    def start_tournament(self, tournament: TournamentConfig) -> BracketModel:
        if tournament.status != TournamentStatus.REGISTRATION:
            raise TournamentStateError(
                f"Tournament {tournament.id} cannot be started from status '{tournament.status.value}'."
            )
        bracket = self.bracket_service.generate(tournament)

        tournament.status = TournamentStatus.ACTIVE
        tournament.total_rounds = bracket.total_rounds
        tournament.current_round = 1
        tournament.updated_at = datetime.utcnow()
        self._refresh_current_matches(tournament, bracket)
        logger.info("Tournament %s started with %d participants", tournament.id, len(tournament.participants))
        return bracket

    def start_match(self, tournament: TournamentConfig, bracket: BracketModel, match_id: str) -> MatchModel:
        self._require_active(tournament)
        return self.advancement_service.start_match(bracket, match_id)

    def record_result(self,
                      tournament: TournamentConfig,
                      bracket: BracketModel,
                      match_id: str,
                      winner_id: Optional[str] = None,
                      is_draw: bool = False) -> List[MatchModel]:
        """
        Reports a match result. Returns the mutated matches.
        Completes the tournament when the result decides a champion.
        """
        self._require_active(tournament)
        if is_draw:
            match = self.advancement_service.record_draw(bracket, match_id)
            changed = [match]
        else:
            if not winner_id:
                raise TournamentStateError("A winner is required unless the match is a draw.")
            changed = self.advancement_service.advance_winner(bracket, match_id, winner_id)
            match = changed[0]
            self._update_counters(tournament, bracket, match)

        self._refresh_current_matches(tournament, bracket)
        tournament.current_round = self._current_round(bracket)
        tournament.updated_at = datetime.utcnow()

        if bracket.champion_id:
            tournament.status = TournamentStatus.COMPLETED
            tournament.winner_id = bracket.champion_id
            tournament.final_standings = self.compute_standings(tournament, bracket)
            logger.info("Tournament %s completed, winner %s", tournament.id, tournament.winner_id)
        return changed

    def next_swiss_round(self, tournament: TournamentConfig, bracket: BracketModel) -> List[MatchModel]:
        self._require_active(tournament)
        if tournament.format != TournamentFormat.SWISS:
            raise TournamentStateError("Only Swiss tournaments pair rounds on demand.")

        new_matches = self.swiss_service.next_round(bracket, tournament.participants)
        assign_match_times(self.config, tournament.tournament_start, new_matches)
        bracket.schedule = build_schedule(self.config, tournament.tournament_start, bracket.matches)
        tournament.current_round = self._current_round(bracket)
        self._refresh_current_matches(tournament, bracket)
        return new_matches

    def _require_active(self, tournament: TournamentConfig) -> None:
        if tournament.status != TournamentStatus.ACTIVE:
            raise TournamentStateError(f"Tournament {tournament.id} is not active.")

    def _update_counters(self, tournament: TournamentConfig, bracket: BracketModel, match: MatchModel) -> None:
        winner = tournament.get_participant(match.winner_id)
        loser = tournament.get_participant(match.loser_id) if match.loser_id else None
        if winner:
            winner.wins += 1
        if loser:
            loser.losses += 1
            if self.advancement_service.is_loser_eliminated(bracket, match):
                loser.is_eliminated = True
                logger.info("Participant %s eliminated from tournament %s", loser.user_id, tournament.id)

    def _refresh_current_matches(self, tournament: TournamentConfig, bracket: BracketModel) -> None:
        for participant in tournament.participants:
            upcoming = self.participant_next_matches(bracket, participant.user_id)
            participant.current_match_id = upcoming[0].id if upcoming else None

    @staticmethod
    def _current_round(bracket: BracketModel) -> int:
        open_rounds = [m.round_number for m in bracket.matches if not m.is_finished]
        if open_rounds:
            return min(open_rounds)
        return max((m.round_number for m in bracket.matches), default=0)

    # --- Read helpers -----------------------------------------------------------

    def compute_standings(self, tournament: TournamentConfig, bracket: BracketModel) -> List[TournamentStanding]:
        """Champion first, then by points (wins and byes 1, draws 0.5), fewer losses, then seeding order."""
        player_ids = [p.user_id for p in tournament.participants]
        points = self.swiss_service.calculate_scores(player_ids, bracket.matches)
        tally: Dict[str, Dict[str, int]] = {pid: {"wins": 0, "losses": 0, "draws": 0} for pid in player_ids}
        for match in bracket.matches:
            if not match.is_finished or match.is_bye:
                continue
            if match.is_draw:
                for pid in (match.player1_id, match.player2_id):
                    if pid in tally:
                        tally[pid]["draws"] += 1
                continue
            if match.winner_id in tally:
                tally[match.winner_id]["wins"] += 1
            if match.loser_id in tally:
                tally[match.loser_id]["losses"] += 1

        registration_order = {pid: index for index, pid in enumerate(player_ids)}
        ranked = sorted(
            tournament.participants,
            key=lambda p: (
                p.user_id != bracket.champion_id,
                -points[p.user_id],
                tally[p.user_id]["losses"],
                bracket.seed_index(p.user_id),
                registration_order[p.user_id],
            ),
        )
        return [
            TournamentStanding(
                position=position,
                user_id=p.user_id,
                username=p.username,
                wins=tally[p.user_id]["wins"],
                losses=tally[p.user_id]["losses"],
                draws=tally[p.user_id]["draws"],
                points=points[p.user_id],
            )
            for position, p in enumerate(ranked, start=1)
        ]

    @staticmethod
    def get_progress(tournament: TournamentConfig) -> Dict[str, float]:
        total = tournament.total_rounds
        current = tournament.current_round
        percentage = (current / total) * 100 if total > 0 else 0.0
        return {"current": current, "total": total, "percentage": percentage}

    @staticmethod
    def bracket_progress(bracket: BracketModel) -> float:
        if not bracket.matches:
            return 0.0
        finished = sum(1 for m in bracket.matches if m.is_finished)
        return finished / len(bracket.matches) * 100

    @staticmethod
    def participant_next_matches(bracket: BracketModel, user_id: str) -> List[MatchModel]:
        return [
            m for m in bracket.matches
            if m.involves(user_id) and m.status in (MatchStatus.PENDING, MatchStatus.ACTIVE)
        ]

    @staticmethod
    def match_display_name(match: MatchModel) -> str:
        if match.bracket == BracketSide.GRAND_FINALS:
            return "Grand Finals"
        if match.bracket == BracketSide.LOSERS:
            return f"LB R{match.round_number} M{match.match_in_round}"
        if match.bracket == BracketSide.WINNERS:
            return f"WB R{match.round_number} M{match.match_in_round}"
        return f"R{match.round_number} M{match.match_in_round}"

    @staticmethod
    def user_tournament_status(tournament: TournamentConfig, user_id: str) -> str:
        participant = tournament.get_participant(user_id)
        if not participant:
            return "not-registered"
        if participant.is_eliminated:
            return "eliminated"
        if tournament.status == TournamentStatus.ACTIVE:
            return "participating"
        return "registered"
