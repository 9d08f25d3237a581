import logging
from datetime import datetime
from typing import List, Optional

from arena.core.exceptions import InvalidAdvancementError
from arena.models.bracket_model import BracketModel, MatchModel, MatchStatus
from arena.models.tournament_model import TournamentFormat
from arena.services.swiss_service import SwissService

logger = logging.getLogger(__name__)

ELIMINATION_FORMATS = (TournamentFormat.SINGLE_ELIMINATION, TournamentFormat.DOUBLE_ELIMINATION)
DRAW_FORMATS = (TournamentFormat.ROUND_ROBIN, TournamentFormat.SWISS)


class AdvancementService:
    def __init__(self, swiss_service: Optional[SwissService] = None):
        self.swiss_service = swiss_service or SwissService()

    def _check_playable(self, match: MatchModel) -> None:
        if match.is_finished:
            raise InvalidAdvancementError(f"Match {match.id} is already finished.")
        if match.is_bye:
            raise InvalidAdvancementError(f"Match {match.id} is a bye and advances automatically.")
        if not match.slots_filled:
            raise InvalidAdvancementError(f"Match {match.id} is still waiting for its participants.")

    def start_match(self, bracket: BracketModel, match_id: str) -> MatchModel:
        match = bracket.get_match(match_id)
        if match.status != MatchStatus.PENDING:
            raise InvalidAdvancementError(
                f"Match {match.id} cannot be started from status '{match.status.value}'."
            )
        match.transition_to(MatchStatus.ACTIVE)
        match.started_at = datetime.utcnow()
        return match

    def advance_winner(self, bracket: BracketModel, match_id: str, winner_id: str) -> List[MatchModel]:
        """
        Finishes a match with the given winner and pushes the result through the bracket.

        Returns every match that was mutated: the finished match first, then
        routed destinations (including bye matches that auto-complete).
        Nothing is changed when validation fails.
        """
        match = bracket.get_match(match_id)
        self._check_playable(match)
        if not match.involves(winner_id):
            raise InvalidAdvancementError(f"Participant {winner_id} is not playing in match {match.id}.")

        self._finish(match, winner_id)
        changed = [match] + self._propagate(bracket, match)
        self._settle_points_format(bracket)

        logger.info("Match %s won by %s in tournament %s", match.id, winner_id, bracket.tournament_id)
        if bracket.champion_id:
            logger.info("Tournament %s champion: %s", bracket.tournament_id, bracket.champion_id)
        return changed

    def record_draw(self, bracket: BracketModel, match_id: str) -> MatchModel:
        if bracket.format not in DRAW_FORMATS:
            raise InvalidAdvancementError(f"Draws are not allowed in {bracket.format.value} brackets.")
        match = bracket.get_match(match_id)
        self._check_playable(match)

        match.is_draw = True
        self._finish(match, None)
        self._settle_points_format(bracket)
        logger.info("Match %s drawn in tournament %s", match.id, bracket.tournament_id)
        return match

    @staticmethod
    def _finish(match: MatchModel, winner_id: Optional[str]) -> None:
        match.winner_id = winner_id
        match.transition_to(MatchStatus.FINISHED)
        match.completed_at = datetime.utcnow()

    def _propagate(self, bracket: BracketModel, match: MatchModel) -> List[MatchModel]:
        changed: List[MatchModel] = []

        if match.next_match_id:
            destination = bracket.get_match(match.next_match_id)
            destination.set_slot(match.winner_to_player_slot, match.winner_id)
            changed.append(destination)
            if destination.is_bye:
                self._finish(destination, match.winner_id)
                changed.extend(self._propagate(bracket, destination))
            elif destination.slots_filled:
                destination.transition_to(MatchStatus.PENDING)
        elif bracket.format in ELIMINATION_FORMATS:
            bracket.champion_id = match.winner_id

        loser = match.loser_id
        if loser and match.loser_next_match_id:
            destination = bracket.get_match(match.loser_next_match_id)
            destination.set_slot(match.loser_to_player_slot, loser)
            if destination.slots_filled:
                destination.transition_to(MatchStatus.PENDING)
            changed.append(destination)

        return changed

    def _settle_points_format(self, bracket: BracketModel) -> None:
        """Round robin and Swiss brackets are complete once the final round is fully played."""
        if bracket.format not in DRAW_FORMATS or not bracket.matches:
            return
        if any(not m.is_finished for m in bracket.matches):
            return
        last_round = max(m.round_number for m in bracket.matches)
        if bracket.format == TournamentFormat.SWISS and last_round < bracket.total_rounds:
            return

        player_ids: List[str] = []
        for m in bracket.matches:
            for pid in (m.player1_id, m.player2_id):
                if pid and pid not in player_ids:
                    player_ids.append(pid)
        scores = self.swiss_service.calculate_scores(player_ids, bracket.matches)
        # Ties on points go to the better seed
        bracket.champion_id = max(player_ids, key=lambda pid: (scores[pid], -bracket.seed_index(pid)))

    @staticmethod
    def is_loser_eliminated(bracket: BracketModel, match: MatchModel) -> bool:
        if bracket.format == TournamentFormat.SINGLE_ELIMINATION:
            return True
        if bracket.format == TournamentFormat.DOUBLE_ELIMINATION:
            return match.loser_next_match_id is None
        return False
