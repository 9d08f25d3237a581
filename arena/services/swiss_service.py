import logging
from datetime import datetime
from typing import List, Optional, Dict, Set, FrozenSet

from arena.core.exceptions import TournamentStateError
from arena.models.bracket_model import BracketModel, MatchModel, MatchStatus
from arena.models.tournament_model import ParticipantModel

logger = logging.getLogger(__name__)

WIN_POINTS = 1.0
DRAW_POINTS = 0.5


class SwissService:
    """Score-driven pairing for Swiss tournaments; rounds are generated one at a time."""

    @staticmethod
    def calculate_scores(player_ids: List[str], matches: List[MatchModel]) -> Dict[str, float]:
        """1 point per win or scored bye, half a point per draw. Unfinished matches count for nothing."""
        scores: Dict[str, float] = {pid: 0.0 for pid in player_ids}
        for match in matches:
            if not match.is_finished:
                continue
            if match.is_draw:
                for pid in (match.player1_id, match.player2_id):
                    if pid in scores:
                        scores[pid] += DRAW_POINTS
            elif match.winner_id in scores:
                scores[match.winner_id] += WIN_POINTS
        return scores

    @staticmethod
    def _played_pairs(matches: List[MatchModel]) -> Set[FrozenSet[str]]:
        return {
            frozenset((m.player1_id, m.player2_id))
            for m in matches
            if m.player1_id and m.player2_id
        }

    def pair_round(self,
                   tournament_id: str,
                   participants: List[ParticipantModel],
                   round_number: int,
                   prior_matches: List[MatchModel],
                   best_of: int = 1) -> List[MatchModel]:
        """
        Pairs one Swiss round. Players are ranked by score (ties keep the input
        order) and each takes the first lower-ranked player it has not met yet.
        With an odd field the lowest-ranked player who has not had a bye sits
        out with a scored bye.
        """
        player_ids = [p.user_id for p in participants]
        scores = self.calculate_scores(player_ids, prior_matches)
        ranked = sorted(player_ids, key=lambda pid: -scores[pid])

        played = self._played_pairs(prior_matches)
        had_bye = {m.player1_id for m in prior_matches if m.is_bye}

        bye_player: Optional[str] = None
        if len(ranked) % 2 == 1:
            bye_player = next((pid for pid in reversed(ranked) if pid not in had_bye), ranked[-1])
            ranked.remove(bye_player)

        matches: List[MatchModel] = []
        paired: Set[str] = set()
        for i, player in enumerate(ranked):
            if player in paired:
                continue
            opponent = next(
                (c for c in ranked[i + 1:] if c not in paired and frozenset((player, c)) not in played),
                None,
            )
            if opponent is None:
                logger.warning("No legal Swiss opponent for %s in round %d", player, round_number)
                continue
            paired.update((player, opponent))
            matches.append(MatchModel(
                id=f"swiss_{round_number}_{len(matches) + 1}",
                tournament_id=tournament_id,
                round_number=round_number,
                match_in_round=len(matches) + 1,
                player1_id=player,
                player2_id=opponent,
                best_of=best_of,
                status=MatchStatus.PENDING,
            ))

        if bye_player:
            matches.append(MatchModel(
                id=f"swiss_{round_number}_{len(matches) + 1}",
                tournament_id=tournament_id,
                round_number=round_number,
                match_in_round=len(matches) + 1,
                player1_id=bye_player,
                winner_id=bye_player,
                best_of=best_of,
                status=MatchStatus.FINISHED,
                completed_at=datetime.utcnow(),
                is_bye=True,
            ))

        return matches

    def next_round(self, bracket: BracketModel, participants: List[ParticipantModel]) -> List[MatchModel]:
        current_round = max((m.round_number for m in bracket.matches), default=0)
        if current_round >= bracket.total_rounds:
            raise TournamentStateError(
                f"All {bracket.total_rounds} Swiss rounds have already been paired."
            )
        unfinished = [m.id for m in bracket.matches if m.round_number == current_round and not m.is_finished]
        if unfinished:
            raise TournamentStateError(
                f"Round {current_round} still has unfinished matches: {', '.join(unfinished)}"
            )

        best_of = bracket.matches[0].best_of if bracket.matches else 1
        new_matches = self.pair_round(
            bracket.tournament_id,
            [p for p in participants if p.is_active],
            current_round + 1,
            bracket.matches,
            best_of=best_of,
        )
        bracket.add_matches(new_matches)
        logger.info("Paired Swiss round %d for tournament %s: %d matches",
                    current_round + 1, bracket.tournament_id, len(new_matches))
        return new_matches
