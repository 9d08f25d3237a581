import pytest

from arena.core.exceptions import InvalidAdvancementError, MatchNotFoundError
from arena.models.bracket_model import BracketModel, BracketSide, MatchModel, MatchStatus
from arena.models.tournament_model import (
    BracketSettings,
    ParticipantModel,
    SeedingMethod,
    TournamentConfig,
    TournamentFormat,
)
from arena.services.advancement_service import AdvancementService
from arena.services.bracket_service import GRAND_FINALS_ID, BracketService
from arena.services.swiss_service import SwissService


def make_bracket(count: int, tournament_format: TournamentFormat) -> BracketModel:
    participants = [
        ParticipantModel(user_id=f"p{i}", username=f"Player {i}", rating=2000 - i * 10)
        for i in range(count)
    ]
    tournament = TournamentConfig(
        id="t1",
        name="Test Cup",
        format=tournament_format,
        bracket_settings=BracketSettings(seeding_method=SeedingMethod.ELO),
        participants=participants,
    )
    return BracketService().generate(tournament)


def play_out(service: AdvancementService, bracket: BracketModel, pick=lambda m: m.player1_id) -> int:
    """Plays pending matches in order until a champion emerges; returns the number of matches played."""
    played = 0
    while bracket.champion_id is None:
        pending = [m for m in bracket.matches if m.status == MatchStatus.PENDING]
        assert pending, "bracket stalled without a champion"
        match = pending[0]
        service.advance_winner(bracket, match.id, pick(match))
        played += 1
    return played


@pytest.fixture
def advancement_service():
    return AdvancementService()


class TestAdvanceWinnerSingleElimination:

    def test_round_two_fills_after_round_one(self, advancement_service: AdvancementService):
        bracket = make_bracket(8, TournamentFormat.SINGLE_ELIMINATION)
        for match in bracket.matches_in_round(1):
            advancement_service.advance_winner(bracket, match.id, match.player1_id)

        second_round = bracket.matches_in_round(2)
        assert len(second_round) == 2
        assert all(m.slots_filled for m in second_round)
        assert all(m.status == MatchStatus.PENDING for m in second_round)
        assert (second_round[0].player1_id, second_round[0].player2_id) == ("p0", "p2")

    def test_returns_finished_match_and_destination(self, advancement_service: AdvancementService):
        bracket = make_bracket(4, TournamentFormat.SINGLE_ELIMINATION)
        changed = advancement_service.advance_winner(bracket, "match_1", "p1")

        assert [m.id for m in changed] == ["match_1", "match_3"]
        finished = bracket.get_match("match_1")
        assert finished.status == MatchStatus.FINISHED
        assert finished.winner_id == "p1"
        assert finished.completed_at is not None
        assert bracket.get_match("match_3").player1_id == "p1"
        assert bracket.get_match("match_3").status == MatchStatus.WAITING

    def test_final_sets_champion(self, advancement_service: AdvancementService):
        bracket = make_bracket(4, TournamentFormat.SINGLE_ELIMINATION)
        advancement_service.advance_winner(bracket, "match_1", "p0")
        advancement_service.advance_winner(bracket, "match_2", "p3")
        advancement_service.advance_winner(bracket, "match_3", "p3")

        assert bracket.champion_id == "p3"
        assert bracket.is_complete

    def test_bye_match_auto_advances(self, advancement_service: AdvancementService):
        bracket = make_bracket(6, TournamentFormat.SINGLE_ELIMINATION)
        bye = next(m for m in bracket.matches if m.is_bye)
        feeder = next(m for m in bracket.matches if m.next_match_id == bye.id)

        changed = advancement_service.advance_winner(bracket, feeder.id, feeder.player2_id)

        assert bye in changed
        assert bye.status == MatchStatus.FINISHED
        assert bye.winner_id == feeder.player2_id
        final = bracket.get_match(bye.next_match_id)
        assert final.involves(feeder.player2_id)

    @pytest.mark.parametrize("count", [2, 3, 5, 6, 7, 9, 12])
    def test_play_out_uses_every_playable_match(self, advancement_service: AdvancementService, count):
        bracket = make_bracket(count, TournamentFormat.SINGLE_ELIMINATION)
        assert play_out(advancement_service, bracket) == count - 1
        assert bracket.champion_id == "p0"
        assert all(m.is_finished for m in bracket.matches)


class TestAdvanceWinnerErrors:

    def test_unknown_match(self, advancement_service: AdvancementService):
        bracket = make_bracket(4, TournamentFormat.SINGLE_ELIMINATION)
        with pytest.raises(MatchNotFoundError):
            advancement_service.advance_winner(bracket, "match_99", "p0")

    def test_unresolved_slots(self, advancement_service: AdvancementService):
        bracket = make_bracket(4, TournamentFormat.SINGLE_ELIMINATION)
        with pytest.raises(InvalidAdvancementError):
            advancement_service.advance_winner(bracket, "match_3", "p0")

    def test_winner_must_be_in_the_match(self, advancement_service: AdvancementService):
        bracket = make_bracket(4, TournamentFormat.SINGLE_ELIMINATION)
        with pytest.raises(InvalidAdvancementError):
            advancement_service.advance_winner(bracket, "match_1", "p3")
        assert bracket.get_match("match_1").status == MatchStatus.PENDING

    def test_second_call_raises_and_changes_nothing(self, advancement_service: AdvancementService):
        bracket = make_bracket(4, TournamentFormat.SINGLE_ELIMINATION)
        advancement_service.advance_winner(bracket, "match_1", "p0")
        snapshot = bracket.model_dump()

        with pytest.raises(InvalidAdvancementError):
            advancement_service.advance_winner(bracket, "match_1", "p1")
        assert bracket.model_dump() == snapshot

    def test_bye_match_cannot_be_reported(self, advancement_service: AdvancementService):
        bracket = make_bracket(6, TournamentFormat.SINGLE_ELIMINATION)
        bye = next(m for m in bracket.matches if m.is_bye)
        with pytest.raises(InvalidAdvancementError):
            advancement_service.advance_winner(bracket, bye.id, "p4")


class TestDoubleEliminationAdvancement:

    def test_winners_loser_drops_to_losers_bracket(self, advancement_service: AdvancementService):
        bracket = make_bracket(8, TournamentFormat.DOUBLE_ELIMINATION)
        changed = advancement_service.advance_winner(bracket, "w_match_1", "p0")

        losers_match = bracket.get_match(bracket.get_match("w_match_1").loser_next_match_id)
        assert losers_match in changed
        assert losers_match.bracket == BracketSide.LOSERS
        assert losers_match.involves("p1")

    @pytest.mark.parametrize("count", [2, 3, 4, 5, 6, 7, 8, 11])
    def test_play_out_reaches_a_champion(self, advancement_service: AdvancementService, count):
        bracket = make_bracket(count, TournamentFormat.DOUBLE_ELIMINATION)
        assert play_out(advancement_service, bracket) == 2 * count - 2
        assert all(m.is_finished for m in bracket.matches)
        assert bracket.champion_id == bracket.get_match(GRAND_FINALS_ID).winner_id

    def test_losers_bracket_champion_can_win(self, advancement_service: AdvancementService):
        bracket = make_bracket(4, TournamentFormat.DOUBLE_ELIMINATION)
        play_out(advancement_service, bracket, pick=lambda m: m.player2_id)

        grand_finals = bracket.get_match(GRAND_FINALS_ID)
        assert bracket.champion_id == grand_finals.player2_id

    def test_loser_elimination(self, advancement_service: AdvancementService):
        bracket = make_bracket(4, TournamentFormat.DOUBLE_ELIMINATION)
        winners_match = bracket.get_match("w_match_1")
        losers_match = bracket.get_match(winners_match.loser_next_match_id)

        assert not advancement_service.is_loser_eliminated(bracket, winners_match)
        assert advancement_service.is_loser_eliminated(bracket, losers_match)
        assert advancement_service.is_loser_eliminated(bracket, bracket.get_match(GRAND_FINALS_ID))


class TestStartMatchAndDraws:

    def test_start_match_moves_pending_to_active(self, advancement_service: AdvancementService):
        bracket = make_bracket(4, TournamentFormat.SINGLE_ELIMINATION)
        match = advancement_service.start_match(bracket, "match_1")

        assert match.status == MatchStatus.ACTIVE
        assert match.started_at is not None
        advancement_service.advance_winner(bracket, "match_1", "p1")
        assert match.status == MatchStatus.FINISHED

    def test_start_match_rejects_waiting_match(self, advancement_service: AdvancementService):
        bracket = make_bracket(4, TournamentFormat.SINGLE_ELIMINATION)
        with pytest.raises(InvalidAdvancementError):
            advancement_service.start_match(bracket, "match_3")

    def test_draws_rejected_in_elimination(self, advancement_service: AdvancementService):
        bracket = make_bracket(4, TournamentFormat.SINGLE_ELIMINATION)
        with pytest.raises(InvalidAdvancementError):
            advancement_service.record_draw(bracket, "match_1")

    def test_round_robin_draw_and_champion(self, advancement_service: AdvancementService):
        bracket = make_bracket(3, TournamentFormat.ROUND_ROBIN)
        matches = list(bracket.matches)

        drawn = advancement_service.record_draw(bracket, matches[0].id)
        assert drawn.is_draw
        assert drawn.winner_id is None
        assert drawn.loser_id is None
        assert bracket.champion_id is None

        for match in matches[1:]:
            winner = "p2" if match.involves("p2") else match.player1_id
            advancement_service.advance_winner(bracket, match.id, winner)
        assert bracket.champion_id == "p2"

    def test_points_tie_champion_is_the_better_seed(self, advancement_service: AdvancementService):
        # "b" is listed first in the only match but seeded below "a"
        bracket = BracketModel(
            tournament_id="t1",
            format=TournamentFormat.ROUND_ROBIN,
            total_rounds=1,
            seeding=["a", "b"],
            matches=[MatchModel(id="rr_match_1", tournament_id="t1", round_number=1, match_in_round=1,
                                player1_id="b", player2_id="a", status=MatchStatus.PENDING)],
        )
        advancement_service.record_draw(bracket, "rr_match_1")
        assert bracket.champion_id == "a"

    def test_swiss_points_tie_champion_is_the_better_seed(self, advancement_service: AdvancementService):
        bracket = make_bracket(4, TournamentFormat.SWISS)
        for match in bracket.matches_in_round(1):
            advancement_service.record_draw(bracket, match.id)
        participants = [ParticipantModel(user_id=pid, username=pid) for pid in bracket.seeding]
        bracket.add_matches(SwissService().pair_round("t1", participants, 2, bracket.matches))
        assert bracket.champion_id is None
        # p2 and p3 win round two and finish level on 1.5
        for match in bracket.matches_in_round(2):
            winner = "p2" if match.involves("p2") else "p3"
            advancement_service.advance_winner(bracket, match.id, winner)
        assert bracket.champion_id == "p2"
