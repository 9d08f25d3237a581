import pytest
from pydantic import ValidationError

from arena.core.config import Settings
from arena.core.exceptions import ArenaError, DivisionStatusMissingError
from arena.models.division_model import (
    DemotionShield,
    DivisionChangeType,
    DivisionTier,
    GameData,
    MatchResult,
    PromotionProgress,
    SeasonStats,
    UserDivisionStatus,
)
from arena.services.division_service import DivisionService, next_tier, previous_tier, round_half_up


@pytest.fixture
def division_service():
    return DivisionService(config=Settings())


def make_status(tier: DivisionTier, mmr: int, wins: int = 0, streak: int = 0,
                shield_games: int = 0, accuracy: float = 0.0, user_id: str = "u1") -> UserDivisionStatus:
    service = DivisionService()
    return UserDivisionStatus(
        user_id=user_id,
        current_division=tier,
        current_mmr=mmr,
        division_mmr=service.calculate_division_mmr(mmr, tier),
        promotion_progress=PromotionProgress(current_wins=wins, current_streak=streak),
        demotion_shield=DemotionShield(is_active=shield_games > 0, games_remaining=shield_games),
        season_stats=SeasonStats(highest_division=tier, average_accuracy=accuracy),
    )


def game(result: MatchResult, accuracy: float = 65.0, streak: int = 0, opponent_mmr=None) -> GameData:
    return GameData(result=result, accuracy=accuracy, reaction_time=250, current_streak=streak,
                    opponent_mmr=opponent_mmr)


class TestDivisionLookups:

    @pytest.mark.parametrize("mmr,tier", [
        (0, DivisionTier.BRONZE),
        (1199, DivisionTier.BRONZE),
        (1200, DivisionTier.SILVER),
        (1999, DivisionTier.GOLD),
        (2400, DivisionTier.DIAMOND),
        (3000, DivisionTier.MASTER),
        (5000, DivisionTier.MASTER),
    ])
    def test_division_for_mmr(self, division_service: DivisionService, mmr, tier):
        assert division_service.get_division_for_mmr(mmr) == tier

    def test_division_mmr_is_band_percentage(self, division_service: DivisionService):
        assert division_service.calculate_division_mmr(1400, DivisionTier.SILVER) == 50
        assert division_service.calculate_division_mmr(1200, DivisionTier.SILVER) == 0
        assert division_service.calculate_division_mmr(1100, DivisionTier.SILVER) == 0
        assert division_service.calculate_division_mmr(1700, DivisionTier.SILVER) == 100

    @pytest.mark.parametrize("rating,tier", [
        (95, DivisionTier.MASTER),
        (80, DivisionTier.DIAMOND),
        (70, DivisionTier.PLATINUM),
        (60, DivisionTier.GOLD),
        (45, DivisionTier.SILVER),
        (44, DivisionTier.BRONZE),
    ])
    def test_recommended_division(self, division_service: DivisionService, rating, tier):
        assert division_service.get_recommended_division(rating) == tier

    def test_tier_neighbours(self):
        assert next_tier(DivisionTier.BRONZE) == DivisionTier.SILVER
        assert next_tier(DivisionTier.MASTER) is None
        assert previous_tier(DivisionTier.BRONZE) is None
        assert previous_tier(DivisionTier.MASTER) == DivisionTier.DIAMOND

    def test_six_contiguous_bands(self, division_service: DivisionService):
        divisions = division_service.list_divisions()
        assert [d.tier for d in divisions] == [
            DivisionTier.BRONZE, DivisionTier.SILVER, DivisionTier.GOLD,
            DivisionTier.PLATINUM, DivisionTier.DIAMOND, DivisionTier.MASTER,
        ]
        for lower, upper in zip(divisions, divisions[1:]):
            assert lower.max_mmr == upper.min_mmr


class TestCalculateMmrChange:

    def test_even_match(self, division_service: DivisionService):
        assert division_service.calculate_mmr_change(1500, 1500, MatchResult.WIN, game(MatchResult.WIN)) == 16
        assert division_service.calculate_mmr_change(1500, 1500, MatchResult.LOSS, game(MatchResult.LOSS)) == -16
        assert division_service.calculate_mmr_change(1500, 1500, MatchResult.DRAW, game(MatchResult.DRAW)) == 0

    def test_upset_win_is_positive(self, division_service: DivisionService):
        change = division_service.calculate_mmr_change(1200, 1600, MatchResult.WIN, game(MatchResult.WIN))
        assert 16 < change <= 50

    def test_loss_to_weaker_opponent_is_negative(self, division_service: DivisionService):
        change = division_service.calculate_mmr_change(1600, 1200, MatchResult.LOSS, game(MatchResult.LOSS))
        assert -50 <= change < -16

    def test_change_is_capped(self, division_service: DivisionService):
        data = game(MatchResult.WIN, accuracy=95, streak=10)
        assert division_service.calculate_mmr_change(1000, 3000, MatchResult.WIN, data) == 50
        data = game(MatchResult.LOSS, accuracy=95, streak=-10)
        assert division_service.calculate_mmr_change(3000, 1000, MatchResult.LOSS, data) == -50

    def test_accuracy_multiplier(self, division_service: DivisionService):
        sharp = division_service.calculate_mmr_change(1500, 1500, MatchResult.WIN, game(MatchResult.WIN, accuracy=90))
        sloppy = division_service.calculate_mmr_change(1500, 1500, MatchResult.WIN, game(MatchResult.WIN, accuracy=40))
        assert sharp == 19  # 16 * 1.2 = 19.2
        assert sloppy == 13  # 16 * 0.8 = 12.8

    def test_rounding_is_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(-2.5) == -2
        assert round_half_up(12.49) == 12


class TestPromotionEligibility:

    def test_all_clauses_met(self, division_service: DivisionService):
        status = make_status(DivisionTier.BRONZE, 1150, wins=3, streak=2)
        assert division_service.check_promotion_eligibility(status)

    @pytest.mark.parametrize("kwargs", [
        {"mmr": 1150, "wins": 2, "streak": 2},
        {"mmr": 1150, "wins": 3, "streak": 1},
        {"mmr": 900, "wins": 3, "streak": 2},
    ])
    def test_any_missing_clause_blocks(self, division_service: DivisionService, kwargs):
        status = make_status(DivisionTier.BRONZE, **kwargs)
        assert not division_service.check_promotion_eligibility(status)

    def test_accuracy_gate(self, division_service: DivisionService):
        status = make_status(DivisionTier.SILVER, 1550, wins=4, streak=3, accuracy=60)
        assert not division_service.check_promotion_eligibility(status)
        status.season_stats.average_accuracy = 65
        assert division_service.check_promotion_eligibility(status)

    def test_top_tier_never_promotes(self, division_service: DivisionService):
        status = make_status(DivisionTier.MASTER, 3590, wins=20, streak=20, accuracy=99)
        assert not division_service.check_promotion_eligibility(status)


class TestDemotionRisk:

    def test_low_division_mmr_is_at_risk(self, division_service: DivisionService):
        assert division_service.check_demotion_risk(make_status(DivisionTier.SILVER, 1250))

    def test_shield_suppresses_risk(self, division_service: DivisionService):
        assert not division_service.check_demotion_risk(make_status(DivisionTier.SILVER, 1250, shield_games=3))

    def test_bottom_tier_is_never_at_risk(self, division_service: DivisionService):
        assert not division_service.check_demotion_risk(make_status(DivisionTier.BRONZE, 10))

    def test_comfortable_mmr_is_safe(self, division_service: DivisionService):
        assert not division_service.check_demotion_risk(make_status(DivisionTier.SILVER, 1400))


class TestRecordMatch:

    def test_missing_status_raises(self, division_service: DivisionService):
        with pytest.raises(DivisionStatusMissingError):
            division_service.record_match(None, game(MatchResult.WIN), user_id="ghost")

    def test_does_not_mutate_input(self, division_service: DivisionService):
        status = make_status(DivisionTier.SILVER, 1400)
        division_service.record_match(status, game(MatchResult.WIN))
        assert status.current_mmr == 1400
        assert status.season_stats.games_played == 0

    def test_win_updates_stats_and_progress(self, division_service: DivisionService):
        status = make_status(DivisionTier.SILVER, 1400)
        update = division_service.record_match(status, game(MatchResult.WIN, accuracy=70))

        assert update.mmr_change == 16
        assert update.status.current_mmr == 1416
        assert update.status.division_mmr == 54
        stats = update.status.season_stats
        assert (stats.games_played, stats.wins, stats.losses) == (1, 1, 0)
        assert stats.win_rate == 1.0
        assert stats.average_accuracy == 70
        assert stats.current_streak == 1
        progress = update.status.promotion_progress
        assert (progress.current_wins, progress.current_streak, progress.wins_needed) == (1, 1, 4)
        assert update.events == []

    def test_loss_streak_tracking(self, division_service: DivisionService):
        status = make_status(DivisionTier.SILVER, 1400)
        for _ in range(3):
            status = division_service.record_match(status, game(MatchResult.LOSS)).status
        assert status.season_stats.current_streak == -3
        assert status.season_stats.longest_loss_streak == 3
        assert status.promotion_progress.current_streak == 0

    def test_mmr_never_drops_below_zero(self, division_service: DivisionService):
        update = division_service.record_match(make_status(DivisionTier.BRONZE, 10), game(MatchResult.LOSS))
        assert update.status.current_mmr == 0
        assert update.mmr_change == -16

    def test_promotion(self, division_service: DivisionService):
        status = make_status(DivisionTier.BRONZE, 1150, wins=2, streak=1)
        update = division_service.record_match(status, game(MatchResult.WIN))

        assert update.promoted
        new_status = update.status
        assert new_status.current_division == DivisionTier.SILVER
        assert new_status.current_mmr == 1200
        assert new_status.division_mmr == 0
        assert new_status.demotion_shield.is_active
        assert new_status.demotion_shield.games_remaining == 5
        assert new_status.season_stats.highest_division == DivisionTier.SILVER
        assert new_status.promotion_progress.current_wins == 0
        assert new_status.promotion_progress.wins_needed == 4
        assert [e.type for e in new_status.history] == [DivisionChangeType.PROMOTION]
        assert new_status.history[0].from_division == DivisionTier.BRONZE

    def test_no_promotion_without_streak(self, division_service: DivisionService):
        status = make_status(DivisionTier.BRONZE, 1150, wins=2, streak=0)
        update = division_service.record_match(status, game(MatchResult.WIN))
        assert not update.promoted
        assert update.status.current_division == DivisionTier.BRONZE

    def test_shielded_bronze_player_keeps_tier(self, division_service: DivisionService):
        status = make_status(DivisionTier.BRONZE, 1190, shield_games=2)
        update = division_service.record_match(status, game(MatchResult.LOSS))

        assert update.status.current_division == DivisionTier.BRONZE
        assert update.status.demotion_shield.games_remaining == 1
        assert not update.demoted

    def test_shield_holds_until_it_runs_out(self, division_service: DivisionService):
        status = make_status(DivisionTier.SILVER, 1205, shield_games=2)

        first = division_service.record_match(status, game(MatchResult.LOSS))
        assert first.status.current_mmr == 1189
        assert first.status.current_division == DivisionTier.SILVER
        assert first.status.division_mmr == 0
        assert first.status.demotion_shield.games_remaining == 1

        second = division_service.record_match(first.status, game(MatchResult.LOSS))
        assert second.status.current_division == DivisionTier.SILVER
        assert not second.status.demotion_shield.is_active
        assert second.events == []

        third = division_service.record_match(second.status, game(MatchResult.LOSS))
        assert third.demoted
        assert third.status.current_division == DivisionTier.BRONZE
        assert third.status.current_mmr == 1199
        assert third.status.division_mmr == 100
        assert third.status.demotion_shield == DemotionShield()
        assert third.status.history[-1].type == DivisionChangeType.DEMOTION

    def test_at_risk_inside_the_band_is_not_demoted(self, division_service: DivisionService):
        status = make_status(DivisionTier.SILVER, 1260)
        update = division_service.record_match(status, game(MatchResult.LOSS))

        assert update.status.current_mmr == 1244
        assert update.status.division_mmr == 11
        assert division_service.check_demotion_risk(update.status)
        assert update.status.current_division == DivisionTier.SILVER
        assert not update.demoted

    def test_history_entries_are_frozen(self, division_service: DivisionService):
        status = make_status(DivisionTier.BRONZE, 1150, wins=2, streak=1)
        entry = division_service.record_match(status, game(MatchResult.WIN)).status.history[0]
        with pytest.raises(ValidationError):
            entry.reason = "edited"


class TestPlacement:

    def test_placement_assigns_division_after_ten_matches(self, division_service: DivisionService):
        state = division_service.start_placement("u9")
        assert state.matches_remaining == 10

        data = GameData(result=MatchResult.WIN, accuracy=90, reaction_time=200)
        for _ in range(9):
            assert division_service.record_placement_match(state, data) is None
        status = division_service.record_placement_match(state, data)

        # 0.5 * 90 + 0.3 * 88.9 + 0.2 * 100 = 91.7
        assert status.current_division == DivisionTier.MASTER
        assert status.current_mmr == 3300
        assert status.division_mmr == 50
        assert status.demotion_shield.games_remaining == 10
        assert status.season_stats.games_played == 10
        assert status.season_stats.longest_win_streak == 10
        assert status.history[0].type == DivisionChangeType.PLACEMENT

    def test_weak_placement_lands_in_bronze(self, division_service: DivisionService):
        state = division_service.start_placement("u9")
        status = None
        for i in range(10):
            result = MatchResult.WIN if i % 2 == 0 else MatchResult.LOSS
            status = division_service.record_placement_match(
                state, GameData(result=result, accuracy=50, reaction_time=600)
            )
        assert status.current_division == DivisionTier.BRONZE
        assert status.current_mmr == 600

    def test_assessment_breakdown(self, division_service: DivisionService):
        state = division_service.start_placement("u9")
        for _ in range(10):
            division_service.record_placement_match(
                state, GameData(result=MatchResult.LOSS, accuracy=80, reaction_time=375)
            )
        assessment = division_service.assess_skill(state)
        assert assessment.skill_breakdown == {"accuracy": 80.0, "speed": 50.0, "win_rate": 0.0}
        assert assessment.overall_skill_rating == 55
        assert assessment.recommended_division == DivisionTier.SILVER
        assert assessment.confidence == 100

    def test_extra_placement_match_is_rejected(self, division_service: DivisionService):
        state = division_service.start_placement("u9")
        data = GameData(result=MatchResult.WIN, accuracy=70, reaction_time=300)
        for _ in range(10):
            division_service.record_placement_match(state, data)
        with pytest.raises(ArenaError):
            division_service.record_placement_match(state, data)


class TestLeaderboard:

    def test_ranks_by_mmr_within_tier(self, division_service: DivisionService):
        statuses = [
            make_status(DivisionTier.SILVER, 1300, user_id="a"),
            make_status(DivisionTier.SILVER, 1500, user_id="b"),
            make_status(DivisionTier.GOLD, 1700, user_id="c"),
        ]
        board = division_service.build_leaderboard(statuses, DivisionTier.SILVER)
        assert [(e.rank, e.user_id) for e in board] == [(1, "b"), (2, "a")]

        overall = division_service.build_leaderboard(statuses)
        assert [e.user_id for e in overall] == ["c", "b", "a"]
