"""
Division ladder: Elo-style MMR deltas, promotion/demotion with a demotion
shield, placement matches and leaderboards.

MMR change:
    E = 1 / (1 + 10^((opponent - user) / 400))
    delta = K * (actual - E) * accuracy_mult * streak_mult
rounded half-up to an integer and capped at +/- MAX_MMR_CHANGE.
"""
import logging
import math
from datetime import datetime
from typing import List, Optional, Dict

from arena.core.config import Settings, settings as default_settings
from arena.core.exceptions import ArenaError, DivisionStatusMissingError
from arena.models.division_model import (
    DIVISION_ORDER,
    DemotionShield,
    DemotionThreshold,
    DivisionChangeType,
    DivisionHistoryEntry,
    DivisionModel,
    DivisionPrivileges,
    DivisionRewards,
    DivisionTier,
    DivisionUpdate,
    GameData,
    LeaderboardEntry,
    MatchResult,
    PlacementState,
    PromotionProgress,
    PromotionRequirement,
    RewardBundle,
    SeasonStats,
    SkillAssessment,
    UserDivisionStatus,
)

logger = logging.getLogger(__name__)

# Reaction times (ms) mapped to a 0-100 speed score during placement
FAST_REACTION_MS = 150.0
SLOW_REACTION_MS = 600.0

DIVISIONS: List[DivisionModel] = [
    DivisionModel(
        tier=DivisionTier.BRONZE,
        name="Bronze",
        description="Starting your competitive journey",
        min_mmr=0,
        max_mmr=1200,
        promotion_requirement=PromotionRequirement(wins_required=3, streak_required=2),
        demotion_threshold=DemotionThreshold(max_losses=5),
        rewards=DivisionRewards(
            season_end_rewards=RewardBundle(xp=500, points=100),
            monthly_rewards=RewardBundle(xp=200, points=50),
        ),
    ),
    DivisionModel(
        tier=DivisionTier.SILVER,
        name="Silver",
        description="Developing solid fundamentals",
        min_mmr=1200,
        max_mmr=1600,
        promotion_requirement=PromotionRequirement(wins_required=4, streak_required=3, min_accuracy=65),
        demotion_threshold=DemotionThreshold(max_losses=4, streak=3),
        rewards=DivisionRewards(
            season_end_rewards=RewardBundle(xp=750, points=150, cosmetics=["silver_trail"]),
            monthly_rewards=RewardBundle(xp=300, points=75),
        ),
        privileges=DivisionPrivileges(custom_cosmetics=True),
    ),
    DivisionModel(
        tier=DivisionTier.GOLD,
        name="Gold",
        description="Above average skill level",
        min_mmr=1600,
        max_mmr=2000,
        promotion_requirement=PromotionRequirement(wins_required=5, streak_required=3, min_accuracy=70),
        demotion_threshold=DemotionThreshold(max_losses=4, streak=4),
        rewards=DivisionRewards(
            season_end_rewards=RewardBundle(
                xp=1000, points=200, cosmetics=["gold_trail", "gold_crosshair"], titles=["Sharpshooter"]
            ),
            monthly_rewards=RewardBundle(xp=400, points=100),
        ),
        privileges=DivisionPrivileges(exclusive_tournaments=True, custom_cosmetics=True, advanced_analytics=True),
    ),
    DivisionModel(
        tier=DivisionTier.PLATINUM,
        name="Platinum",
        description="High skill competitive player",
        min_mmr=2000,
        max_mmr=2400,
        promotion_requirement=PromotionRequirement(wins_required=6, streak_required=4, min_accuracy=75),
        demotion_threshold=DemotionThreshold(max_losses=3, streak=5),
        rewards=DivisionRewards(
            season_end_rewards=RewardBundle(
                xp=1500,
                points=300,
                cosmetics=["platinum_trail", "platinum_crosshair", "platinum_badge"],
                titles=["Elite Marksman"],
            ),
            monthly_rewards=RewardBundle(xp=600, points=150),
        ),
        privileges=DivisionPrivileges(
            exclusive_tournaments=True, priority_matchmaking=True, custom_cosmetics=True, advanced_analytics=True
        ),
    ),
    DivisionModel(
        tier=DivisionTier.DIAMOND,
        name="Diamond",
        description="Elite competitive player",
        min_mmr=2400,
        max_mmr=3000,
        promotion_requirement=PromotionRequirement(wins_required=7, streak_required=5, min_accuracy=80),
        demotion_threshold=DemotionThreshold(max_losses=3, streak=6),
        rewards=DivisionRewards(
            season_end_rewards=RewardBundle(
                xp=2000,
                points=500,
                cosmetics=["diamond_trail", "diamond_crosshair", "diamond_badge", "diamond_avatar"],
                titles=["Diamond Elite", "Precision Master"],
            ),
            monthly_rewards=RewardBundle(xp=800, points=200),
        ),
        privileges=DivisionPrivileges(
            exclusive_tournaments=True, priority_matchmaking=True, custom_cosmetics=True, advanced_analytics=True
        ),
    ),
    DivisionModel(
        tier=DivisionTier.MASTER,
        name="Master",
        description="Top tier competitive elite",
        min_mmr=3000,
        max_mmr=3600,  # open-ended in practice; caps the division_mmr scale
        promotion_requirement=PromotionRequirement(wins_required=10, streak_required=7, min_accuracy=85),
        demotion_threshold=DemotionThreshold(max_losses=2, streak=8),
        rewards=DivisionRewards(
            season_end_rewards=RewardBundle(
                xp=3000,
                points=1000,
                cosmetics=["master_trail", "master_crosshair", "master_badge", "master_avatar", "master_victory_pose"],
                titles=["Grandmaster", "Aim Legend", "Untouchable"],
            ),
            monthly_rewards=RewardBundle(xp=1200, points=300),
        ),
        privileges=DivisionPrivileges(
            exclusive_tournaments=True, priority_matchmaking=True, custom_cosmetics=True, advanced_analytics=True
        ),
    ),
]

_DIVISIONS_BY_TIER: Dict[DivisionTier, DivisionModel] = {d.tier: d for d in DIVISIONS}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def next_tier(tier: DivisionTier) -> Optional[DivisionTier]:
    index = DIVISION_ORDER.index(DivisionTier(tier))
    return DIVISION_ORDER[index + 1] if index < len(DIVISION_ORDER) - 1 else None


def previous_tier(tier: DivisionTier) -> Optional[DivisionTier]:
    index = DIVISION_ORDER.index(DivisionTier(tier))
    return DIVISION_ORDER[index - 1] if index > 0 else None


class DivisionService:
    def __init__(self, config: Settings = default_settings):
        self.config = config

    # --- Division lookups ---------------------------------------------------

    @staticmethod
    def list_divisions() -> List[DivisionModel]:
        return list(DIVISIONS)

    @staticmethod
    def get_division(tier: DivisionTier) -> DivisionModel:
        return _DIVISIONS_BY_TIER[DivisionTier(tier)]

    @staticmethod
    def get_division_for_mmr(mmr: float) -> DivisionTier:
        for division in DIVISIONS:
            if division.contains(mmr):
                return division.tier
        return DivisionTier.MASTER if mmr >= DIVISIONS[-1].min_mmr else DivisionTier.BRONZE

    def calculate_division_mmr(self, mmr: float, tier: DivisionTier) -> int:
        """Position of mmr inside the tier's band as a 0-100 percentage."""
        division = self.get_division(tier)
        percent = round_half_up((mmr - division.min_mmr) / division.band_width * 100)
        return max(0, min(100, percent))

    @staticmethod
    def get_recommended_division(skill_rating: float) -> DivisionTier:
        if skill_rating >= 90:
            return DivisionTier.MASTER
        if skill_rating >= 80:
            return DivisionTier.DIAMOND
        if skill_rating >= 70:
            return DivisionTier.PLATINUM
        if skill_rating >= 60:
            return DivisionTier.GOLD
        if skill_rating >= 45:
            return DivisionTier.SILVER
        return DivisionTier.BRONZE

    # --- MMR ----------------------------------------------------------------

    def calculate_mmr_change(self,
                             user_mmr: float,
                             opponent_mmr: float,
                             result: MatchResult,
                             game_data: Optional[GameData] = None) -> int:
        result = MatchResult(result)
        expected = 1.0 / (1.0 + math.pow(10, (opponent_mmr - user_mmr) / 400.0))
        actual = {MatchResult.WIN: 1.0, MatchResult.LOSS: 0.0, MatchResult.DRAW: 0.5}[result]

        accuracy_multiplier = 1.0
        streak = 0
        if game_data is not None:
            if game_data.accuracy > 80:
                accuracy_multiplier = 1.2
            elif game_data.accuracy < 50:
                accuracy_multiplier = 0.8
            streak = game_data.current_streak or 0
        streak_multiplier = min(1.5, 1 + abs(streak) * 0.1)

        change = round_half_up(self.config.K_FACTOR * (actual - expected) * accuracy_multiplier * streak_multiplier)
        return max(-self.config.MAX_MMR_CHANGE, min(self.config.MAX_MMR_CHANGE, change))

    # --- Promotion / demotion ----------------------------------------------

    def check_promotion_eligibility(self, status: UserDivisionStatus) -> bool:
        if next_tier(status.current_division) is None:
            return False
        requirement = self.get_division(status.current_division).promotion_requirement
        progress = status.promotion_progress

        has_wins = progress.current_wins >= requirement.wins_required
        has_streak = not requirement.streak_required or progress.current_streak >= requirement.streak_required
        has_accuracy = not requirement.min_accuracy or status.season_stats.average_accuracy >= requirement.min_accuracy
        return has_wins and has_streak and has_accuracy and status.division_mmr >= self.config.PROMOTION_DIVISION_MMR

    def check_demotion_risk(self, status: UserDivisionStatus) -> bool:
        if previous_tier(status.current_division) is None or status.demotion_shield.is_active:
            return False
        floor = self.get_division(status.current_division).min_mmr
        return status.division_mmr <= self.config.DEMOTION_DIVISION_MMR or status.current_mmr < floor

    def record_match(self, status: Optional[UserDivisionStatus], game_data: GameData,
                     user_id: Optional[str] = None) -> DivisionUpdate:
        """
        Applies one ranked match to a copy of the user's status.

        Demotion is judged against the shield as it stood before this game;
        the shield then burns one game and only after that is promotion checked.

        Only an MMR below the tier floor demotes. A low division_mmr inside the
        band is what check_demotion_risk warns about, it never demotes by itself.
        """
        if status is None:
            raise DivisionStatusMissingError(user_id or "unknown")

        status = status.model_copy(deep=True)
        result = MatchResult(game_data.result)
        opponent_mmr = game_data.opponent_mmr if game_data.opponent_mmr is not None else status.current_mmr
        if game_data.current_streak is None:
            game_data = game_data.model_copy(update={"current_streak": status.season_stats.current_streak})

        mmr_change = self.calculate_mmr_change(status.current_mmr, opponent_mmr, result, game_data)
        status.current_mmr = max(0, status.current_mmr + mmr_change)
        status.division_mmr = self.calculate_division_mmr(status.current_mmr, status.current_division)

        self._update_season_stats(status.season_stats, result, game_data)
        self._update_promotion_progress(status, result)

        events: List[DivisionHistoryEntry] = []
        shield_was_active = status.demotion_shield.is_active
        floor = self.get_division(status.current_division).min_mmr
        lower = previous_tier(status.current_division)
        if not shield_was_active and lower is not None and status.current_mmr < floor:
            events.append(self._demote(status, lower, mmr_change, game_data.game_mode))

        if shield_was_active:
            shield = status.demotion_shield
            shield.games_remaining = max(0, shield.games_remaining - 1)
            shield.is_active = shield.games_remaining > 0

        if not events and self.check_promotion_eligibility(status):
            events.append(self._promote(status, next_tier(status.current_division), mmr_change, game_data.game_mode))

        status.last_updated = datetime.utcnow()
        return DivisionUpdate(status=status, mmr_change=mmr_change, events=events)

    def _promote(self, status: UserDivisionStatus, tier: DivisionTier, mmr_change: int,
                 game_mode: Optional[str]) -> DivisionHistoryEntry:
        entry = DivisionHistoryEntry(
            from_division=status.current_division,
            to_division=tier,
            type=DivisionChangeType.PROMOTION,
            reason="Promotion requirements met",
            mmr_change=mmr_change,
            game_mode=game_mode,
        )
        division = self.get_division(tier)
        status.current_division = tier
        status.current_mmr = division.min_mmr
        status.division_mmr = 0
        status.promotion_progress = PromotionProgress(
            wins_needed=division.promotion_requirement.wins_required,
            current_streak=max(0, status.promotion_progress.current_streak),
        )
        status.demotion_shield = DemotionShield(is_active=True, games_remaining=self.config.PROMOTION_SHIELD_GAMES)
        if tier.rank > status.season_stats.highest_division.rank:
            status.season_stats.highest_division = tier
        status.history.append(entry)
        logger.info("User %s promoted %s -> %s", status.user_id, entry.from_division.value, tier.value)
        return entry

    def _demote(self, status: UserDivisionStatus, tier: DivisionTier, mmr_change: int,
                game_mode: Optional[str]) -> DivisionHistoryEntry:
        entry = DivisionHistoryEntry(
            from_division=status.current_division,
            to_division=tier,
            type=DivisionChangeType.DEMOTION,
            reason="MMR below division floor",
            mmr_change=mmr_change,
            game_mode=game_mode,
        )
        division = self.get_division(tier)
        status.current_division = tier
        status.current_mmr = division.max_mmr - 1
        status.division_mmr = 100
        status.promotion_progress = PromotionProgress(wins_needed=division.promotion_requirement.wins_required)
        status.demotion_shield = DemotionShield()
        status.history.append(entry)
        logger.info("User %s demoted %s -> %s", status.user_id, entry.from_division.value, tier.value)
        return entry

    @staticmethod
    def _update_season_stats(stats: SeasonStats, result: MatchResult, game_data: GameData) -> None:
        previous_games = stats.games_played
        stats.games_played += 1
        if result == MatchResult.WIN:
            stats.wins += 1
            stats.current_streak = max(0, stats.current_streak) + 1
        elif result == MatchResult.LOSS:
            stats.losses += 1
            stats.current_streak = min(0, stats.current_streak) - 1
        else:
            stats.draws += 1
            stats.current_streak = 0
        stats.win_rate = stats.wins / stats.games_played
        stats.average_accuracy = (stats.average_accuracy * previous_games + game_data.accuracy) / stats.games_played
        stats.average_reaction_time = (
            stats.average_reaction_time * previous_games + game_data.reaction_time
        ) / stats.games_played
        stats.longest_win_streak = max(stats.longest_win_streak, stats.current_streak)
        stats.longest_loss_streak = max(stats.longest_loss_streak, -stats.current_streak)

    def _update_promotion_progress(self, status: UserDivisionStatus, result: MatchResult) -> None:
        progress = status.promotion_progress
        progress.wins_needed = self.get_division(status.current_division).promotion_requirement.wins_required
        if result == MatchResult.WIN:
            progress.current_wins += 1
            progress.current_streak += 1
        else:
            progress.current_streak = 0
        progress.is_in_promotion = (
            next_tier(status.current_division) is not None
            and status.division_mmr >= self.config.PROMOTION_DIVISION_MMR
        )

    # --- Placement ------------------------------------------------------------

    def start_placement(self, user_id: str) -> PlacementState:
        return PlacementState(user_id=user_id, matches_remaining=self.config.PLACEMENT_MATCHES)

    def record_placement_match(self, state: PlacementState, game_data: GameData) -> Optional[UserDivisionStatus]:
        """Returns the initial division status once the last placement match is in, else None."""
        if state.is_complete:
            raise ArenaError(f"Placement matches for user {state.user_id} are already complete.", status_code=409)

        result = MatchResult(game_data.result)
        state.matches_played += 1
        state.matches_remaining -= 1
        state.accuracies.append(game_data.accuracy)
        state.reaction_times.append(game_data.reaction_time)
        if result == MatchResult.WIN:
            state.wins += 1
            state.current_streak = max(0, state.current_streak) + 1
        elif result == MatchResult.LOSS:
            state.current_streak = min(0, state.current_streak) - 1
        else:
            state.current_streak = 0
        state.longest_win_streak = max(state.longest_win_streak, state.current_streak)
        state.longest_loss_streak = max(state.longest_loss_streak, -state.current_streak)

        if not state.is_complete:
            return None
        assessment = self.assess_skill(state, game_data.game_mode)
        return self.initial_status(state, assessment)

    def assess_skill(self, state: PlacementState, game_mode: Optional[str] = None) -> SkillAssessment:
        played = max(1, state.matches_played)
        accuracy = sum(state.accuracies) / len(state.accuracies) if state.accuracies else 0.0
        reaction = sum(state.reaction_times) / len(state.reaction_times) if state.reaction_times else SLOW_REACTION_MS
        speed = (SLOW_REACTION_MS - reaction) / (SLOW_REACTION_MS - FAST_REACTION_MS) * 100
        speed = max(0.0, min(100.0, speed))
        win_rate = state.wins / played

        overall = max(0, min(100, round_half_up(0.5 * accuracy + 0.3 * speed + 0.2 * win_rate * 100)))
        return SkillAssessment(
            user_id=state.user_id,
            game_mode=game_mode,
            overall_skill_rating=overall,
            skill_breakdown={"accuracy": accuracy, "speed": speed, "win_rate": win_rate * 100},
            recommended_division=self.get_recommended_division(overall),
            confidence=min(100, state.matches_played * 100 // self.config.PLACEMENT_MATCHES),
        )

    def initial_status(self, state: PlacementState, assessment: SkillAssessment) -> UserDivisionStatus:
        division = self.get_division(assessment.recommended_division)
        start_mmr = (division.min_mmr + division.max_mmr) // 2
        played = state.matches_played
        stats = SeasonStats(
            highest_division=division.tier,
            games_played=played,
            wins=state.wins,
            losses=played - state.wins,
            win_rate=state.wins / played if played else 0.0,
            average_accuracy=sum(state.accuracies) / len(state.accuracies) if state.accuracies else 0.0,
            average_reaction_time=(
                sum(state.reaction_times) / len(state.reaction_times) if state.reaction_times else 0.0
            ),
            current_streak=state.current_streak,
            longest_win_streak=state.longest_win_streak,
            longest_loss_streak=state.longest_loss_streak,
        )
        status = UserDivisionStatus(
            user_id=state.user_id,
            current_division=division.tier,
            current_mmr=start_mmr,
            division_mmr=self.calculate_division_mmr(start_mmr, division.tier),
            promotion_progress=PromotionProgress(wins_needed=division.promotion_requirement.wins_required),
            demotion_shield=DemotionShield(is_active=True, games_remaining=self.config.PLACEMENT_SHIELD_GAMES),
            season_stats=stats,
            history=[
                DivisionHistoryEntry(
                    to_division=division.tier,
                    type=DivisionChangeType.PLACEMENT,
                    reason=f"Placement complete (skill rating {assessment.overall_skill_rating})",
                    game_mode=assessment.game_mode,
                )
            ],
        )
        logger.info("User %s placed in %s at %d MMR", state.user_id, division.tier.value, start_mmr)
        return status

    # --- Leaderboards -----------------------------------------------------------

    @staticmethod
    def build_leaderboard(statuses: List[UserDivisionStatus],
                          tier: Optional[DivisionTier] = None) -> List[LeaderboardEntry]:
        pool = [s for s in statuses if tier is None or s.current_division == tier]
        pool.sort(key=lambda s: (-s.current_mmr, -s.season_stats.win_rate))
        return [
            LeaderboardEntry(
                rank=index,
                user_id=s.user_id,
                current_mmr=s.current_mmr,
                division_mmr=s.division_mmr,
                win_rate=s.season_stats.win_rate,
                games_played=s.season_stats.games_played,
            )
            for index, s in enumerate(pool, start=1)
        ]
