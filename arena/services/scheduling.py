"""Advisory schedule projection. Nothing else in the engine enforces these times."""
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from arena.core.config import Settings
from arena.models.bracket_model import BracketSide, MatchModel, ScheduleEntry

_SIDE_ORDER = {None: 0, BracketSide.WINNERS: 0, BracketSide.LOSERS: 1, BracketSide.GRAND_FINALS: 2}


def calculate_match_time(
    config: Settings,
    tournament_start: datetime,
    round_number: int,
    position_index: int,
    side: Optional[BracketSide] = None,
) -> datetime:
    """
    Start + one (match duration + round gap) step per earlier round + a fixed
    stagger per match inside the round. Losers bracket rounds sit one step later
    than the winners round with the same number.
    """
    step = config.MATCH_DURATION_MINUTES + config.ROUND_GAP_MINUTES
    if side == BracketSide.LOSERS:
        minutes = round_number * step
    else:
        minutes = (round_number - 1) * step
    minutes += position_index * config.MATCH_STAGGER_MINUTES
    return tournament_start + timedelta(minutes=minutes)


def assign_match_times(config: Settings, tournament_start: datetime, matches: List[MatchModel]) -> None:
    for match in matches:
        match.scheduled_time = calculate_match_time(
            config, tournament_start, match.round_number, match.match_in_round - 1, match.bracket
        )


def build_schedule(config: Settings, tournament_start: datetime, matches: List[MatchModel]) -> List[ScheduleEntry]:
    groups: Dict[Tuple[int, int], List[MatchModel]] = {}
    for match in matches:
        groups.setdefault((match.round_number, _SIDE_ORDER[match.bracket]), []).append(match)

    schedule: List[ScheduleEntry] = []
    for key in sorted(groups):
        round_matches = sorted(groups[key], key=lambda m: m.match_in_round)
        times = [
            m.scheduled_time or calculate_match_time(
                config, tournament_start, m.round_number, m.match_in_round - 1, m.bracket
            )
            for m in round_matches
        ]
        schedule.append(
            ScheduleEntry(
                round_number=key[0],
                bracket=round_matches[0].bracket,
                match_ids=[m.id for m in round_matches],
                estimated_start_time=min(times),
                estimated_duration=len(round_matches) * config.MATCH_DURATION_MINUTES,
            )
        )
    return schedule
