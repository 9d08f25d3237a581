import random
from typing import List, Optional, TypeVar

from arena.models.tournament_model import ParticipantModel, SeedingMethod

T = TypeVar("T")


def shuffle(items: List[T], rng: Optional[random.Random] = None) -> List[T]:
    """Fisher-Yates shuffle into a new list."""
    rng = rng or random.Random()
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = rng.randint(0, i)
        result[i], result[j] = result[j], result[i]
    return result


def seed_participants(
    participants: List[ParticipantModel],
    method: SeedingMethod,
    rng: Optional[random.Random] = None,
) -> List[ParticipantModel]:
    """
    Orders participants for bracket construction. Never mutates the input list.

    - random: uniform shuffle
    - elo: rating descending, ties keep input order
    - manual: declared seed ascending
    """
    if len(participants) < 2:
        return list(participants)

    method = SeedingMethod(method)
    if method == SeedingMethod.RANDOM:
        return shuffle(participants, rng)
    if method == SeedingMethod.ELO:
        # sorted() is stable, so equal ratings keep registration order
        return sorted(participants, key=lambda p: -p.rating)
    return sorted(participants, key=lambda p: p.seed)
