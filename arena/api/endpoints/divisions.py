from typing import List, Optional

from fastapi import APIRouter, Depends

from arena.api.dependencies import InMemoryStore, get_division_service, get_store
from arena.models.division_model import DivisionModel, DivisionTier, GameData, LeaderboardEntry, UserDivisionStatus
from arena.schemas.division_schemas import DivisionMatchRead, MmrChangeRead, MmrChangeRequest
from arena.services.division_service import DivisionService

router = APIRouter()


@router.get("/", response_model=List[DivisionModel])
async def list_divisions_endpoint(service: DivisionService = Depends(get_division_service)):
    return service.list_divisions()


@router.post("/mmr-change", response_model=MmrChangeRead)
async def mmr_change_endpoint(
    request_in: MmrChangeRequest,
    service: DivisionService = Depends(get_division_service),
):
    game_data = GameData(
        result=request_in.result,
        opponent_mmr=request_in.opponent_mmr,
        accuracy=request_in.accuracy,
        current_streak=request_in.current_streak,
    )
    change = service.calculate_mmr_change(request_in.user_mmr, request_in.opponent_mmr, request_in.result, game_data)
    return MmrChangeRead(mmr_change=change)


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
async def leaderboard_endpoint(
    tier: Optional[DivisionTier] = None,
    store: InMemoryStore = Depends(get_store),
    service: DivisionService = Depends(get_division_service),
):
    with store.lock:
        statuses = list(store.division_statuses.values())
    return service.build_leaderboard(statuses, tier)


@router.post("/{user_id}/matches", response_model=DivisionMatchRead)
async def record_division_match_endpoint(
    user_id: str,
    game_in: GameData,
    store: InMemoryStore = Depends(get_store),
    service: DivisionService = Depends(get_division_service),
):
    """Ranked users get an MMR update; unranked users play through placement first."""
    with store.lock:
        status = store.division_statuses.get(user_id)
        if status is not None:
            update = service.record_match(status, game_in, user_id=user_id)
            store.division_statuses[user_id] = update.status
            return DivisionMatchRead(
                in_placement=False,
                status=update.status,
                mmr_change=update.mmr_change,
                events=update.events,
            )

        placement = store.placements.get(user_id) or service.start_placement(user_id)
        initial_status = service.record_placement_match(placement, game_in)
        if initial_status is None:
            store.placements[user_id] = placement
            return DivisionMatchRead(in_placement=True, placement_matches_remaining=placement.matches_remaining)

        store.placements.pop(user_id, None)
        store.division_statuses[user_id] = initial_status
        return DivisionMatchRead(in_placement=False, status=initial_status, events=initial_status.history)


@router.get("/{user_id}", response_model=UserDivisionStatus)
async def get_division_status_endpoint(user_id: str, store: InMemoryStore = Depends(get_store)):
    return store.get_division_status(user_id)
