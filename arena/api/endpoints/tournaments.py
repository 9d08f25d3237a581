from typing import List, Dict

from fastapi import APIRouter, Depends, status

from arena.api.dependencies import InMemoryStore, get_store, get_tournament_service
from arena.models.bracket_model import BracketModel, MatchModel
from arena.models.tournament_model import ParticipantModel, TournamentConfig, TournamentStanding
from arena.schemas.tournament_schemas import MatchResultCreate, MatchResultRead, ParticipantCreate, TournamentCreate
from arena.services.tournament_service import TournamentService

router = APIRouter()


@router.post("/", response_model=TournamentConfig, status_code=status.HTTP_201_CREATED)
async def create_tournament_endpoint(
    tournament_in: TournamentCreate,
    store: InMemoryStore = Depends(get_store),
):
    tournament = TournamentConfig(**tournament_in.model_dump(exclude_none=True))
    with store.lock:
        store.tournaments[tournament.id] = tournament
    return tournament


@router.get("/{tournament_id}", response_model=TournamentConfig)
async def get_tournament_endpoint(tournament_id: str, store: InMemoryStore = Depends(get_store)):
    return store.get_tournament(tournament_id)


@router.post("/{tournament_id}/participants", response_model=ParticipantModel, status_code=status.HTTP_201_CREATED)
async def register_participant_endpoint(
    tournament_id: str,
    participant_in: ParticipantCreate,
    store: InMemoryStore = Depends(get_store),
    service: TournamentService = Depends(get_tournament_service),
):
    with store.lock:
        tournament = store.get_tournament(tournament_id)
        return service.register_participant(
            tournament,
            user_id=participant_in.user_id,
            username=participant_in.username,
            rating=participant_in.rating,
            seed=participant_in.seed,
        )


@router.delete("/{tournament_id}/participants/{user_id}", response_model=Dict[str, str])
async def unregister_participant_endpoint(
    tournament_id: str,
    user_id: str,
    store: InMemoryStore = Depends(get_store),
    service: TournamentService = Depends(get_tournament_service),
):
    with store.lock:
        service.unregister_participant(store.get_tournament(tournament_id), user_id)
    return {"message": f"User {user_id} withdrew from the tournament"}


@router.post("/{tournament_id}/start", response_model=BracketModel)
async def start_tournament_endpoint(
    tournament_id: str,
    store: InMemoryStore = Depends(get_store),
    service: TournamentService = Depends(get_tournament_service),
):
    with store.lock:
        tournament = store.get_tournament(tournament_id)
        bracket = service.start_tournament(tournament)
        store.brackets[tournament.id] = bracket
    return bracket


@router.get("/{tournament_id}/bracket", response_model=BracketModel)
async def get_bracket_endpoint(tournament_id: str, store: InMemoryStore = Depends(get_store)):
    return store.get_bracket(tournament_id)


@router.post("/{tournament_id}/matches/{match_id}/result", response_model=MatchResultRead)
async def record_result_endpoint(
    tournament_id: str,
    match_id: str,
    result_in: MatchResultCreate,
    store: InMemoryStore = Depends(get_store),
    service: TournamentService = Depends(get_tournament_service),
):
    with store.lock:
        tournament = store.get_tournament(tournament_id)
        bracket = store.get_bracket(tournament_id)
        changed = service.record_result(
            tournament, bracket, match_id, winner_id=result_in.winner_id, is_draw=result_in.is_draw
        )
        return MatchResultRead(
            changed_matches=changed,
            champion_id=bracket.champion_id,
            tournament_status=tournament.status.value,
        )


@router.post("/{tournament_id}/swiss/next-round", response_model=List[MatchModel])
async def next_swiss_round_endpoint(
    tournament_id: str,
    store: InMemoryStore = Depends(get_store),
    service: TournamentService = Depends(get_tournament_service),
):
    with store.lock:
        tournament = store.get_tournament(tournament_id)
        return service.next_swiss_round(tournament, store.get_bracket(tournament_id))


@router.get("/{tournament_id}/standings", response_model=List[TournamentStanding])
async def get_standings_endpoint(
    tournament_id: str,
    store: InMemoryStore = Depends(get_store),
    service: TournamentService = Depends(get_tournament_service),
):
    with store.lock:
        tournament = store.get_tournament(tournament_id)
        return service.compute_standings(tournament, store.get_bracket(tournament_id))
