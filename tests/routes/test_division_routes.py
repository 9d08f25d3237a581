import pytest
from fastapi.testclient import TestClient

from arena.api.dependencies import InMemoryStore, get_store
from arena.main import app
from arena.models.division_model import DivisionTier, UserDivisionStatus


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def client(store: InMemoryStore):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def seed_status(store: InMemoryStore, user_id: str, tier: DivisionTier, mmr: int, division_mmr: int) -> None:
    store.division_statuses[user_id] = UserDivisionStatus(
        user_id=user_id, current_division=tier, current_mmr=mmr, division_mmr=division_mmr
    )


class TestDivisionRoutes:

    def test_list_divisions(self, client: TestClient):
        response = client.get("/divisions/")
        assert response.status_code == 200
        tiers = [d["tier"] for d in response.json()]
        assert tiers == ["bronze", "silver", "gold", "platinum", "diamond", "master"]

    def test_mmr_change(self, client: TestClient):
        response = client.post(
            "/divisions/mmr-change",
            json={"user_mmr": 1500, "opponent_mmr": 1500, "result": "win", "accuracy": 65},
        )
        assert response.status_code == 200
        assert response.json() == {"mmr_change": 16}

    def test_unknown_user_status_is_404(self, client: TestClient):
        response = client.get("/divisions/nobody")
        assert response.status_code == 404

    def test_placement_then_ranked(self, client: TestClient, store: InMemoryStore):
        game = {"result": "win", "accuracy": 90, "reaction_time": 200}
        for remaining in range(9, 0, -1):
            body = client.post("/divisions/u1/matches", json=game).json()
            assert body["in_placement"] is True
            assert body["placement_matches_remaining"] == remaining

        placed = client.post("/divisions/u1/matches", json=game).json()
        assert placed["in_placement"] is False
        assert placed["status"]["current_division"] == "master"
        assert placed["events"][0]["type"] == "placement"

        ranked = client.post("/divisions/u1/matches", json={**game, "opponent_mmr": 3300, "current_streak": 0})
        assert ranked.status_code == 200
        assert ranked.json()["mmr_change"] == 19
        assert client.get("/divisions/u1").json()["current_mmr"] == 3319

    def test_leaderboard(self, client: TestClient, store: InMemoryStore):
        seed_status(store, "a", DivisionTier.SILVER, 1300, 25)
        seed_status(store, "b", DivisionTier.SILVER, 1500, 75)
        seed_status(store, "c", DivisionTier.GOLD, 1700, 25)

        response = client.get("/divisions/leaderboard", params={"tier": "silver"})
        assert response.status_code == 200
        assert [e["user_id"] for e in response.json()] == ["b", "a"]
