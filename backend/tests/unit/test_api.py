"""HTTP surface tests with FastAPI's TestClient and a fake provider."""

import json
import time
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from roadtrip.api import routes
from roadtrip.config import Settings
from roadtrip.main import app
from roadtrip.models import JobSpec, UpstreamError
from roadtrip.services.jobs import InMemoryJobStore, RedisJobStore
from roadtrip.services.source_client import SourceQueryClient

from tests.unit.helpers import RoutingTextService, SleepRecorder, route_payload, waypoint_json

CITIES = ["Valence", "Grenoble", "Montelimar", "Nice", "Orange", "Marseille"]

ITINERARY = json.dumps({"days": [{"day": 1, "city": "Valence", "title": "Old town", "activities": [], "tips": []}]})


@pytest.fixture
def text_service() -> RoutingTextService:
    return RoutingTextService(
        {
            "adventure": route_payload(CITIES),
            "food": route_payload(CITIES[::-1]),
            "itinerary": ITINERARY,
        }
    )


@pytest.fixture
def client(monkeypatch, text_service):
    settings = Settings()
    monkeypatch.setattr(routes, "get_settings", lambda: settings)
    monkeypatch.setattr(routes, "_job_store", InMemoryJobStore())
    monkeypatch.setattr(routes, "_text_service", text_service)
    monkeypatch.setattr(routes, "_source_client", SourceQueryClient(text_service, settings, sleep=SleepRecorder()))
    monkeypatch.setattr(routes, "_orchestrator", None)
    with TestClient(app) as test_client:
        yield test_client


def wait_for_job(client: TestClient, job_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/api/route-status/{job_id}").json()
        if body["status"] != "processing":
            return body
        time.sleep(0.02)
    raise AssertionError(f"job {job_id} still processing after {timeout}s")


class TestHealthAndSources:
    def test_health(self, client) -> None:
        assert client.get("/health").json() == {"status": "healthy"}

    def test_sources(self, client) -> None:
        sources = client.get("/api/sources").json()
        assert [s["id"] for s in sources] == ["adventure", "culture", "food", "hidden-gems"]
        assert sources[0]["color"] == "#34C759"


class TestGenerateRoute:
    def test_full_flow(self, client) -> None:
        response = client.post(
            "/api/generate-route",
            json={"destination": "Lyon", "stops": 3, "agents": ["adventure", "food"], "budget": "mid"},
        )
        assert response.status_code == 202
        job_id = response.json()["job_id"]
        assert response.json()["status"] == "processing"

        body = wait_for_job(client, job_id)
        assert body["status"] == "completed"
        assert body["error"] is None
        assert body["progress"]["completed"] == 2
        assert body["progress"]["percent_complete"] == 100

        route = body["route"]
        assert route["origin"] == "Aix-en-Provence"
        assert route["destination"] == "Lyon"
        assert route["total_stops"] == 3
        assert route["budget"] == "mid"
        assert [r["source_id"] for r in route["results"]] == ["best-overall", "adventure", "food"]
        assert len(route["results"][0]["recommendations"]["waypoints"]) == 3

    def test_custom_origin_and_duplicate_agents(self, client, text_service) -> None:
        response = client.post(
            "/api/generate-route",
            json={"destination": "Lyon", "origin": "Marseille", "stops": 2, "agents": ["food", "food"]},
        )
        body = wait_for_job(client, response.json()["job_id"])

        assert body["route"]["origin"] == "Marseille"
        assert [r["source_id"] for r in body["route"]["results"]] == ["food"]
        assert text_service.calls == ["food"]

    def test_unknown_agent(self, client) -> None:
        response = client.post("/api/generate-route", json={"destination": "Lyon", "agents": ["space"]})
        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize(
        "payload",
        [
            {"agents": ["food"]},
            {"destination": "Lyon", "agents": []},
            {"destination": "Lyon", "agents": ["food"], "stops": 11},
            {"destination": "Lyon", "agents": ["food"], "budget": "platinum"},
        ],
    )
    def test_invalid_request(self, client, payload) -> None:
        response = client.post("/api/generate-route", json=payload)
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestRouteStatus:
    def test_unknown_job(self, client) -> None:
        response = client.get("/api/route-status/does-not-exist")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "JOB_NOT_FOUND"

    def test_route_hidden_while_processing(self, client) -> None:
        store = routes.get_job_store()
        job_id = client.portal.call(store.create, JobSpec(destination="Lyon", stops=2, sources=["food"]), "Aix")
        body = client.get(f"/api/route-status/{job_id}").json()
        assert body["status"] == "processing"
        assert body["route"] is None
        assert body["progress"]["total"] == 1


class TestRouteQueries:
    ROUTE = [waypoint_json("Aix-en-Provence"), waypoint_json("Orange"), waypoint_json("Lyon")]

    def test_insertion_cost(self, client) -> None:
        response = client.post(
            "/api/route/insertion-cost",
            json={"route": self.ROUTE, "city": waypoint_json("Valence")},
        )
        body = response.json()
        assert response.status_code == 200
        assert body["position"] == 2
        assert body["detour_km"] >= 0
        assert body["route_km"] > 250

    def test_insertion_cost_without_coordinates(self, client) -> None:
        response = client.post(
            "/api/route/insertion-cost",
            json={"route": self.ROUTE, "city": {"name": "Atlantis"}},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_insert_landmark(self, client) -> None:
        response = client.post(
            "/api/route/insert-landmark",
            json={"route": self.ROUTE, "candidates": [waypoint_json("Nice"), waypoint_json("Valence")]},
        )
        body = response.json()
        assert body["success"] is True
        assert body["inserted"]["name"] == "Valence"
        assert [c["name"] for c in body["route"]] == ["Aix-en-Provence", "Orange", "Valence", "Lyon"]

    def test_insert_landmark_nothing_to_insert(self, client) -> None:
        response = client.post(
            "/api/route/insert-landmark",
            json={"route": self.ROUTE, "candidates": [waypoint_json("Orange")]},
        )
        body = response.json()
        assert body["success"] is False
        assert body["inserted"] is None


class TestItinerary:
    def test_itinerary(self, client) -> None:
        response = client.post(
            "/api/itinerary",
            json={"source": "culture", "cities": ["Aix-en-Provence", "Valence", "Lyon"], "days": 2},
        )
        assert response.status_code == 200
        assert response.json()["itinerary"]["days"][0]["city"] == "Valence"

    def test_unknown_source(self, client) -> None:
        response = client.post("/api/itinerary", json={"source": "space", "cities": ["Lyon"]})
        assert response.status_code == 400

    def test_upstream_failure(self, client, text_service) -> None:
        text_service._responses["itinerary"] = UpstreamError("invalid api key")
        response = client.post("/api/itinerary", json={"source": "food", "cities": ["Lyon"], "days": 1})
        assert response.status_code == 502
        assert response.json()["error"]["code"] == "UPSTREAM_ERROR"


class TestShutdown:
    @pytest.mark.asyncio
    async def test_redis_store_is_disconnected_not_cleared(self, monkeypatch) -> None:
        redis_client = AsyncMock()
        monkeypatch.setattr(routes, "_orchestrator", None)
        monkeypatch.setattr(routes, "_text_service", None)
        monkeypatch.setattr(routes, "_job_store", RedisJobStore(client=redis_client))

        await routes.shutdown_services()

        redis_client.aclose.assert_awaited_once()
        redis_client.scan.assert_not_awaited()
        redis_client.delete.assert_not_awaited()
        assert routes._job_store is None

    @pytest.mark.asyncio
    async def test_in_memory_store_is_emptied(self, monkeypatch) -> None:
        store = InMemoryJobStore()
        await store.create(JobSpec(destination="Lyon", stops=2, sources=["food"]), origin="Aix")
        monkeypatch.setattr(routes, "_orchestrator", None)
        monkeypatch.setattr(routes, "_text_service", None)
        monkeypatch.setattr(routes, "_job_store", store)

        await routes.shutdown_services()

        assert len(store) == 0
