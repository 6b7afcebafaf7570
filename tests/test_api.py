from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from core.exceptions import (
    ConfigurationError,
    RateLimitedError,
    UpstreamServiceError,
    UpstreamTimeoutError,
)
from core.services.persistence import InMemoryPersistence
from tests.conftest import FakeTextClient, make_response
from workout_api.api import app
from workout_api.application import PlanStorageRegistry
from workout_api.rate_limit import FixedWindowRateLimiter

WORKOUT_BODY = {
    "targetMuscles": ["rectus abdominis", "obliques"],
    "fitnessLevel": "beginner",
    "duration": 30,
    "equipment": ["bodyweight"],
    "goals": ["fitness"],
}


def client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def install(make_orchestrator):
    def factory(*responses: Any, limit: int = 10) -> FakeTextClient:
        text_client = FakeTextClient(*responses)
        orchestrator = make_orchestrator(text_client)
        app.state.text_client = text_client
        app.state.normalizer = orchestrator.normalizer
        app.state.orchestrator = orchestrator
        app.state.persistence = InMemoryPersistence()
        app.state.plan_storages = PlanStorageRegistry()
        app.state.rate_limiter = FixedWindowRateLimiter(limit, 3600, clock=lambda: 1000.0)
        return text_client

    return factory


@pytest.mark.asyncio
async def test_health(install) -> None:
    install()
    async with client() as ac:
        response = await ac.get("/health/")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_generate_workout_info(install) -> None:
    install()
    async with client() as ac:
        response = await ac.get("/api/generate-workout")

    assert response.status_code == 200
    assert response.json()["endpoint"] == "POST /api/generate-workout"


@pytest.mark.asyncio
async def test_generate_workout_returns_plan_with_rate_limit_headers(install) -> None:
    text_client = install(make_response(), limit=5)
    async with client() as ac:
        response = await ac.post("/api/generate-workout", json=WORKOUT_BODY)

    assert response.status_code == 200
    data = response.json()
    assert data["title"] == "Core Burner"
    assert data["source"] == "ai"
    assert data["totalDuration"] == 25
    assert data["exercises"][1]["reps"] == 15
    assert data["exercises"][0]["restTime"] == 60
    assert response.headers["X-RateLimit-Limit"] == "5"
    assert response.headers["X-RateLimit-Remaining"] == "4"
    assert "obliques" in text_client.prompts[0]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {**WORKOUT_BODY, "targetMuscles": []},
        {**WORKOUT_BODY, "duration": 500},
        {**WORKOUT_BODY, "fitnessLevel": "elite"},
        {key: value for key, value in WORKOUT_BODY.items() if key != "targetMuscles"},
    ],
)
async def test_invalid_request_is_rejected_before_calling_model(install, body) -> None:
    text_client = install()
    async with client() as ac:
        response = await ac.post("/api/generate-workout", json=body)

    assert response.status_code == 400
    assert response.json()["type"] == "validation_error"
    assert response.json()["error"] == "Invalid request"
    assert text_client.prompts == []


@pytest.mark.asyncio
async def test_local_rate_limit_returns_429(install) -> None:
    install(make_response(), limit=1)
    async with client() as ac:
        first = await ac.post("/api/generate-workout", json=WORKOUT_BODY)
        second = await ac.post("/api/generate-workout", json=WORKOUT_BODY)

    assert first.status_code == 200
    assert second.status_code == 429
    assert second.headers["Retry-After"] == "3600"
    assert second.headers["X-RateLimit-Remaining"] == "0"
    assert second.json()["type"] == "rate_limit"
    assert second.json()["retryAfter"] == 3600


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("outcome", "status", "kind"),
    [
        (RateLimitedError(retry_after=12), 429, "rate_limit"),
        (ConfigurationError(), 503, "configuration_error"),
        (UpstreamServiceError(upstream_status=500), 503, "api_error"),
        (UpstreamTimeoutError(timeout=30), 504, "timeout"),
        ("this is not json", 502, "malformed_json"),
        ("", 502, "empty_response"),
        (make_response(exercises=[]), 502, "empty_exercises"),
    ],
)
async def test_upstream_failures_map_to_status(install, outcome, status, kind) -> None:
    install(outcome)
    async with client() as ac:
        response = await ac.post("/api/generate-workout", json=WORKOUT_BODY)
        errors = await ac.get("/api/workouts/errors")

    assert response.status_code == status
    assert response.json()["type"] == kind
    assert errors.json()["byKind"] == {kind: 1}


@pytest.mark.asyncio
async def test_upstream_rate_limit_sets_retry_after(install) -> None:
    install(RateLimitedError(retry_after=12))
    async with client() as ac:
        response = await ac.post("/api/generate-workout", json=WORKOUT_BODY)

    assert response.headers["Retry-After"] == "12"


@pytest.mark.asyncio
async def test_workouts_endpoint_serves_fallback_on_failure(install) -> None:
    install(UpstreamTimeoutError(timeout=30))
    async with client() as ac:
        response = await ac.post("/api/workouts", json={"bodyParts": ["chest", "legs"]})

    assert response.status_code == 200
    data = response.json()
    assert data["source"] == "fallback"
    assert "(reason: timeout)" in data["description"]
    assert len(data["exercises"]) == 6


@pytest.mark.asyncio
async def test_workouts_endpoint_rejects_unknown_parts(install) -> None:
    install()
    async with client() as ac:
        response = await ac.post("/api/workouts", json={"bodyParts": ["wings"]})

    assert response.status_code == 400
    assert response.json()["type"] == "validation_error"


@pytest.mark.asyncio
async def test_workouts_endpoint_propagates_rate_limit(install) -> None:
    install(RateLimitedError(retry_after=30))
    async with client() as ac:
        response = await ac.post("/api/workouts", json={"bodyParts": ["abs"]})

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "30"


@pytest.mark.asyncio
async def test_generated_plan_is_kept_as_current_plan(install) -> None:
    install(make_response())
    async with client() as ac:
        created = await ac.post("/api/workouts", json={"bodyParts": ["abs"], "userId": "u1"})
        current = await ac.get("/api/users/u1/current-plan")
        usage = await ac.get("/api/users/u1/current-plan/usage")
        cleared = await ac.delete("/api/users/u1/current-plan")
        missing = await ac.get("/api/users/u1/current-plan")

    assert current.status_code == 200
    assert current.json()["id"] == created.json()["id"]
    assert usage.json()["primary"]["planKeys"] == 1
    assert cleared.status_code == 204
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_regenerate_uses_saved_preferences(install) -> None:
    text_client = install(make_response())
    async with client() as ac:
        saved = await ac.put(
            "/api/users/u1/preferences",
            json={"fitnessLevel": "beginner", "preferredDuration": 60, "availableEquipment": ["dumbbells"]},
        )
        response = await ac.post(
            "/api/workouts/regenerate",
            json={"bodyParts": ["arms"], "userId": "u1", "modifications": ["harder", "longer"]},
        )

    assert saved.status_code == 200
    assert response.status_code == 200
    prompt = text_client.prompts[0]
    assert "Fitness level: intermediate" in prompt
    assert "Available time: 75 minutes" in prompt
    assert "Equipment: dumbbells" in prompt


@pytest.mark.asyncio
async def test_regenerate_requires_modifications(install) -> None:
    install()
    async with client() as ac:
        response = await ac.post("/api/workouts/regenerate", json={"bodyParts": ["arms"], "modifications": []})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_user_plan_library(install) -> None:
    install(make_response())
    async with client() as ac:
        plan = (await ac.post("/api/workouts", json={"bodyParts": ["abs"]})).json()
        saved = await ac.post("/api/users/u1/plans", json=plan)
        listed = await ac.get("/api/users/u1/plans")
        rated = await ac.patch(f"/api/users/u1/plans/{plan['id']}", json={"rating": 5, "notes": "Great"})
        favorite = await ac.post("/api/users/u1/favorites", json={"planId": plan["id"]})
        favorites = await ac.get("/api/users/u1/favorites")
        session = await ac.post("/api/users/u1/history", json={"planId": plan["id"], "rating": 4})
        history = await ac.get("/api/users/u1/history")
        removed = await ac.delete(f"/api/users/u1/plans/{plan['id']}")
        gone = await ac.get(f"/api/users/u1/plans/{plan['id']}")

    assert saved.status_code == 201
    assert [item["id"] for item in listed.json()] == [plan["id"]]
    assert rated.json()["rating"] == 5
    assert rated.json()["notes"] == "Great"
    assert favorite.status_code == 201
    assert favorites.json()[0]["planId"] == plan["id"]
    assert session.status_code == 201
    assert session.json()["duration"] == plan["totalDuration"]
    assert history.json()[0]["rating"] == 4
    assert removed.status_code == 204
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_favorite_of_unknown_plan_is_404(install) -> None:
    install()
    async with client() as ac:
        response = await ac.post("/api/users/u1/favorites", json={"planId": "missing"})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_preferences_default_when_unset(install) -> None:
    install()
    async with client() as ac:
        response = await ac.get("/api/users/nobody/preferences")

    assert response.status_code == 200
    assert response.json()["fitnessLevel"] == "beginner"
    assert response.json()["preferredDuration"] == 30
