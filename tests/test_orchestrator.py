import pytest

from core.enums import FitnessLevel, Modification, PlanSource
from core.exceptions import (
    ConfigurationError,
    InvalidRequestError,
    NetworkError,
    RateLimitedError,
    UpstreamTimeoutError,
)
from core.schemas import Completion, UserPreferences
from tests.conftest import FakeTextClient, make_response


@pytest.mark.asyncio
async def test_generate_returns_ai_plan(make_orchestrator) -> None:
    client = FakeTextClient(make_response())
    orchestrator = make_orchestrator(client)

    plan = await orchestrator.generate(["abs"])

    assert plan.source == PlanSource.AI
    assert plan.title == "Core Burner"
    assert plan.target_body_parts == ["abs"]
    assert "rectus abdominis" in client.prompts[0]
    assert "beginner" in client.prompts[0]
    assert len(orchestrator.errors) == 0


@pytest.mark.asyncio
async def test_identical_selection_is_served_from_cache(make_orchestrator) -> None:
    client = FakeTextClient(make_response())
    orchestrator = make_orchestrator(client)

    first = await orchestrator.generate(["abs", "chest"])
    second = await orchestrator.generate(["chest", "abs"])

    assert len(client.prompts) == 1
    assert second.id == first.id


@pytest.mark.asyncio
async def test_regenerate_bypasses_cache(make_orchestrator) -> None:
    client = FakeTextClient(make_response(), make_response(workoutTitle="Harder Burner"))
    orchestrator = make_orchestrator(client)

    await orchestrator.generate(["abs"])
    plan = await orchestrator.regenerate(["abs"], [Modification.HARDER])

    assert plan.title == "Harder Burner"
    assert len(client.prompts) == 2


@pytest.mark.asyncio
async def test_regenerate_applies_modifications(make_orchestrator) -> None:
    client = FakeTextClient(make_response())
    orchestrator = make_orchestrator(client)
    preferences = UserPreferences(fitness_level=FitnessLevel.intermediate, preferred_duration=45)

    await orchestrator.regenerate(["legs"], iter([Modification.HARDER, Modification.SHORTER]), preferences)

    assert "Fitness level: advanced" in client.prompts[0]
    assert "Available time: 30 minutes" in client.prompts[0]


@pytest.mark.asyncio
async def test_malformed_response_falls_back(make_orchestrator) -> None:
    orchestrator = make_orchestrator(FakeTextClient("Sorry, I cannot help with that"))

    plan = await orchestrator.generate(["chest"])

    assert plan.source == PlanSource.FALLBACK
    assert "(reason: malformed_json)" in plan.description
    stats = orchestrator.error_stats()
    assert stats.total == 1
    assert stats.by_kind == {"malformed_json": 1}


@pytest.mark.asyncio
async def test_fallback_is_not_cached(make_orchestrator) -> None:
    client = FakeTextClient(NetworkError("connection reset"), make_response())
    orchestrator = make_orchestrator(client)

    first = await orchestrator.generate(["abs"])
    second = await orchestrator.generate(["abs"])

    assert first.is_fallback
    assert "(reason: network_error)" in first.description
    assert second.source == PlanSource.AI


@pytest.mark.asyncio
async def test_timeout_falls_back(make_orchestrator) -> None:
    orchestrator = make_orchestrator(FakeTextClient(UpstreamTimeoutError(timeout=30)))

    plan = await orchestrator.generate(["back"])

    assert plan.is_fallback
    assert orchestrator.errors.recent()[0].kind == "timeout"


@pytest.mark.asyncio
async def test_rate_limit_is_propagated(make_orchestrator) -> None:
    orchestrator = make_orchestrator(FakeTextClient(RateLimitedError(retry_after=12)))

    with pytest.raises(RateLimitedError) as exc_info:
        await orchestrator.generate(["abs"])

    assert exc_info.value.retry_after == 12
    assert orchestrator.error_stats().by_kind == {"rate_limit": 1}


@pytest.mark.asyncio
async def test_configuration_error_is_propagated(make_orchestrator) -> None:
    orchestrator = make_orchestrator(FakeTextClient(ConfigurationError()))

    with pytest.raises(ConfigurationError):
        await orchestrator.generate(["abs"])


@pytest.mark.asyncio
async def test_unknown_selection_is_rejected(make_orchestrator) -> None:
    client = FakeTextClient()
    orchestrator = make_orchestrator(client)

    with pytest.raises(InvalidRequestError):
        await orchestrator.generate(["tail", "wings"])

    assert client.prompts == []


@pytest.mark.asyncio
async def test_truncated_response_is_retried_with_smaller_request(make_orchestrator) -> None:
    truncated = Completion(text=make_response()[:150], finish_reason="length")
    client = FakeTextClient(truncated, make_response())
    orchestrator = make_orchestrator(client)

    plan = await orchestrator.generate(["abs", "legs"])

    assert plan.source == PlanSource.AI
    assert len(client.prompts) == 2
    assert "quadriceps" in client.prompts[0]
    assert "quadriceps" not in client.prompts[1]
    assert [record.kind for record in orchestrator.errors.recent()] == ["truncated"]
    assert orchestrator.errors.recent()[0].context["retried"] is True


@pytest.mark.asyncio
async def test_truncation_without_retry_falls_back(make_orchestrator) -> None:
    truncated = Completion(text=make_response()[:150], finish_reason="length")
    client = FakeTextClient(truncated)
    orchestrator = make_orchestrator(client, retry_on_truncation=False)

    plan = await orchestrator.generate(["abs"])

    assert plan.is_fallback
    assert "(reason: truncated)" in plan.description
    assert len(client.prompts) == 1


@pytest.mark.asyncio
async def test_calls_are_spaced_by_min_interval(make_orchestrator, sleeps) -> None:
    ticks = iter([100.0, 100.25, 100.25])
    client = FakeTextClient(make_response(), make_response())
    orchestrator = make_orchestrator(client, min_interval=1.0, clock=lambda: next(ticks))

    await orchestrator.generate(["abs"])
    await orchestrator.generate(["legs"])

    assert sleeps == [pytest.approx(0.75)]


@pytest.mark.asyncio
async def test_progress_is_reported_in_order(make_orchestrator) -> None:
    seen: list[int] = []

    async def on_progress(percent: int, message: str) -> None:
        seen.append(percent)

    orchestrator = make_orchestrator(FakeTextClient(make_response()))

    await orchestrator.generate(["abs"], on_progress=on_progress)

    assert seen == [10, 30, 80, 100]


@pytest.mark.asyncio
async def test_failing_progress_callback_does_not_break_generation(make_orchestrator) -> None:
    def on_progress(percent: int, message: str) -> None:
        raise RuntimeError("listener gone")

    orchestrator = make_orchestrator(FakeTextClient(make_response()))

    plan = await orchestrator.generate(["abs"], on_progress=on_progress)

    assert plan.source == PlanSource.AI


@pytest.mark.asyncio
async def test_error_log_keeps_most_recent_entries(make_orchestrator) -> None:
    failures = [NetworkError(f"failure {index}") for index in range(4)]
    orchestrator = make_orchestrator(FakeTextClient(*failures), error_log_size=3)

    for part in ["abs", "legs", "chest", "back"]:
        await orchestrator.generate([part])

    recent = orchestrator.errors.recent()
    assert [record.message for record in recent] == ["failure 1", "failure 2", "failure 3"]
    assert orchestrator.error_stats().last_24h == 3
