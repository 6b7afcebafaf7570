import random

import pytest

from core.cache.plan_storage import PROBE_KEY, PlanStorage, payload_size, probe_available_space, serialize, strip_images
from core.cache.stores import MemoryStore, entry_size
from core.enums import StorageTier
from core.exceptions import StorageCapacityExceeded
from core.generation.fallback import FallbackPlanSynthesizer
from core.schemas import WorkoutPlan

KEY = "generatedWorkout_current"
MB = 1024 * 1024


def plan_with_images(image_bytes: int = 0) -> WorkoutPlan:
    plan = FallbackPlanSynthesizer(random.Random(1)).synthesize(["abs"])
    if not image_bytes:
        return plan
    exercises = [
        exercise.model_copy(update={"image_url": f"https://images.test/{index}.png?sig=" + "a" * image_bytes})
        for index, exercise in enumerate(plan.exercises)
    ]
    return plan.model_copy(update={"exercises": exercises})


def stores(primary_quota: int = 5 * MB, secondary_quota: int = 10 * MB) -> tuple[MemoryStore, MemoryStore]:
    return MemoryStore("primary", primary_quota), MemoryStore("secondary", secondary_quota, ttl=3600)


def storage(primary: MemoryStore, secondary: MemoryStore, **kwargs) -> PlanStorage:
    kwargs.setdefault("primary_max_bytes", 2 * MB)
    kwargs.setdefault("secondary_max_bytes", 5 * MB)
    return PlanStorage(primary, secondary, **kwargs)


@pytest.mark.asyncio
async def test_small_plan_goes_to_primary() -> None:
    primary, secondary = stores()
    await secondary.set(KEY, "stale")
    plan = plan_with_images()

    result = await storage(primary, secondary).save(plan)

    assert result.stored
    assert result.tier == StorageTier.PRIMARY
    assert not result.stripped
    assert await primary.get(KEY) == serialize(plan)
    assert await secondary.get(KEY) is None
    assert await storage(primary, secondary).load() == plan


@pytest.mark.asyncio
async def test_full_primary_falls_through_to_secondary() -> None:
    primary, secondary = stores(primary_quota=200)
    await primary.set(KEY, "old")
    plan = plan_with_images()

    result = await storage(primary, secondary).save(plan)

    assert result.tier == StorageTier.SECONDARY
    assert await primary.get(KEY) is None
    loaded = await storage(primary, secondary).load()
    assert loaded == plan


@pytest.mark.asyncio
async def test_primary_ceiling_is_respected() -> None:
    primary, secondary = stores()
    plan = plan_with_images()
    size = payload_size(serialize(plan))

    result = await storage(primary, secondary, primary_max_bytes=size - 1).save(plan)

    assert result.tier == StorageTier.SECONDARY
    assert await primary.keys() == []


@pytest.mark.asyncio
async def test_oversized_plan_is_stored_without_images() -> None:
    primary, secondary = stores()
    plan = plan_with_images(image_bytes=4000)
    stripped_size = payload_size(serialize(strip_images(plan)))
    ceiling = stripped_size + 100

    result = await storage(primary, secondary, primary_max_bytes=ceiling, secondary_max_bytes=ceiling).save(plan)

    assert result.stored
    assert result.tier == StorageTier.STRIPPED
    assert result.stripped
    loaded = await storage(primary, secondary).load()
    assert loaded == strip_images(plan)
    assert all(exercise.image_url is None for exercise in loaded.exercises)


def test_inline_images_survive_stripping() -> None:
    plan = plan_with_images()
    exercises = [plan.exercises[0].model_copy(update={"image_url": "data:image/png;base64,AAAA"}), *plan.exercises[1:]]
    plan = plan.model_copy(update={"exercises": exercises})

    stripped = strip_images(plan)

    assert stripped.exercises[0].image_url == "data:image/png;base64,AAAA"


@pytest.mark.asyncio
async def test_plan_too_large_even_stripped_is_reported() -> None:
    primary, secondary = stores()
    plan = plan_with_images()

    result = await storage(primary, secondary, primary_max_bytes=100, secondary_max_bytes=100).save(plan)

    assert not result.stored
    assert result.reason == "too_large"
    assert await primary.keys() == []
    assert await secondary.keys() == []


@pytest.mark.asyncio
async def test_eviction_makes_room_for_stripped_plan() -> None:
    plan = plan_with_images(image_bytes=4000)
    stripped = serialize(strip_images(plan))
    ceiling = payload_size(stripped) + 100
    quota = entry_size(KEY, stripped) + entry_size("theme", "dark") + 5
    primary, secondary = stores(primary_quota=quota)
    await primary.set("theme", "dark")
    await primary.set("generatedWorkout_previous", "x" * 100)
    await primary.set("workoutErrorLogs", "[]")

    result = await storage(primary, secondary, primary_max_bytes=ceiling, secondary_max_bytes=ceiling).save(plan)

    assert result.stored
    assert result.tier == StorageTier.STRIPPED
    assert await primary.keys() == [KEY, "theme"]


@pytest.mark.asyncio
async def test_capacity_failure_does_not_raise() -> None:
    plan = plan_with_images(image_bytes=4000)
    ceiling = payload_size(serialize(strip_images(plan))) + 100
    primary, secondary = stores(primary_quota=64)

    result = await storage(primary, secondary, primary_max_bytes=ceiling, secondary_max_bytes=ceiling).save(plan)

    assert not result.stored
    assert result.reason == "capacity"


@pytest.mark.asyncio
async def test_load_prefers_primary() -> None:
    primary, secondary = stores()
    first = plan_with_images()
    second = plan_with_images()
    await primary.set(KEY, serialize(first))
    await secondary.set(KEY, serialize(second))

    loaded = await storage(primary, secondary).load()

    assert loaded is not None
    assert loaded.id == first.id


@pytest.mark.asyncio
async def test_corrupt_entry_is_discarded() -> None:
    primary, secondary = stores()
    plan = plan_with_images()
    await primary.set(KEY, "{not json")
    await secondary.set(KEY, serialize(plan))

    loaded = await storage(primary, secondary).load()

    assert loaded is not None
    assert loaded.id == plan.id
    assert await primary.get(KEY) is None


@pytest.mark.asyncio
async def test_load_returns_none_when_empty() -> None:
    primary, secondary = stores()

    assert await storage(primary, secondary).load() is None


@pytest.mark.asyncio
async def test_clear_and_usage() -> None:
    primary, secondary = stores()
    plan_storage = storage(primary, secondary)
    await plan_storage.save(plan_with_images())

    usage = await plan_storage.usage()
    assert usage["primary"].plan_keys == 1
    assert usage["primary"].used > 0
    assert usage["secondary"].plan_keys == 0

    await plan_storage.clear()
    assert await plan_storage.load() is None


@pytest.mark.asyncio
async def test_secondary_entries_expire() -> None:
    now = [0.0]
    secondary = MemoryStore("secondary", MB, ttl=10, clock=lambda: now[0])
    await secondary.set(KEY, "value")

    now[0] = 11.0

    assert await secondary.get(KEY) is None


@pytest.mark.asyncio
async def test_memory_store_enforces_quota() -> None:
    store = MemoryStore("primary", 50)
    await store.set("a", "x" * 20)

    with pytest.raises(StorageCapacityExceeded) as exc_info:
        await store.set("b", "x" * 40)

    assert exc_info.value.available == 29
    await store.set("a", "x" * 49)
    assert (await store.usage()).available == 0


@pytest.mark.asyncio
async def test_probe_reports_available_space_and_cleans_up() -> None:
    store = MemoryStore("primary", 10 * 1024)
    await store.set("a", "x" * 2999)

    available = await probe_available_space(store)

    assert available == 7 * 1024
    assert PROBE_KEY not in await store.keys()
    assert await store.get("a") == "x" * 2999
