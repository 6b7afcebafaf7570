from __future__ import annotations

from loguru import logger
from pydantic import ValidationError

from config.app_settings import settings
from core.cache.stores import KeyValueStore
from core.enums import StorageTier
from core.exceptions import StorageCapacityExceeded
from core.schemas import StorageResult, StorageUsage, WorkoutPlan

PROBE_KEY = "__storage_probe__"
PROBE_CHUNK = 1024


def strip_images(plan: WorkoutPlan) -> WorkoutPlan:
    """Drop external image URLs, keeping inline ``data:`` URIs."""
    exercises = [
        exercise.model_copy(update={"image_url": None})
        if exercise.image_url and not exercise.image_url.startswith("data:")
        else exercise
        for exercise in plan.exercises
    ]
    return plan.model_copy(update={"exercises": exercises})


def serialize(plan: WorkoutPlan) -> str:
    return plan.model_dump_json(by_alias=True)


def payload_size(payload: str) -> int:
    return len(payload.encode("utf-8"))


class PlanStorage:
    """Keeps the latest plan available across navigations using tiered fallback."""

    def __init__(
        self,
        primary: KeyValueStore,
        secondary: KeyValueStore,
        *,
        slot: str = "current",
        primary_max_bytes: int | None = None,
        secondary_max_bytes: int | None = None,
        key_prefix: str | None = None,
        error_log_key: str | None = None,
    ) -> None:
        self.primary = primary
        self.secondary = secondary
        self.primary_max_bytes = primary_max_bytes or settings.STORAGE_PRIMARY_MAX_BYTES
        self.secondary_max_bytes = secondary_max_bytes or settings.STORAGE_SECONDARY_MAX_BYTES
        self.key_prefix = key_prefix or settings.STORAGE_KEY_PREFIX
        self.error_log_key = error_log_key or settings.STORAGE_ERROR_LOG_KEY
        self.key = f"{self.key_prefix}{slot}"

    async def save(self, plan: WorkoutPlan) -> StorageResult:
        full = serialize(plan)
        full_size = payload_size(full)

        if await self._try_write(self.primary, full, full_size, self.primary_max_bytes, StorageTier.PRIMARY):
            await self._discard(self.secondary)
            return StorageResult(stored=True, tier=StorageTier.PRIMARY, size=full_size)

        if await self._try_write(self.secondary, full, full_size, self.secondary_max_bytes, StorageTier.SECONDARY):
            await self._discard(self.primary)
            return StorageResult(stored=True, tier=StorageTier.SECONDARY, size=full_size)

        stripped = serialize(strip_images(plan))
        stripped_size = payload_size(stripped)
        if stripped_size > self.primary_max_bytes:
            logger.warning(f"plan_storage_failed plan_id={plan.id} reason=too_large size={stripped_size}")
            return StorageResult(stored=False, reason="too_large", stripped=True, size=stripped_size)

        stored = await self._try_write(self.primary, stripped, stripped_size, self.primary_max_bytes, StorageTier.STRIPPED)
        if not stored:
            evicted = await self._evict()
            logger.info(f"plan_storage_evicted plan_id={plan.id} keys={evicted}")
            stored = await self._try_write(
                self.primary, stripped, stripped_size, self.primary_max_bytes, StorageTier.STRIPPED
            )
        if stored:
            await self._discard(self.secondary)
            return StorageResult(stored=True, tier=StorageTier.STRIPPED, stripped=True, size=stripped_size)

        logger.warning(f"plan_storage_failed plan_id={plan.id} reason=capacity size={stripped_size}")
        return StorageResult(stored=False, reason="capacity", stripped=True, size=stripped_size)

    async def _try_write(
        self,
        store: KeyValueStore,
        payload: str,
        size: int,
        ceiling: int,
        tier: StorageTier,
    ) -> bool:
        if size > ceiling:
            logger.debug(f"plan_storage_skip tier={tier.value} store={store.name} size={size} ceiling={ceiling}")
            return False
        try:
            await store.set(self.key, payload)
        except StorageCapacityExceeded as exc:
            logger.debug(f"plan_storage_full tier={tier.value} store={store.name} size={exc.size} available={exc.available}")
            return False
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"plan_storage_write_failed tier={tier.value} store={store.name} error={exc}")
            return False
        logger.info(f"plan_storage_saved tier={tier.value} store={store.name} size={size}")
        return True

    async def _discard(self, store: KeyValueStore) -> None:
        try:
            await store.delete(self.key)
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"plan_storage_discard_failed store={store.name} error={exc}")

    async def _evict(self) -> list[str]:
        evicted: list[str] = []
        try:
            candidates = [key for key in await self.primary.keys(self.key_prefix) if key != self.key]
            for key in [*candidates, self.error_log_key]:
                await self.primary.delete(key)
                evicted.append(key)
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"plan_storage_evict_failed store={self.primary.name} error={exc}")
        return evicted

    async def load(self) -> WorkoutPlan | None:
        for store in (self.primary, self.secondary):
            try:
                raw = await store.get(self.key)
            except Exception as exc:  # noqa: BLE001
                logger.warning(f"plan_storage_read_failed store={store.name} error={exc}")
                continue
            if raw is None:
                continue
            try:
                return WorkoutPlan.model_validate_json(raw)
            except ValidationError as exc:
                logger.warning(f"plan_storage_corrupt store={store.name} errors={exc.error_count()}")
                await self._discard(store)
        return None

    async def clear(self) -> None:
        await self._discard(self.primary)
        await self._discard(self.secondary)

    async def usage(self) -> dict[str, StorageUsage]:
        result: dict[str, StorageUsage] = {}
        for label, store in (("primary", self.primary), ("secondary", self.secondary)):
            usage = await store.usage()
            usage.plan_keys = len(await store.keys(self.key_prefix))
            result[label] = usage
        return result


async def probe_available_space(store: KeyValueStore, *, limit: int | None = None) -> int:
    """Largest payload, in whole KiB, the store accepts right now.

    Binary search over probe writes; the probe key is always removed.
    """
    ceiling = (limit or store.quota) // PROBE_CHUNK
    low, high = 0, ceiling
    try:
        while low < high:
            middle = (low + high + 1) // 2
            try:
                await store.set(PROBE_KEY, "x" * (middle * PROBE_CHUNK))
            except StorageCapacityExceeded:
                high = middle - 1
            else:
                low = middle
    finally:
        await store.delete(PROBE_KEY)
    return low * PROBE_CHUNK


__all__ = ["PlanStorage", "probe_available_space", "strip_images"]
