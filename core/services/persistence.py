from abc import ABC, abstractmethod
from typing import Any, Awaitable, TypeVar, cast

from loguru import logger
from pydantic import BaseModel, ValidationError
from redis.asyncio import Redis

from config.app_settings import settings
from core.cache.base import RedisClientBase
from core.exceptions import NotFoundError
from core.schemas import FavoriteWorkout, UserPreferences, WorkoutPlan, WorkoutSession, utcnow

ModelT = TypeVar("ModelT", bound=BaseModel)

PLANS = "plans"
FAVORITES = "favorites"
HISTORY = "history"
PREFERENCES = "preferences"
PREFERENCES_FIELD = "current"


class PersistenceClient(ABC):
    """Plans, favorites, history and preferences of a user.

    Backends implement four raw JSON primitives; domain operations live here.
    """

    @abstractmethod
    async def _put(self, collection: str, user_id: str, item_id: str, payload: str) -> None: ...

    @abstractmethod
    async def _get(self, collection: str, user_id: str, item_id: str) -> str | None: ...

    @abstractmethod
    async def _all(self, collection: str, user_id: str) -> list[str]: ...

    @abstractmethod
    async def _delete(self, collection: str, user_id: str, item_id: str) -> bool: ...

    async def close(self) -> None:
        return None

    async def _load(self, collection: str, user_id: str, item_id: str, model: type[ModelT]) -> ModelT:
        raw = await self._get(collection, user_id, item_id)
        if raw is None:
            raise NotFoundError(collection.rstrip("s"), item_id)
        return model.model_validate_json(raw)

    async def _load_all(self, collection: str, user_id: str, model: type[ModelT]) -> list[ModelT]:
        items: list[ModelT] = []
        for raw in await self._all(collection, user_id):
            try:
                items.append(model.model_validate_json(raw))
            except ValidationError as exc:
                logger.warning(f"persistence_corrupt collection={collection} user_id={user_id} errors={exc.error_count()}")
        return items

    async def _store(self, collection: str, user_id: str, item_id: str, item: BaseModel) -> None:
        await self._put(collection, user_id, item_id, item.model_dump_json(by_alias=True))

    async def _remove(self, collection: str, user_id: str, item_id: str) -> None:
        if not await self._delete(collection, user_id, item_id):
            raise NotFoundError(collection.rstrip("s"), item_id)

    # --- Plans ---
    async def save_plan(self, user_id: str, plan: WorkoutPlan) -> WorkoutPlan:
        await self._store(PLANS, user_id, plan.id, plan)
        logger.info(f"plan_saved user_id={user_id} plan_id={plan.id} source={plan.source}")
        return plan

    async def get_plan(self, user_id: str, plan_id: str) -> WorkoutPlan:
        return await self._load(PLANS, user_id, plan_id, WorkoutPlan)

    async def list_plans(self, user_id: str, limit: int | None = None) -> list[WorkoutPlan]:
        plans = sorted(await self._load_all(PLANS, user_id, WorkoutPlan), key=lambda p: p.created_at, reverse=True)
        return plans[:limit] if limit else plans

    async def update_plan(
        self, user_id: str, plan_id: str, *, rating: int | None = None, notes: str | None = None
    ) -> WorkoutPlan:
        plan = await self.get_plan(user_id, plan_id)
        updates: dict[str, Any] = {}
        if rating is not None:
            updates["rating"] = rating
        if notes is not None:
            updates["notes"] = notes
        updated = WorkoutPlan.model_validate({**plan.model_dump(), **updates})
        await self._store(PLANS, user_id, plan_id, updated)
        return updated

    async def delete_plan(self, user_id: str, plan_id: str) -> None:
        await self._remove(PLANS, user_id, plan_id)
        logger.info(f"plan_deleted user_id={user_id} plan_id={plan_id}")

    # --- Favorites ---
    async def add_favorite(self, user_id: str, plan: WorkoutPlan) -> FavoriteWorkout:
        for favorite in await self.list_favorites(user_id):
            if favorite.plan_id == plan.id:
                return favorite
        favorite = FavoriteWorkout(user_id=user_id, plan_id=plan.id, title=plan.title, plan=plan)
        await self._store(FAVORITES, user_id, favorite.id, favorite)
        logger.info(f"favorite_added user_id={user_id} plan_id={plan.id}")
        return favorite

    async def list_favorites(self, user_id: str) -> list[FavoriteWorkout]:
        favorites = await self._load_all(FAVORITES, user_id, FavoriteWorkout)
        return sorted(favorites, key=lambda f: f.created_at, reverse=True)

    async def remove_favorite(self, user_id: str, favorite_id: str) -> None:
        await self._remove(FAVORITES, user_id, favorite_id)

    # --- History ---
    async def record_session(self, session: WorkoutSession) -> WorkoutSession:
        await self._store(HISTORY, session.user_id, session.id, session)
        logger.info(f"session_recorded user_id={session.user_id} plan_id={session.plan_id}")
        return session

    async def list_history(self, user_id: str, limit: int | None = None) -> list[WorkoutSession]:
        sessions = await self._load_all(HISTORY, user_id, WorkoutSession)
        sessions.sort(key=lambda s: s.completed_at, reverse=True)
        return sessions[: limit or settings.PLAN_HISTORY_LIMIT]

    async def update_session(
        self, user_id: str, session_id: str, *, rating: int | None = None, notes: str | None = None
    ) -> WorkoutSession:
        session = await self._load(HISTORY, user_id, session_id, WorkoutSession)
        updates: dict[str, Any] = {}
        if rating is not None:
            updates["rating"] = rating
        if notes is not None:
            updates["notes"] = notes
        updated = WorkoutSession.model_validate({**session.model_dump(), **updates})
        await self._store(HISTORY, user_id, session_id, updated)
        return updated

    async def delete_session(self, user_id: str, session_id: str) -> None:
        await self._remove(HISTORY, user_id, session_id)

    # --- Preferences ---
    async def save_preferences(self, user_id: str, preferences: UserPreferences) -> UserPreferences:
        stamped = preferences.model_copy(update={"updated_at": utcnow()})
        await self._store(PREFERENCES, user_id, PREFERENCES_FIELD, stamped)
        return stamped

    async def get_preferences(self, user_id: str) -> UserPreferences | None:
        raw = await self._get(PREFERENCES, user_id, PREFERENCES_FIELD)
        if raw is None:
            return None
        try:
            return UserPreferences.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning(f"preferences_corrupt user_id={user_id} errors={exc.error_count()}")
            return None


class InMemoryPersistence(PersistenceClient):
    def __init__(self) -> None:
        self._data: dict[tuple[str, str], dict[str, str]] = {}

    async def _put(self, collection: str, user_id: str, item_id: str, payload: str) -> None:
        self._data.setdefault((collection, user_id), {})[item_id] = payload

    async def _get(self, collection: str, user_id: str, item_id: str) -> str | None:
        return self._data.get((collection, user_id), {}).get(item_id)

    async def _all(self, collection: str, user_id: str) -> list[str]:
        return list(self._data.get((collection, user_id), {}).values())

    async def _delete(self, collection: str, user_id: str, item_id: str) -> bool:
        return self._data.get((collection, user_id), {}).pop(item_id, None) is not None


class RedisPersistence(RedisClientBase, PersistenceClient):
    def __init__(self, client: Redis | None = None, *, url: str | None = None) -> None:
        super().__init__(url or settings.redis_url_for(settings.REDIS_PERSISTENCE_DB), client)

    @staticmethod
    def _key(collection: str, user_id: str) -> str:
        return f"app:{collection}:{user_id}"

    async def _put(self, collection: str, user_id: str, item_id: str, payload: str) -> None:
        key = self._key(collection, user_id)
        await self._with_client(lambda c: cast(Awaitable[int], c.hset(key, item_id, payload)))

    async def _get(self, collection: str, user_id: str, item_id: str) -> str | None:
        key = self._key(collection, user_id)
        return await self._with_client(lambda c: cast(Awaitable[str | None], c.hget(key, item_id)))

    async def _all(self, collection: str, user_id: str) -> list[str]:
        key = self._key(collection, user_id)
        return await self._with_client(lambda c: cast(Awaitable[list[str]], c.hvals(key))) or []

    async def _delete(self, collection: str, user_id: str, item_id: str) -> bool:
        key = self._key(collection, user_id)
        removed = await self._with_client(lambda c: cast(Awaitable[int], c.hdel(key, item_id)))
        return bool(removed)

    async def close(self) -> None:
        await self._reset_client()
        logger.info("Redis connection closed.")


def build_persistence() -> PersistenceClient:
    if settings.PERSISTENCE_BACKEND == "redis":
        return RedisPersistence()
    return InMemoryPersistence()


__all__ = ["InMemoryPersistence", "PersistenceClient", "RedisPersistence", "build_persistence"]
