from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from cachetools import TTLCache
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from config.app_settings import settings
from config.logger import configure_logging
from core.cache.plan_storage import PlanStorage
from core.cache.stores import build_stores
from core.generation.fallback import FallbackPlanSynthesizer
from core.generation.illustrations import ExerciseIllustrator
from core.generation.normalizer import ResponseNormalizer
from core.generation.orchestrator import GenerationOrchestrator
from core.services.image_client import build_image_client
from core.services.llm_client import OpenAITextClient
from core.services.persistence import build_persistence
from workout_api.rate_limit import FixedWindowRateLimiter

configure_logging()


class PlanStorageRegistry:
    """One tiered plan storage per user, built on first use."""

    def __init__(self, maxsize: int = 1024, ttl: int = 24 * 3600) -> None:
        self._storages: TTLCache[str, PlanStorage] = TTLCache(maxsize=maxsize, ttl=ttl)

    def for_user(self, user_id: str) -> PlanStorage:
        storage = self._storages.get(user_id)
        if storage is None:
            primary, secondary = build_stores(f"plans:{user_id}")
            storage = PlanStorage(primary, secondary)
            self._storages[user_id] = storage
        return storage


def init_state(app: FastAPI) -> None:
    text_client = OpenAITextClient()
    image_client = build_image_client()
    illustrator = ExerciseIllustrator(image_client) if image_client is not None else None
    normalizer = ResponseNormalizer(illustrator)
    app.state.text_client = text_client
    app.state.normalizer = normalizer
    app.state.orchestrator = GenerationOrchestrator(text_client, normalizer, FallbackPlanSynthesizer())
    app.state.persistence = build_persistence()
    app.state.plan_storages = PlanStorageRegistry()
    app.state.rate_limiter = FixedWindowRateLimiter(settings.RATE_LIMIT, settings.RATE_LIMIT_WINDOW)
    logger.info(
        f"workout_api_ready model={settings.LLM_MODEL} images={settings.IMAGE_PROVIDER} "
        f"persistence={settings.PERSISTENCE_BACKEND} storage={settings.STORAGE_BACKEND}"
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    if getattr(app.state, "orchestrator", None) is None:
        init_state(app)
    try:
        yield
    finally:
        persistence = getattr(app.state, "persistence", None)
        if persistence is not None:
            await persistence.close()
        logger.info("workout_api_stopped")


app = FastAPI(title=settings.SITE_NAME, lifespan=lifespan)
if settings.CORS_ALLOW_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
    )
