import asyncio
import time
from collections.abc import Iterable
from typing import Awaitable, Callable

from cachetools import TTLCache
from loguru import logger
from pydantic import ValidationError

from config.app_settings import settings
from core.enums import Modification
from core.exceptions import (
    ConfigurationError,
    InvalidRequestError,
    RateLimitedError,
    TruncatedResponseError,
    classify,
)
from core.generation.error_log import GenerationErrorLog
from core.generation.exercise_catalog import known_body_parts, muscles_for
from core.generation.fallback import FallbackPlanSynthesizer
from core.generation.normalizer import ResponseNormalizer
from core.generation.prompts import build_workout_prompt
from core.schemas import ErrorStats, UserPreferences, WorkoutPlan, WorkoutRequest
from core.services.llm_client import TextGenerationClient

ProgressCallback = Callable[[int, str], Awaitable[None] | None]


class GenerationOrchestrator:
    """Selection in, plan out. Only rate limiting and misconfiguration escape."""

    def __init__(
        self,
        text_client: TextGenerationClient,
        normalizer: ResponseNormalizer | None = None,
        fallback: FallbackPlanSynthesizer | None = None,
        *,
        min_interval: float | None = None,
        cache_ttl: int | None = None,
        cache_maxsize: int | None = None,
        error_log_size: int | None = None,
        retry_on_truncation: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.text_client = text_client
        self.normalizer = normalizer or ResponseNormalizer()
        self.fallback = fallback or FallbackPlanSynthesizer()
        self.min_interval = settings.GENERATION_MIN_INTERVAL if min_interval is None else min_interval
        self.retry_on_truncation = settings.RETRY_ON_TRUNCATION if retry_on_truncation is None else retry_on_truncation
        self.cache: TTLCache[str, WorkoutPlan] = TTLCache(
            maxsize=cache_maxsize or settings.RESPONSE_CACHE_MAXSIZE,
            ttl=cache_ttl or settings.RESPONSE_CACHE_TTL,
        )
        self.errors = GenerationErrorLog(error_log_size or settings.ERROR_LOG_SIZE)
        self._lock = asyncio.Lock()
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None

    @staticmethod
    def build_request(
        selection: Iterable[str],
        preferences: UserPreferences | None = None,
        *,
        generate_images: bool = False,
    ) -> WorkoutRequest:
        parts = [str(part) for part in known_body_parts(list(selection))]
        muscles = muscles_for(parts)
        if not muscles:
            raise InvalidRequestError("Select at least one body part")
        prefs = preferences or UserPreferences()
        try:
            return WorkoutRequest(
                target_muscles=muscles,
                fitness_level=prefs.fitness_level,
                duration=prefs.preferred_duration,
                equipment=prefs.available_equipment or ["bodyweight"],
                goals=prefs.goals or ["fitness"],
                limitations=prefs.limitations,
                generate_images=generate_images,
                body_parts=parts,
            )
        except ValidationError as exc:
            raise InvalidRequestError("Invalid workout preferences", details=str(exc.errors()[0]["msg"])) from exc

    async def generate(
        self,
        selection: Iterable[str],
        preferences: UserPreferences | None = None,
        *,
        generate_images: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> WorkoutPlan:
        selection = list(selection)
        request = self.build_request(selection, preferences, generate_images=generate_images)
        return await self._run(request, selection, on_progress=on_progress, use_cache=True)

    async def regenerate(
        self,
        selection: Iterable[str],
        modifications: Iterable[Modification],
        preferences: UserPreferences | None = None,
        *,
        generate_images: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> WorkoutPlan:
        selection = list(selection)
        modifications = list(modifications)
        base = self.build_request(selection, preferences, generate_images=generate_images)
        request = base.adjusted(modifications)
        logger.info(
            f"workout_regenerate level={request.fitness_level} duration={request.duration} "
            f"modifications={','.join(sorted(str(m) for m in modifications))}"
        )
        return await self._run(request, selection, on_progress=on_progress, use_cache=False)

    async def generate_for_request(self, request: WorkoutRequest) -> WorkoutPlan:
        """Orchestrated generation for an already-built request."""
        return await self._run(request, request.body_parts, on_progress=None, use_cache=True)

    async def _run(
        self,
        request: WorkoutRequest,
        selection: list[str],
        *,
        on_progress: ProgressCallback | None,
        use_cache: bool,
    ) -> WorkoutPlan:
        key = request.cache_key()
        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"workout_cache_hit key={key}")
                await self._progress(on_progress, 100, "Workout ready")
                return cached

        await self._progress(on_progress, 10, "Preparing your workout request")
        try:
            plan = await self._generate_with_retry(request, on_progress)
        except (RateLimitedError, ConfigurationError) as exc:
            self.errors.record(exc, cache_key=key)
            raise
        except Exception as exc:  # noqa: BLE001
            kind = classify(exc)
            self.errors.record(exc, cache_key=key)
            logger.warning(f"workout_fallback kind={kind} parts={','.join(selection)}")
            plan = self.fallback.synthesize(selection, error_kind=kind)
            await self._progress(on_progress, 100, "Workout ready (standard library)")
            return plan

        self.cache[key] = plan
        await self._progress(on_progress, 100, "Workout ready")
        return plan

    async def _generate_with_retry(self, request: WorkoutRequest, on_progress: ProgressCallback | None) -> WorkoutPlan:
        try:
            return await self._generate_once(request, on_progress)
        except TruncatedResponseError as exc:
            if not self.retry_on_truncation:
                raise
            smaller = request.reduced()
            self.errors.record(exc, cache_key=request.cache_key(), retried=True)
            logger.info(f"workout_retry_truncated muscles={len(smaller.target_muscles)} duration={smaller.duration}")
            return await self._generate_once(smaller, on_progress)

    async def _generate_once(self, request: WorkoutRequest, on_progress: ProgressCallback | None) -> WorkoutPlan:
        prompt = build_workout_prompt(request, language=settings.RESPONSE_LANGUAGE)
        await self._throttle()
        await self._progress(on_progress, 30, "Asking the AI coach")
        completion = await self.text_client.complete(prompt)
        await self._progress(on_progress, 80, "Checking the workout")
        plan = await self.normalizer.normalize(completion, request)
        logger.info(
            f"workout_generated title={plan.title} exercises={len(plan.exercises)} "
            f"difficulty={plan.difficulty} warnings={len(plan.warnings)}"
        )
        return plan

    async def _throttle(self) -> None:
        async with self._lock:
            if self._last_call is not None:
                wait = self.min_interval - (self._clock() - self._last_call)
                if wait > 0:
                    logger.debug(f"workout_throttle wait={wait:.2f}")
                    await self._sleep(wait)
            self._last_call = self._clock()

    @staticmethod
    async def _progress(callback: ProgressCallback | None, percent: int, message: str) -> None:
        if callback is None:
            return
        try:
            result = callback(percent, message)
            if asyncio.iscoroutine(result):
                await result
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"progress_callback_failed percent={percent} error={exc}")

    def error_stats(self) -> ErrorStats:
        return self.errors.stats()


__all__ = ["GenerationOrchestrator", "ProgressCallback"]
