from typing import Annotated

from fastapi import Depends, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from config.app_settings import settings
from core.cache.plan_storage import PlanStorage
from core.enums import ErrorKind
from core.exceptions import NotFoundError, RateLimitedError, WorkoutServiceError
from core.generation.normalizer import ResponseNormalizer
from core.generation.orchestrator import GenerationOrchestrator
from core.generation.prompts import build_workout_prompt
from core.schemas import (
    ErrorStats,
    FavoriteWorkout,
    StorageResult,
    StorageUsage,
    UserPreferences,
    WorkoutPlan,
    WorkoutRequest,
    WorkoutSession,
)
from core.services.llm_client import TextGenerationClient
from core.services.persistence import PersistenceClient
from workout_api.application import PlanStorageRegistry, app
from workout_api.rate_limit import FixedWindowRateLimiter, client_key
from workout_api.schemas import (
    FavoriteBody,
    GenerateWorkoutBody,
    PlanUpdateBody,
    RegenerateWorkoutBody,
    ServiceInfo,
    SessionBody,
)


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    return request.app.state.orchestrator


def get_text_client(request: Request) -> TextGenerationClient:
    return request.app.state.text_client


def get_normalizer(request: Request) -> ResponseNormalizer:
    return request.app.state.normalizer


def get_persistence(request: Request) -> PersistenceClient:
    return request.app.state.persistence


def get_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    return request.app.state.rate_limiter


def get_plan_storage(user_id: str, request: Request) -> PlanStorage:
    registry: PlanStorageRegistry = request.app.state.plan_storages
    return registry.for_user(user_id)


Orchestrator = Annotated[GenerationOrchestrator, Depends(get_orchestrator)]
Persistence = Annotated[PersistenceClient, Depends(get_persistence)]
Storage = Annotated[PlanStorage, Depends(get_plan_storage)]


def _error_response(exc: WorkoutServiceError, headers: dict[str, str] | None = None) -> JSONResponse:
    response_headers = dict(headers or {})
    payload = exc.to_payload()
    if isinstance(exc, RateLimitedError) and exc.retry_after:
        response_headers["Retry-After"] = str(exc.retry_after)
        payload["retryAfter"] = exc.retry_after
    return JSONResponse(status_code=exc.status_code, content=payload, headers=response_headers or None)


@app.exception_handler(WorkoutServiceError)
async def workout_error_handler(request: Request, exc: WorkoutServiceError) -> JSONResponse:
    logger.warning(f"request_failed path={request.url.path} kind={exc.kind} status={exc.status_code}")
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    details = f"{location}: {first.get('msg', 'invalid value')}" if location else str(first.get("msg", ""))
    logger.debug(f"request_invalid path={request.url.path} errors={len(errors)}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request", "type": str(ErrorKind.VALIDATION), "details": details},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"request_crashed path={request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "An unexpected error occurred", "type": str(ErrorKind.UNKNOWN)},
    )


@app.get("/health/")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/generate-workout", response_model=ServiceInfo)
async def generate_workout_info() -> ServiceInfo:
    return ServiceInfo(
        message="Workout generation API is running",
        endpoint="POST /api/generate-workout",
        rate_limit=f"{settings.RATE_LIMIT} requests per {settings.RATE_LIMIT_WINDOW // 60} minutes",
    )


@app.post("/api/generate-workout", response_model=WorkoutPlan)
async def generate_workout(
    body: WorkoutRequest,
    request: Request,
    response: Response,
    limiter: Annotated[FixedWindowRateLimiter, Depends(get_rate_limiter)],
    text_client: Annotated[TextGenerationClient, Depends(get_text_client)],
    normalizer: Annotated[ResponseNormalizer, Depends(get_normalizer)],
    orchestrator: Orchestrator,
) -> WorkoutPlan | JSONResponse:
    key = client_key(request)
    state = limiter.hit(key)
    if not state.allowed:
        logger.info(f"rate_limited client={key} reset_at={int(state.reset_at)}")
        exc = RateLimitedError(retry_after=state.retry_after(limiter.now()), message="Rate limit exceeded")
        return _error_response(exc, state.headers())

    try:
        completion = await text_client.complete(build_workout_prompt(body, language=settings.RESPONSE_LANGUAGE))
        plan = await normalizer.normalize(completion, body)
    except WorkoutServiceError as exc:
        orchestrator.errors.record(exc, cache_key=body.cache_key(), endpoint="generate-workout")
        return _error_response(exc, state.headers())

    response.headers.update(state.headers())
    return plan


@app.post("/api/workouts", response_model=WorkoutPlan)
async def create_workout(
    body: GenerateWorkoutBody,
    orchestrator: Orchestrator,
    persistence: Persistence,
    request: Request,
) -> WorkoutPlan:
    preferences = await persistence.get_preferences(body.user_id) if body.user_id else None
    plan = await orchestrator.generate(body.body_parts, preferences, generate_images=body.generate_images)
    if body.user_id:
        await _keep_current(request, body.user_id, plan)
    return plan


@app.post("/api/workouts/regenerate", response_model=WorkoutPlan)
async def regenerate_workout(
    body: RegenerateWorkoutBody,
    orchestrator: Orchestrator,
    persistence: Persistence,
    request: Request,
) -> WorkoutPlan:
    preferences = await persistence.get_preferences(body.user_id) if body.user_id else None
    plan = await orchestrator.regenerate(
        body.body_parts, body.modifications, preferences, generate_images=body.generate_images
    )
    if body.user_id:
        await _keep_current(request, body.user_id, plan)
    return plan


async def _keep_current(request: Request, user_id: str, plan: WorkoutPlan) -> StorageResult:
    result = await get_plan_storage(user_id, request).save(plan)
    if not result.stored:
        logger.warning(f"current_plan_not_kept user_id={user_id} reason={result.reason}")
    return result


@app.get("/api/workouts/errors", response_model=ErrorStats)
async def workout_errors(orchestrator: Orchestrator) -> ErrorStats:
    return orchestrator.error_stats()


# --- Current plan (tiered storage) ---


@app.get("/api/users/{user_id}/current-plan", response_model=WorkoutPlan)
async def get_current_plan(user_id: str, storage: Storage) -> WorkoutPlan:
    plan = await storage.load()
    if plan is None:
        raise NotFoundError("current plan", user_id)
    return plan


@app.put("/api/users/{user_id}/current-plan", response_model=StorageResult)
async def put_current_plan(user_id: str, plan: WorkoutPlan, storage: Storage) -> StorageResult:
    return await storage.save(plan)


@app.delete("/api/users/{user_id}/current-plan", status_code=status.HTTP_204_NO_CONTENT)
async def delete_current_plan(user_id: str, storage: Storage) -> Response:
    await storage.clear()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/api/users/{user_id}/current-plan/usage", response_model=dict[str, StorageUsage])
async def current_plan_usage(user_id: str, storage: Storage) -> dict[str, StorageUsage]:
    return await storage.usage()


# --- Plans ---


@app.get("/api/users/{user_id}/plans", response_model=list[WorkoutPlan])
async def list_plans(
    user_id: str, persistence: Persistence, limit: Annotated[int | None, Query(ge=1, le=200)] = None
) -> list[WorkoutPlan]:
    return await persistence.list_plans(user_id, limit)


@app.post("/api/users/{user_id}/plans", response_model=WorkoutPlan, status_code=status.HTTP_201_CREATED)
async def save_plan(user_id: str, plan: WorkoutPlan, persistence: Persistence) -> WorkoutPlan:
    return await persistence.save_plan(user_id, plan)


@app.get("/api/users/{user_id}/plans/{plan_id}", response_model=WorkoutPlan)
async def get_plan(user_id: str, plan_id: str, persistence: Persistence) -> WorkoutPlan:
    return await persistence.get_plan(user_id, plan_id)


@app.patch("/api/users/{user_id}/plans/{plan_id}", response_model=WorkoutPlan)
async def update_plan(user_id: str, plan_id: str, body: PlanUpdateBody, persistence: Persistence) -> WorkoutPlan:
    return await persistence.update_plan(user_id, plan_id, rating=body.rating, notes=body.notes)


@app.delete("/api/users/{user_id}/plans/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_plan(user_id: str, plan_id: str, persistence: Persistence) -> Response:
    await persistence.delete_plan(user_id, plan_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Favorites ---


@app.get("/api/users/{user_id}/favorites", response_model=list[FavoriteWorkout])
async def list_favorites(user_id: str, persistence: Persistence) -> list[FavoriteWorkout]:
    return await persistence.list_favorites(user_id)


@app.post("/api/users/{user_id}/favorites", response_model=FavoriteWorkout, status_code=status.HTTP_201_CREATED)
async def add_favorite(user_id: str, body: FavoriteBody, persistence: Persistence) -> FavoriteWorkout:
    plan = await persistence.get_plan(user_id, body.plan_id)
    return await persistence.add_favorite(user_id, plan)


@app.delete("/api/users/{user_id}/favorites/{favorite_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_favorite(user_id: str, favorite_id: str, persistence: Persistence) -> Response:
    await persistence.remove_favorite(user_id, favorite_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- History ---


@app.get("/api/users/{user_id}/history", response_model=list[WorkoutSession])
async def list_history(
    user_id: str, persistence: Persistence, limit: Annotated[int | None, Query(ge=1, le=200)] = None
) -> list[WorkoutSession]:
    return await persistence.list_history(user_id, limit)


@app.post("/api/users/{user_id}/history", response_model=WorkoutSession, status_code=status.HTTP_201_CREATED)
async def record_session(user_id: str, body: SessionBody, persistence: Persistence) -> WorkoutSession:
    plan = await persistence.get_plan(user_id, body.plan_id)
    session = WorkoutSession(
        user_id=user_id,
        plan_id=plan.id,
        title=plan.title,
        target_muscles=plan.target_body_parts,
        duration=plan.total_duration if body.duration is None else body.duration,
        exercises=plan.exercises,
        difficulty=plan.difficulty,
        calories_burned=plan.calories if body.calories_burned is None else body.calories_burned,
        rating=body.rating,
        notes=body.notes,
    )
    return await persistence.record_session(session)


@app.patch("/api/users/{user_id}/history/{session_id}", response_model=WorkoutSession)
async def update_session(user_id: str, session_id: str, body: PlanUpdateBody, persistence: Persistence) -> WorkoutSession:
    return await persistence.update_session(user_id, session_id, rating=body.rating, notes=body.notes)


@app.delete("/api/users/{user_id}/history/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(user_id: str, session_id: str, persistence: Persistence) -> Response:
    await persistence.delete_session(user_id, session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Preferences ---


@app.get("/api/users/{user_id}/preferences", response_model=UserPreferences)
async def get_preferences(user_id: str, persistence: Persistence) -> UserPreferences:
    return await persistence.get_preferences(user_id) or UserPreferences()


@app.put("/api/users/{user_id}/preferences", response_model=UserPreferences)
async def save_preferences(user_id: str, body: UserPreferences, persistence: Persistence) -> UserPreferences:
    return await persistence.save_preferences(user_id, body)
