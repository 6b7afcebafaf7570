import re
from typing import Any

from loguru import logger

from core.enums import PlanSource
from core.exceptions import (
    EmptyExerciseListError,
    EmptyResponseError,
    MalformedJsonError,
    MissingRequiredFieldError,
    TruncatedResponseError,
)
from core.generation.illustrations import ExerciseIllustrator
from core.generation.parsers import (
    as_optional_text,
    as_text_list,
    first_int,
    parse_int,
    parse_json_object,
    parse_reps,
    parse_stars,
)
from core.schemas import Completion, ExerciseSpec, WorkoutPlan, WorkoutRequest, aggregate_difficulty

DEFAULT_ESTIMATED_TIME = 30
DEFAULT_PLAN_DIFFICULTY = 2
DEFAULT_CALORIES = 150
DEFAULT_EQUIPMENT = "bodyweight"
DEFAULT_COOLDOWN = "Stretch the worked muscles gently for 5 minutes"

DEFAULT_SETS = 3
DEFAULT_REPS = "10 reps"
DEFAULT_REST = 30
DEFAULT_TARGET_MUSCLE = "full body"
DEFAULT_EXERCISE_DIFFICULTY = 2
DEFAULT_INSTRUCTION = "Perform the movement slowly with controlled form"
DEFAULT_TIP = "Breathe steadily and stop if you feel sharp pain"

AI_DESCRIPTION = "AI-generated personalized workout"
TRUNCATION_WARNING = "The AI response was cut off; some exercises may be missing"

_SECONDS_RE = re.compile(r"(\d+)\s*(?:s\b|sec|second)", re.I)
_MINUTES_RE = re.compile(r"(\d+)\s*(?:min|minute)", re.I)

RawResponse = str | Completion | None


def _timed_duration(raw: dict[str, Any], reps: int | str) -> int | None:
    explicit = first_int(raw.get("duration"))
    if explicit is not None and explicit > 0:
        return explicit
    if not isinstance(reps, str):
        return None
    seconds = _SECONDS_RE.search(reps)
    if seconds:
        return int(seconds.group(1))
    minutes = _MINUTES_RE.search(reps)
    if minutes:
        return int(minutes.group(1)) * 60
    return None


def _split_equipment(value: Any) -> list[str]:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return as_text_list(value)


def normalize_exercise(raw: Any, index: int) -> ExerciseSpec:
    """Repair a single exercise entry, filling every missing secondary field."""
    if not isinstance(raw, dict):
        raise MissingRequiredFieldError("name", index=index)
    name = as_optional_text(raw.get("name"))
    if not name:
        raise MissingRequiredFieldError("name", index=index)

    defaulted: list[str] = []

    def pick(*keys: str) -> Any:
        for key in keys:
            if raw.get(key) not in (None, "", []):
                return raw[key]
        defaulted.append(keys[0])
        return None

    reps = parse_reps(pick("reps"), DEFAULT_REPS)
    exercise = ExerciseSpec(
        id=f"ai-exercise-{index}",
        name=name,
        sets=parse_int(pick("sets"), DEFAULT_SETS, minimum=1),
        reps=reps,
        rest_time=parse_int(pick("restTime", "rest_time", "rest"), DEFAULT_REST, minimum=0),
        target_muscles=as_text_list(pick("targetMuscles", "target_muscles")) or [DEFAULT_TARGET_MUSCLE],
        difficulty=parse_stars(pick("difficulty"), DEFAULT_EXERCISE_DIFFICULTY),
        instructions=as_text_list(pick("instructions")) or [DEFAULT_INSTRUCTION],
        tips=as_text_list(pick("tips")) or [DEFAULT_TIP],
        safety_note=as_optional_text(raw.get("safetyNotes", raw.get("safetyNote"))),
        image_url=as_optional_text(raw.get("imageUrl")),
        duration=_timed_duration(raw, reps),
    )
    if defaulted:
        logger.debug(f"exercise_repaired index={index} name={name} defaulted={','.join(defaulted)}")
    return exercise


def build_plan(data: dict[str, Any], request: WorkoutRequest, *, truncated: bool = False) -> WorkoutPlan:
    """Turn a parsed payload into a canonical plan without touching ``data``."""
    title = as_optional_text(data.get("workoutTitle", data.get("title")))
    if not title:
        raise MissingRequiredFieldError("workoutTitle")
    raw_exercises = data.get("exercises")
    if raw_exercises is None or not isinstance(raw_exercises, list):
        raise MissingRequiredFieldError("exercises")
    if not raw_exercises:
        raise EmptyExerciseListError()

    exercises = [normalize_exercise(entry, index) for index, entry in enumerate(raw_exercises)]

    model_difficulty = parse_stars(data.get("difficulty"), DEFAULT_PLAN_DIFFICULTY)
    difficulty = aggregate_difficulty(exercises)
    if model_difficulty != difficulty:
        logger.debug(f"plan_difficulty_recomputed model={model_difficulty} aggregate={difficulty}")

    warnings = [TRUNCATION_WARNING] if truncated else []
    return WorkoutPlan(
        title=title,
        description=AI_DESCRIPTION,
        target_body_parts=list(request.body_parts or request.target_muscles),
        exercises=exercises,
        total_duration=parse_int(data.get("estimatedTime"), DEFAULT_ESTIMATED_TIME, minimum=1),
        difficulty=difficulty,
        calories=parse_int(data.get("totalCalories"), DEFAULT_CALORIES, minimum=0),
        equipment=_split_equipment(data.get("equipment")) or [DEFAULT_EQUIPMENT],
        cooldown=as_text_list(data.get("cooldown")) or [DEFAULT_COOLDOWN],
        source=PlanSource.AI,
        warnings=warnings,
    )


class ResponseNormalizer:
    """Validates, repairs and optionally illustrates raw model output."""

    def __init__(self, illustrator: ExerciseIllustrator | None = None) -> None:
        self.illustrator = illustrator

    def parse(self, raw: RawResponse, request: WorkoutRequest) -> WorkoutPlan:
        if isinstance(raw, Completion):
            text, truncated = raw.text, raw.truncated
        else:
            text, truncated = raw or "", False

        if not text.strip():
            raise EmptyResponseError()

        try:
            data = parse_json_object(text)
        except MalformedJsonError as exc:
            if truncated:
                logger.warning(f"response_truncated chars={len(text)} parseable=False")
                raise TruncatedResponseError(text) from exc
            logger.warning(f"response_malformed reason={exc.reason} preview={exc.preview!r}")
            raise

        if truncated:
            logger.warning(f"response_truncated chars={len(text)} parseable=True")
        return build_plan(data, request, truncated=truncated)

    async def normalize(self, raw: RawResponse, request: WorkoutRequest) -> WorkoutPlan:
        plan = self.parse(raw, request)
        if request.generate_images and self.illustrator is not None:
            exercises = await self.illustrator.illustrate(plan.exercises)
            plan = plan.model_copy(update={"exercises": exercises})
        return plan


__all__ = ["ResponseNormalizer", "build_plan", "normalize_exercise"]
