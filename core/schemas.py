from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from core.enums import FitnessLevel, Modification, PlanSource

MIN_ADJUSTED_DURATION = 15
MAX_ADJUSTED_DURATION = 90
DURATION_STEP = 15

_LEVEL_ORDER: list[FitnessLevel] = [FitnessLevel.beginner, FitnessLevel.intermediate, FitnessLevel.advanced]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:12]}"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _non_blank(values: list[str]) -> list[str]:
    return [str(value).strip() for value in values if str(value).strip()]


class Completion(CamelModel):
    text: str
    finish_reason: str | None = None
    usage: dict[str, int] = Field(default_factory=dict)

    @property
    def truncated(self) -> bool:
        return self.finish_reason == "length"


class WorkoutRequest(CamelModel):
    model_config = ConfigDict(frozen=True)

    target_muscles: Annotated[list[str], Field(min_length=1)]
    fitness_level: FitnessLevel = FitnessLevel.beginner
    duration: Annotated[int, Field(ge=5, le=120)] = 30
    equipment: Annotated[list[str], Field(min_length=1)] = ["bodyweight"]
    goals: Annotated[list[str], Field(min_length=1)] = ["fitness"]
    limitations: list[str] = Field(default_factory=list)
    generate_images: bool = False
    body_parts: list[str] = Field(default_factory=list)

    @field_validator("target_muscles", "equipment", "goals", mode="after")
    @classmethod
    def _require_entries(cls, value: list[str]) -> list[str]:
        cleaned = _non_blank(value)
        if not cleaned:
            raise ValueError("at least one non-blank entry is required")
        return cleaned

    @field_validator("limitations", mode="after")
    @classmethod
    def _strip_limitations(cls, value: list[str]) -> list[str]:
        return _non_blank(value)

    def cache_key(self) -> str:
        parts = [
            ",".join(sorted(self.target_muscles)),
            str(self.fitness_level),
            str(self.duration),
            ",".join(sorted(self.equipment)),
            ",".join(sorted(self.goals)),
            ",".join(sorted(self.limitations)),
            "img" if self.generate_images else "txt",
        ]
        return "|".join(parts)

    def adjusted(self, modifications: Iterable[Modification]) -> "WorkoutRequest":
        modifications = set(modifications)
        level_index = _LEVEL_ORDER.index(self.fitness_level)
        duration = self.duration
        if Modification.HARDER in modifications:
            level_index = min(level_index + 1, len(_LEVEL_ORDER) - 1)
        if Modification.EASIER in modifications:
            level_index = max(level_index - 1, 0)
        if Modification.SHORTER in modifications:
            duration = max(MIN_ADJUSTED_DURATION, duration - DURATION_STEP)
        if Modification.LONGER in modifications:
            duration = min(MAX_ADJUSTED_DURATION, duration + DURATION_STEP)
        return self.model_copy(update={"fitness_level": _LEVEL_ORDER[level_index], "duration": duration})

    def reduced(self) -> "WorkoutRequest":
        """Smaller variant used after a truncated completion."""
        muscles = self.target_muscles[: max(1, len(self.target_muscles) // 2)]
        duration = self.duration
        if duration > MIN_ADJUSTED_DURATION:
            duration = max(MIN_ADJUSTED_DURATION, duration - DURATION_STEP)
        return self.model_copy(update={"target_muscles": muscles, "duration": duration, "generate_images": False})


class UserPreferences(CamelModel):
    fitness_level: FitnessLevel = FitnessLevel.beginner
    preferred_duration: Annotated[int, Field(ge=5, le=120)] = 30
    available_equipment: list[str] = Field(default_factory=lambda: ["bodyweight"])
    goals: list[str] = Field(default_factory=lambda: ["fitness"])
    limitations: list[str] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=utcnow)


class ExerciseSpec(CamelModel):
    id: str
    name: str
    sets: Annotated[int, Field(ge=1)]
    reps: int | str
    rest_time: Annotated[int, Field(ge=0)]
    target_muscles: list[str]
    difficulty: Annotated[int, Field(ge=1, le=5)]
    instructions: list[str]
    tips: list[str]
    safety_note: str | None = None
    image_url: str | None = None
    duration: int | None = None


class WorkoutPlan(CamelModel):
    id: str = Field(default_factory=lambda: new_id("workout"))
    title: str
    description: str
    target_body_parts: list[str] = Field(default_factory=list)
    exercises: Annotated[list[ExerciseSpec], Field(min_length=1)]
    total_duration: Annotated[int, Field(ge=0)]
    difficulty: Annotated[int, Field(ge=1, le=5)]
    calories: Annotated[int, Field(ge=0)]
    equipment: list[str] = Field(default_factory=list)
    cooldown: list[str] = Field(default_factory=list)
    source: PlanSource = PlanSource.AI
    warnings: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    rating: Annotated[int | None, Field(ge=1, le=5)] = None
    notes: str | None = None

    @property
    def is_fallback(self) -> bool:
        return self.source == PlanSource.FALLBACK


def aggregate_difficulty(exercises: list[ExerciseSpec]) -> int:
    """Round-half-up mean of exercise difficulties."""
    if not exercises:
        return 1
    mean = Decimal(sum(exercise.difficulty for exercise in exercises)) / Decimal(len(exercises))
    return int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class FavoriteWorkout(CamelModel):
    id: str = Field(default_factory=lambda: new_id("fav"))
    user_id: str
    plan_id: str
    title: str
    plan: WorkoutPlan
    created_at: datetime = Field(default_factory=utcnow)


class WorkoutSession(CamelModel):
    id: str = Field(default_factory=lambda: new_id("session"))
    user_id: str
    plan_id: str
    title: str
    target_muscles: list[str] = Field(default_factory=list)
    duration: Annotated[int, Field(ge=0)] = 0
    exercises: list[ExerciseSpec] = Field(default_factory=list)
    difficulty: Annotated[int, Field(ge=1, le=5)] = 2
    calories_burned: Annotated[int, Field(ge=0)] = 0
    rating: Annotated[int | None, Field(ge=1, le=5)] = None
    notes: str | None = None
    completed_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)


class StorageResult(CamelModel):
    stored: bool
    tier: int | None = None
    reason: str | None = None
    stripped: bool = False
    size: int = 0


class StorageUsage(CamelModel):
    used: int
    quota: int
    available: int
    plan_keys: int = 0


class ErrorRecord(CamelModel):
    kind: str
    message: str
    occurred_at: datetime = Field(default_factory=utcnow)
    context: dict[str, Any] = Field(default_factory=dict)


class ErrorStats(CamelModel):
    total: int
    last_24h: int
    by_kind: dict[str, int] = Field(default_factory=dict)
    recent: list[ErrorRecord] = Field(default_factory=list)
