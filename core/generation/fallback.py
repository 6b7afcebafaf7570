from __future__ import annotations

import math
import random
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from core.enums import BodyPart, ErrorKind, PlanSource
from core.generation.exercise_catalog import BODY_PART_LABELS, EXERCISES, CatalogExercise, known_body_parts
from core.generation.normalizer import DEFAULT_COOLDOWN
from core.schemas import ExerciseSpec, WorkoutPlan, aggregate_difficulty, new_id

FALLBACK_NOTICE = "The AI service is temporarily unavailable, so this workout was built from our standard exercise library."
PER_PART_COUNT = 3
FULLBODY_COUNT = 2
SECONDS_PER_REP = 3
DEFAULT_WORK_SECONDS = 30


def _work_seconds(exercise: CatalogExercise) -> int:
    if exercise.duration:
        return exercise.duration
    if isinstance(exercise.reps, int):
        return exercise.reps * SECONDS_PER_REP
    return DEFAULT_WORK_SECONDS


def exercise_seconds(exercise: CatalogExercise) -> int:
    return exercise.sets * (_work_seconds(exercise) + exercise.rest_time)


def _to_spec(exercise: CatalogExercise, part: BodyPart, index: int) -> ExerciseSpec:
    return ExerciseSpec(
        id=f"fallback-{part}-{exercise.key}-{index}",
        name=exercise.name,
        sets=exercise.sets,
        reps=exercise.reps,
        rest_time=exercise.rest_time,
        target_muscles=list(exercise.target_muscles),
        difficulty=exercise.difficulty,
        instructions=list(exercise.instructions),
        tips=list(exercise.tips),
        duration=exercise.duration,
    )


class FallbackPlanSynthesizer:
    """Builds a plan from the static exercise table when the model cannot be used."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()

    def _pick(self, part: BodyPart) -> list[CatalogExercise]:
        available = list(EXERCISES.get(part, ()))
        count = min(len(available), FULLBODY_COUNT if part is BodyPart.fullbody else PER_PART_COUNT)
        self.rng.shuffle(available)
        return available[:count]

    def synthesize(self, body_parts: Sequence[str], *, error_kind: ErrorKind | str | None = None) -> WorkoutPlan:
        parts = known_body_parts(list(body_parts)) or [BodyPart.fullbody]

        chosen: list[tuple[BodyPart, CatalogExercise]] = []
        for part in parts:
            chosen.extend((part, exercise) for exercise in self._pick(part))

        total_seconds = 0
        total_calories = Decimal(0)
        for _, exercise in chosen:
            seconds = exercise_seconds(exercise)
            total_seconds += seconds
            total_calories += Decimal(seconds) / 60 * (3 + Decimal(exercise.difficulty) * Decimal("1.5"))

        exercises = [_to_spec(exercise, part, index) for index, (part, exercise) in enumerate(chosen)]
        labels = [BODY_PART_LABELS[part] for part in parts]
        description = FALLBACK_NOTICE
        if error_kind:
            description = f"{FALLBACK_NOTICE} (reason: {error_kind})"

        return WorkoutPlan(
            id=new_id("fallback"),
            title=f"{' & '.join(labels)} Workout",
            description=description,
            target_body_parts=[str(part) for part in parts],
            exercises=exercises,
            total_duration=math.ceil(Decimal(total_seconds) / 60),
            difficulty=aggregate_difficulty(exercises),
            calories=int(total_calories.quantize(Decimal("1"), rounding=ROUND_HALF_UP)),
            equipment=list(dict.fromkeys(item for _, exercise in chosen for item in exercise.equipment)),
            cooldown=[DEFAULT_COOLDOWN],
            source=PlanSource.FALLBACK,
        )


__all__ = ["FALLBACK_NOTICE", "FallbackPlanSynthesizer", "exercise_seconds"]
