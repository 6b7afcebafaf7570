import asyncio
import re
from typing import Protocol

from loguru import logger

from core.generation.prompts import build_illustration_prompt
from core.schemas import ExerciseSpec

# Names the image backend has rejected on content-policy grounds, with approved synonyms.
# Lookup only: novel problematic terms slip through and land on the generic retry.
SAFE_NAME_MAP: dict[str, str] = {
    "skull crusher": "lying triceps extension",
    "skullcrusher": "lying triceps extension",
    "suicide sprint": "shuttle run",
    "suicides": "shuttle runs",
    "good morning": "standing hip hinge",
    "dead bug": "supine alternating arm and leg reach",
    "hip thrust": "glute bridge",
    "man maker": "dumbbell push-up to row",
    "death march": "walking leg kicks",
    "jackknife": "v-up",
    "throat punch": "straight punch",
}

# Generic movement per muscle group used after a rejection.
GENERIC_BY_GROUP: dict[str, str] = {
    "chest": "push-up",
    "abs": "forearm plank",
    "legs": "bodyweight squat",
    "back": "superman hold",
    "shoulders": "arm circles",
    "arms": "bench triceps dip",
    "fullbody": "jumping jacks",
}

_GROUP_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("shoulders", ("deltoid", "shoulder")),
    ("chest", ("pectoral", "chest")),
    ("abs", ("abdomin", "oblique", "core", "abs")),
    ("legs", ("quadricep", "hamstring", "glute", "calf", "calves", "leg", "thigh")),
    ("back", ("latissimus", "trapezius", "rhomboid", "erector", "back")),
    ("arms", ("bicep", "tricep", "forearm", "arm")),
)


class ImageGenerationClient(Protocol):
    async def generate(self, prompt: str) -> str: ...


def safe_exercise_name(name: str) -> str:
    """Rewrite known problematic terms to their approved synonym."""
    safe = name
    for term, replacement in SAFE_NAME_MAP.items():
        safe = re.sub(re.escape(term), replacement, safe, flags=re.I)
    return safe


def muscle_group(target_muscles: list[str]) -> str:
    lowered = " ".join(target_muscles).lower()
    for group, keywords in _GROUP_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return group
    return "fullbody"


def generic_exercise_name(exercise: ExerciseSpec) -> str:
    return GENERIC_BY_GROUP[muscle_group(exercise.target_muscles)]


class ExerciseIllustrator:
    """Illustrates every exercise concurrently; one failure never blocks the rest."""

    def __init__(self, client: ImageGenerationClient) -> None:
        self.client = client

    async def illustrate(self, exercises: list[ExerciseSpec]) -> list[ExerciseSpec]:
        outcomes = await asyncio.gather(*(self._illustrate_one(exercise) for exercise in exercises), return_exceptions=True)
        illustrated: list[ExerciseSpec] = []
        failed = 0
        for exercise, outcome in zip(exercises, outcomes):
            if isinstance(outcome, BaseException):
                failed += 1
                logger.warning(f"illustration_failed exercise={exercise.name} error={type(outcome).__name__}: {outcome}")
                illustrated.append(exercise)
            else:
                illustrated.append(exercise.model_copy(update={"image_url": outcome}))
        logger.info(f"illustrations_done total={len(exercises)} failed={failed}")
        return illustrated

    async def _illustrate_one(self, exercise: ExerciseSpec) -> str:
        name = safe_exercise_name(exercise.name)
        try:
            return await self.client.generate(build_illustration_prompt(name, exercise))
        except Exception as exc:  # noqa: BLE001
            generic = generic_exercise_name(exercise)
            logger.debug(f"illustration_retry exercise={exercise.name} generic={generic} reason={type(exc).__name__}")
        return await self.client.generate(build_illustration_prompt(generic, exercise))


__all__ = ["ExerciseIllustrator", "ImageGenerationClient", "safe_exercise_name", "generic_exercise_name"]
