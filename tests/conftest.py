import json
import os
import random
from typing import Any

import pytest

os.environ.setdefault("LLM_API_KEY", "test-key")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from core.enums import FitnessLevel  # noqa: E402
from core.generation.fallback import FallbackPlanSynthesizer  # noqa: E402
from core.generation.normalizer import ResponseNormalizer  # noqa: E402
from core.generation.orchestrator import GenerationOrchestrator  # noqa: E402
from core.schemas import Completion, WorkoutRequest  # noqa: E402


class FakeTextClient:
    """Replays queued completions or exceptions and records every prompt."""

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.prompts: list[str] = []

    async def complete(self, prompt: str, **kwargs: Any) -> Completion:
        self.prompts.append(prompt)
        if not self.responses:
            raise AssertionError("unexpected completion call")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, Completion):
            return response
        return Completion(text=response, finish_reason="stop")


class FakeImageClient:
    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = {term.lower() for term in (fail_on or set())}
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        lowered = prompt.lower()
        if any(term in lowered for term in self.fail_on):
            raise RuntimeError("image backend refused")
        return f"https://images.test/{len(self.prompts)}.png"


def make_response(**overrides: Any) -> str:
    payload: dict[str, Any] = {
        "workoutTitle": "Core Burner",
        "estimatedTime": "25 minutes",
        "difficulty": "★★★☆☆",
        "exercises": [
            {
                "name": "Plank",
                "sets": 3,
                "reps": "30 seconds",
                "restTime": "60 seconds",
                "targetMuscles": ["rectus abdominis", "core"],
                "difficulty": "★★☆☆☆",
                "instructions": ["Rest on your forearms", "Hold a straight line"],
                "tips": "Brace your abs",
                "safetyNotes": "Stop if your back hurts",
            },
            {
                "name": "Crunches",
                "sets": "3",
                "reps": "15",
                "restTime": "45 sec",
                "targetMuscles": ["rectus abdominis"],
                "difficulty": "★★☆☆☆",
                "instructions": ["Lie on your back", "Curl up"],
                "tips": "Do not pull your neck",
                "safetyNotes": "Keep your chin up",
            },
            {
                "name": "Mountain climber",
                "sets": 3,
                "reps": "12",
                "restTime": "60",
                "targetMuscles": ["obliques"],
                "difficulty": "★★★★☆",
                "instructions": ["Start in a plank", "Drive your knees"],
                "tips": "Keep your hips low",
                "safetyNotes": "Land softly",
            },
        ],
        "cooldown": ["Child's pose", "Cobra stretch"],
        "totalCalories": "180 kcal",
        "equipment": "bodyweight",
    }
    payload.update(overrides)
    return json.dumps(payload, ensure_ascii=False)


@pytest.fixture
def workout_request() -> WorkoutRequest:
    return WorkoutRequest(
        target_muscles=["rectus abdominis", "obliques"],
        fitness_level=FitnessLevel.beginner,
        duration=30,
        equipment=["bodyweight"],
        goals=["fitness"],
        body_parts=["abs"],
    )


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_orchestrator(sleeps: list[float]):
    def factory(text_client: Any, **kwargs: Any) -> GenerationOrchestrator:
        async def fake_sleep(delay: float) -> None:
            sleeps.append(delay)

        kwargs.setdefault("min_interval", 0.0)
        return GenerationOrchestrator(
            text_client,
            kwargs.pop("normalizer", ResponseNormalizer()),
            FallbackPlanSynthesizer(random.Random(7)),
            sleep=fake_sleep,
            **kwargs,
        )

    return factory
