from core.enums import FitnessLevel
from core.schemas import ExerciseSpec, WorkoutRequest

SYSTEM_MESSAGE = """
    You are an experienced personal trainer. Build safe, effective bodyweight-friendly
    workouts and always answer with a single JSON object.
"""

WORKOUT_PROMPT = """
    Create a workout for the following conditions:
    - Target muscles: {target_muscles}
    - Fitness level: {fitness_level}
    - Available time: {duration} minutes
    - Equipment: {equipment}
    - Goals: {goals}
    - Limitations: {limitations}

    Important:
    1. Safety comes first.
    2. Keep the intensity manageable for beginners.
    3. Add a safety note to every movement with an injury risk.
    4. Describe form in concrete, easy to follow steps.
    5. Respond strictly in {language}.
    - Return only valid JSON compatible with the example below.
    - The reply MUST start with '{{' and end with '}}' with no extra text.

    Example response:
    {{
      "workoutTitle": "Core Stability Circuit",
      "estimatedTime": "30 minutes",
      "difficulty": "★★☆☆☆",
      "exercises": [
        {{
          "name": "Plank",
          "sets": 3,
          "reps": "30 seconds",
          "restTime": "60 seconds",
          "targetMuscles": ["rectus abdominis", "transverse abdominis"],
          "difficulty": "★★☆☆☆",
          "instructions": ["Rest on your forearms", "Keep your body in a straight line"],
          "tips": "Brace your core as if bracing for a punch",
          "safetyNotes": "Stop if your lower back starts to sag"
        }}
      ],
      "cooldown": ["Child's pose for 30 seconds", "Cat-cow stretch for 30 seconds"],
      "totalCalories": "150 kcal",
      "equipment": "bodyweight"
    }}
"""

ILLUSTRATION_PROMPT = (
    "Clean instructional fitness illustration of a person performing {name}, "
    "targeting {muscles}. Neutral background, athletic clothing, no text."
)

_LEVEL_LABELS: dict[FitnessLevel, str] = {
    FitnessLevel.beginner: "beginner",
    FitnessLevel.intermediate: "intermediate",
    FitnessLevel.advanced: "advanced",
}


def _join(values: list[str], empty: str = "none") -> str:
    return ", ".join(values) if values else empty


def build_workout_prompt(request: WorkoutRequest, *, language: str = "English") -> str:
    equipment = "bodyweight only" if "bodyweight" in request.equipment else _join(request.equipment)
    return WORKOUT_PROMPT.format(
        target_muscles=_join(request.target_muscles),
        fitness_level=_LEVEL_LABELS[request.fitness_level],
        duration=request.duration,
        equipment=equipment,
        goals=_join(request.goals),
        limitations=_join(request.limitations),
        language=language,
    )


def build_illustration_prompt(name: str, exercise: ExerciseSpec) -> str:
    muscles = _join(exercise.target_muscles, empty="the full body")
    return ILLUSTRATION_PROMPT.format(name=name, muscles=muscles)
