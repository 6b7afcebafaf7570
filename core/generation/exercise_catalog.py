from dataclasses import dataclass, field

from core.enums import BodyPart


@dataclass(frozen=True)
class CatalogExercise:
    key: str
    name: str
    sets: int
    reps: int | str
    rest_time: int
    difficulty: int
    target_muscles: tuple[str, ...]
    instructions: tuple[str, ...]
    tips: tuple[str, ...]
    duration: int | None = None
    equipment: tuple[str, ...] = field(default=("bodyweight",))


BODY_PART_MUSCLES: dict[BodyPart, tuple[str, ...]] = {
    BodyPart.chest: ("pectoralis major", "upper chest", "lower chest"),
    BodyPart.back: ("latissimus dorsi", "trapezius", "rhomboids", "erector spinae"),
    BodyPart.shoulders: ("deltoids", "anterior deltoid", "lateral deltoid", "posterior deltoid"),
    BodyPart.arms: ("biceps", "triceps", "forearms"),
    BodyPart.abs: ("rectus abdominis", "obliques", "transverse abdominis", "core"),
    BodyPart.legs: ("quadriceps", "hamstrings", "glutes", "calves"),
    BodyPart.fullbody: ("full body",),
}

BODY_PART_LABELS: dict[BodyPart, str] = {
    BodyPart.chest: "Chest",
    BodyPart.back: "Back",
    BodyPart.shoulders: "Shoulders",
    BodyPart.arms: "Arms",
    BodyPart.abs: "Abs",
    BodyPart.legs: "Legs",
    BodyPart.fullbody: "Full Body",
}

EXERCISES: dict[BodyPart, tuple[CatalogExercise, ...]] = {
    BodyPart.chest: (
        CatalogExercise(
            key="push-up",
            name="Push-up",
            sets=3,
            reps=10,
            rest_time=60,
            difficulty=2,
            target_muscles=("pectoralis major", "triceps", "anterior deltoid"),
            instructions=(
                "Place your hands slightly wider than shoulder width",
                "Keep your body in a straight line from head to heels",
                "Lower your chest until it almost touches the floor",
                "Press back up to the starting position",
            ),
            tips=("Do not let your hips sag", "Keep your elbows at about 45 degrees"),
        ),
        CatalogExercise(
            key="diamond-push-up",
            name="Diamond push-up",
            sets=2,
            reps=8,
            rest_time=90,
            difficulty=4,
            target_muscles=("inner chest", "triceps"),
            instructions=(
                "Form a diamond with your thumbs and index fingers",
                "Place your hands under the center of your chest",
                "Lower slowly with control",
                "Push back up",
            ),
            tips=("Keep your elbows close to your body", "Switch to knees if it feels too hard"),
        ),
        CatalogExercise(
            key="incline-push-up",
            name="Incline push-up",
            sets=3,
            reps=12,
            rest_time=60,
            difficulty=1,
            target_muscles=("lower chest", "triceps"),
            instructions=(
                "Place your hands on a bench or step",
                "Keep your body straight",
                "Lower your chest toward the edge",
                "Press back up",
            ),
            tips=("A good starting point for beginners", "Lower the support to make it harder"),
        ),
    ),
    BodyPart.abs: (
        CatalogExercise(
            key="plank",
            name="Plank",
            sets=3,
            reps="30 seconds",
            rest_time=60,
            difficulty=2,
            duration=30,
            target_muscles=("rectus abdominis", "transverse abdominis", "core"),
            instructions=(
                "Rest on your forearms and toes",
                "Keep your body in a straight line",
                "Brace your abs",
                "Hold the position",
            ),
            tips=("Do not let your hips rise or drop", "Keep breathing steadily"),
        ),
        CatalogExercise(
            key="crunch",
            name="Crunches",
            sets=3,
            reps=15,
            rest_time=45,
            difficulty=2,
            target_muscles=("rectus abdominis",),
            instructions=(
                "Lie on your back with your knees bent",
                "Place your hands lightly behind your head",
                "Lift your shoulders off the floor",
                "Lower slowly",
            ),
            tips=("Do not pull on your neck", "Keep the movement small and controlled"),
        ),
        CatalogExercise(
            key="mountain-climber",
            name="Mountain climber",
            sets=3,
            reps=20,
            rest_time=60,
            difficulty=3,
            target_muscles=("rectus abdominis", "obliques", "hip flexors"),
            instructions=(
                "Start in a push-up position",
                "Drive one knee toward your chest",
                "Switch legs quickly",
                "Keep a steady rhythm",
            ),
            tips=("Keep your hips low", "Maintain a stable core"),
        ),
    ),
    BodyPart.legs: (
        CatalogExercise(
            key="squat",
            name="Squats",
            sets=3,
            reps=15,
            rest_time=60,
            difficulty=2,
            target_muscles=("quadriceps", "glutes", "hamstrings"),
            instructions=(
                "Stand with your feet shoulder width apart",
                "Push your hips back and lower down",
                "Go until your thighs are parallel to the floor",
                "Drive through your heels to stand up",
            ),
            tips=("Keep your knees behind your toes", "Keep your back neutral"),
        ),
        CatalogExercise(
            key="lunge",
            name="Lunges",
            sets=2,
            reps=10,
            rest_time=60,
            difficulty=3,
            target_muscles=("quadriceps", "glutes", "hamstrings"),
            instructions=(
                "Step one leg forward",
                "Lower your back knee toward the floor",
                "Bend both knees to 90 degrees",
                "Return to standing",
            ),
            tips=("Keep your front knee over your ankle", "Alternate legs each rep"),
        ),
        CatalogExercise(
            key="calf-raise",
            name="Calf raises",
            sets=3,
            reps=20,
            rest_time=30,
            difficulty=1,
            target_muscles=("calves",),
            instructions=(
                "Stand with your feet hip width apart",
                "Rise onto your toes",
                "Pause at the top",
                "Lower slowly",
            ),
            tips=("Use a wall for balance", "Use a step for a larger range of motion"),
        ),
    ),
    BodyPart.back: (
        CatalogExercise(
            key="superman",
            name="Superman",
            sets=3,
            reps=12,
            rest_time=45,
            difficulty=2,
            target_muscles=("erector spinae", "glutes"),
            instructions=(
                "Lie face down with your arms extended",
                "Lift your arms, chest and legs together",
                "Hold briefly at the top",
                "Lower slowly",
            ),
            tips=("Do not overextend your lower back", "Keep your neck neutral"),
        ),
        CatalogExercise(
            key="reverse-fly",
            name="Reverse fly",
            sets=3,
            reps=12,
            rest_time=60,
            difficulty=2,
            target_muscles=("rhomboids", "posterior deltoid"),
            instructions=(
                "Hinge forward at the hips",
                "Let your arms hang down",
                "Raise your arms out to the sides",
                "Squeeze your shoulder blades together",
            ),
            tips=("Use water bottles for light resistance", "Keep a slight bend in your elbows"),
        ),
    ),
    BodyPart.shoulders: (
        CatalogExercise(
            key="pike-push-up",
            name="Pike push-up",
            sets=2,
            reps=8,
            rest_time=90,
            difficulty=4,
            target_muscles=("deltoids", "triceps"),
            instructions=(
                "Start in a downward dog position",
                "Bend your elbows to lower your head toward the floor",
                "Keep your hips high",
                "Press back up",
            ),
            tips=("Shorten the range of motion at first", "Keep your neck relaxed"),
        ),
        CatalogExercise(
            key="lateral-raise",
            name="Lateral raises",
            sets=3,
            reps=12,
            rest_time=45,
            difficulty=2,
            target_muscles=("lateral deltoid",),
            instructions=(
                "Stand holding light weights at your sides",
                "Raise your arms out to shoulder height",
                "Pause briefly",
                "Lower slowly",
            ),
            tips=("Do not lift above shoulder height", "Avoid swinging"),
        ),
    ),
    BodyPart.arms: (
        CatalogExercise(
            key="tricep-dip",
            name="Tricep dips",
            sets=3,
            reps=10,
            rest_time=60,
            difficulty=3,
            target_muscles=("triceps",),
            instructions=(
                "Place your hands on the edge of a chair behind you",
                "Extend your legs forward",
                "Bend your elbows to lower your body",
                "Press back up",
            ),
            tips=("Keep your back close to the chair", "Bend your knees to make it easier"),
        ),
        CatalogExercise(
            key="wall-handstand-push-up",
            name="Wall handstand push-up",
            sets=2,
            reps=5,
            rest_time=120,
            difficulty=5,
            target_muscles=("deltoids", "triceps"),
            instructions=(
                "Kick up into a handstand against a wall",
                "Lower your head toward the floor",
                "Press back up",
                "Keep your balance throughout",
            ),
            tips=("Advanced exercise", "Master pike push-ups first"),
        ),
    ),
    BodyPart.fullbody: (
        CatalogExercise(
            key="burpee",
            name="Burpees",
            sets=3,
            reps=8,
            rest_time=90,
            difficulty=4,
            target_muscles=("full body",),
            instructions=(
                "Squat down and place your hands on the floor",
                "Jump your feet back into a push-up position",
                "Do a push-up",
                "Jump your feet in and jump up",
            ),
            tips=("Keep a steady pace", "Skip the push-up to make it easier"),
        ),
        CatalogExercise(
            key="jumping-jack",
            name="Jumping jacks",
            sets=3,
            reps=20,
            rest_time=30,
            difficulty=2,
            target_muscles=("full body",),
            instructions=(
                "Stand with your feet together",
                "Jump while spreading your legs and raising your arms",
                "Jump back to the start",
                "Keep a rhythm",
            ),
            tips=("Land softly", "Step instead of jumping to reduce impact"),
        ),
    ),
}


def muscles_for(body_parts: list[str]) -> list[str]:
    """Map body part ids to unique muscle names, preserving order."""
    muscles: list[str] = []
    for part in body_parts:
        try:
            mapped = BODY_PART_MUSCLES[BodyPart(part)]
        except ValueError:
            continue
        for muscle in mapped:
            if muscle not in muscles:
                muscles.append(muscle)
    return muscles


def known_body_parts(body_parts: list[str]) -> list[BodyPart]:
    parts: list[BodyPart] = []
    for part in body_parts:
        try:
            resolved = BodyPart(part)
        except ValueError:
            continue
        if resolved not in parts:
            parts.append(resolved)
    return parts
