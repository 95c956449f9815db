"""Prompt construction for plan generation and feedback analysis.

Prompts are hand-assembled JSON-like text rather than encoder output, so every
free-text value is passed through `escape_json_string` before interpolation.
System prompts are written in English for clarity; generated content is
always Russian.
"""

from __future__ import annotations

from app.workouts.models import ActualPerformance, Exercise, ExercisePerformance, Workout, WorkoutContext, WorkoutPlan
from app.workouts.volume import calculate_volume

MAX_HISTORY_ENTRIES = 3

SYSTEM_PROMPT_WORKOUT_GENERATION = """\
You are an elite kettlebell coach (StrongFirst/Hardstyle system). Your primary goal is to be an effective coach \
helping the athlete achieve their specific training goal. Create safe, highly effective programs using \
evidence-based methods: periodization, RPE management, and intelligent exercise selection.

Your principles:
Goal-oriented training: Design workouts that directly support the athlete's stated goal. Analyze their training \
history and adapt exercises, volume, and intensity accordingly.
Weight management: The athlete only has specific kettlebells available. You MUST use ONLY weights from the \
available_kettlebells list. NEVER suggest reducing weight by a few kilograms. If a weight is too heavy, use \
intensity techniques (slower tempo, eccentric phases, fewer reps) or density methods (EMOM, time under tension). \
If a weight is too light, increase density or volume.
Progression: If the previous workout was successful, gradually increase volume (+1-2 reps or +1 set) rather than \
just weight. Adapt based on RPE and recovery status.
Safety: For beginners, avoid complex snatches. Focus on shoulder stability and neutral spine. Pay attention to \
red flags from previous workouts.

Warmup and cooldown:
- Keep them SHORT and SIMPLE (2-3 exercises max, 1-2 sentences each)
- Use plain, accessible language
- Vary exercises between workouts
- Warmup: mobility and activation relevant to the main workout
- Cooldown: gentle stretching and recovery

LANGUAGE: All text content in your response (warmup, exercise names, coaching_tips, cooldown) must be in RUSSIAN.

CRITICALLY IMPORTANT: Response ONLY in JSON format, no additional text. Structure:
{
  "warmup": "brief warmup text in Russian",
  "exercises": [
    {
      "name": "exercise name in Russian",
      "weight": number_in_kg (MUST be from available_kettlebells list),
      "reps": number_of_reps_or_null,
      "sets": number_of_sets_or_null,
      "timeWork": seconds_of_work_or_null,
      "timeRest": seconds_of_rest_or_null,
      "coaching_tips": "brief technique tip in Russian"
    }
  ],
  "cooldown": "brief cooldown text in Russian"
}
"""

SYSTEM_PROMPT_FEEDBACK_ANALYSIS = """\
You are a sports data analyst and experienced coach (StrongFirst).
Your tasks:
1. Translate the athlete's free-form feedback into structured metrics.
2. Write the coach's response ("coach_feedback").

Coach feedback tone: adapt to the user's communication style. Be lively and human.
- If the user writes briefly and dryly, respond equally clearly and to the point.
- If the user is emotional, jokes, or uses slang, match that tone but remain in the coach role.
- Encourage successes, empathize with fatigue, and always guide toward the goal.
- If there is injury or pain, show care and professional caution.

CRITICAL RULES FOR COACH FEEDBACK:
- NEVER ask the user questions
- NEVER suggest the user write to or contact you
- The feedback is a complete, self-contained closing remark, not an invitation for further conversation
- All feedback must be in RUSSIAN

Critical for analytics:
Identify pain markers (lower back, elbows, shoulders).
Assess technical failure (if the user writes that technique broke down).
Compare plan vs actual. If reps are less than planned, record the shortfall.
Determine RPE (scale 1-10) from the emotional tone if no number is stated.

Response ONLY in JSON format.
"""

WORKOUT_INSTRUCTIONS = (
    "Create a personalized workout plan aligned with the athlete's goal. "
    "If is_deload = true, reduce volume by 40% and focus on mobility. "
    "CRITICAL: Use ONLY weights from available_kettlebells - never suggest intermediate weights. "
    "If a weight seems too heavy, adjust reps/sets/tempo instead. "
    "Add brief technique tips (coaching_tips) for each exercise. "
    "Keep warmup and cooldown short, simple, and varied. "
    "All generated text must be in Russian. "
    "Analyze workout history carefully: compare planned vs actual performance to understand the athlete's capabilities. "
    "Use total_volume_kg, RPE, recovery_status, and exercise completion status to adjust progression. "
    "Pay attention to technical_notes and red_flags to address issues. "
    "If the athlete consistently fails to complete planned reps/sets, reduce volume or adjust intensity. "
    "If the athlete easily completes all sets with low RPE, gradually increase volume or intensity."
)

FEEDBACK_RULES = """\
ВАЖНО: Для каждого упражнения из плана ДОЛЖЕН быть объект в actual_data с реальными значениями weight, reps, sets.

ПРАВИЛА ПОДСЧЕТА (строго следуй им):
1. Двуручные упражнения (Swing, Goblet Squat): sets = количество подходов. НЕ УМНОЖАЙ НА 2.
2. Односторонние упражнения (One Arm Press/Row/Lunge): sets = СУММА подходов на обе стороны \
(например, план 3x5 на сторону -> sets=6, reps=5).
3. Упражнения на время (Carry, Plank): reps = время выполнения в секундах, sets = количество подходов.
4. EMOM и интервалы: sets = количество раундов (минут), reps = количество повторений в раунде.

Если пользователь не указал конкретные числа, используй значения из плана, применяя эти правила.
Не задавай уточняющих вопросов: coach_feedback должен быть завершенным комментарием тренера."""


def escape_json_string(value: str) -> str:
    """Escape a string for embedding inside a double-quoted JSON literal.

    Handles quote, backslash, the named control escapes and any other
    character below U+0020 as `\\uXXXX`. Everything else passes through.
    """
    parts: list[str] = []
    for char in value:
        match char:
            case '"':
                parts.append('\\"')
            case "\\":
                parts.append("\\\\")
            case "\n":
                parts.append("\\n")
            case "\r":
                parts.append("\\r")
            case "\t":
                parts.append("\\t")
            case "\b":
                parts.append("\\b")
            case "\f":
                parts.append("\\f")
            case _ if ord(char) < 0x20:
                parts.append(f"\\u{ord(char):04x}")
            case _:
                parts.append(char)
    return "".join(parts)


def _quoted_or_null(value: str | None) -> str:
    if value is None or not value.strip():
        return "null"
    return f'"{escape_json_string(value)}"'


def _int_or_null(value: int | None) -> str:
    return "null" if value is None else str(value)


def _derived_status(performance: ExercisePerformance) -> str:
    if performance.completed:
        return performance.status or "completed"
    return performance.status or "failed"


def _planned_summary(exercises: list[Exercise]) -> str:
    return ", ".join(f"{escape_json_string(ex.name)} {ex.weight}kg {ex.prescription()}".strip() for ex in exercises)


def _exercise_entry(actual: ExercisePerformance, planned: Exercise | None) -> str:
    return (
        "{"
        f'"name": "{escape_json_string(actual.name)}", '
        f'"planned_weight_kg": {planned.weight if planned else 0}, '
        f'"planned_reps": {_int_or_null(planned.reps if planned else None)}, '
        f'"planned_sets": {_int_or_null(planned.sets if planned else None)}, '
        f'"planned_time_work_sec": {_int_or_null(planned.time_work if planned else None)}, '
        f'"planned_time_rest_sec": {_int_or_null(planned.time_rest if planned else None)}, '
        f'"actual_weight_kg": {actual.weight}, '
        f'"actual_reps": {actual.reps}, '
        f'"actual_sets": {actual.sets}, '
        f'"status": "{escape_json_string(_derived_status(actual))}"'
        "}"
    )


def _history_entry(workout: Workout, performance: ActualPerformance) -> str:
    planned = workout.plan.exercises
    exercises = ",\n        ".join(
        _exercise_entry(actual, planned[index] if index < len(planned) else None) for index, actual in enumerate(performance.data)
    )
    red_flags = ", ".join(f'"{escape_json_string(issue)}"' for issue in performance.issues)
    completed_at = workout.timing.completed_at or workout.created_at
    return (
        "{\n"
        f'      "date": "{completed_at.isoformat()}",\n'
        f'      "planned_exercises": "{_planned_summary(planned)}",\n'
        f'      "exercises": [\n        {exercises}\n      ],\n'
        f'      "total_volume_kg": {calculate_volume(performance.data)},\n'
        f'      "rpe": {_int_or_null(performance.rpe)},\n'
        f'      "recovery_status": {_quoted_or_null(performance.recovery_status)},\n'
        f'      "red_flags": [{red_flags}],\n'
        f'      "technical_notes": {_quoted_or_null(performance.technical_notes)}\n'
        "    }"
    )


def build_workout_prompt(context: WorkoutContext) -> str:
    """Build the user prompt for plan generation.

    Args:
        context: Athlete profile, equipment, recent history and periodization flags

    Returns:
        Prompt text shaped as a JSON document
    """
    profile = context.profile.profile
    history_entries = [(w, w.actual_performance) for w in context.recent_workouts if w.actual_performance is not None]
    history = ",\n    ".join(_history_entry(w, p) for w, p in history_entries[:MAX_HISTORY_ENTRIES])
    weights = context.available_weights or profile.weights

    return (
        "{\n"
        '  "context": {\n'
        '    "athlete": {\n'
        f'      "experience": "{profile.experience.value}",\n'
        f'      "weight": {profile.body_weight},\n'
        f'      "gender": "{profile.gender.value}",\n'
        f'      "goal": "{escape_json_string(profile.goal.display_name())}"\n'
        "    },\n"
        '    "equipment": {\n'
        f'      "available_kettlebells": [{", ".join(str(w) for w in weights)}]\n'
        "    },\n"
        f'    "history": [\n    {history}\n    ],\n'
        f'    "current_week": {context.training_week},\n'
        f'    "is_deload": {"true" if context.suggest_deload else "false"}\n'
        "  },\n"
        f'  "instructions": "{escape_json_string(WORKOUT_INSTRUCTIONS)}"\n'
        "}"
    )


def build_feedback_prompt(feedback: str, plan: WorkoutPlan) -> str:
    """Build the user prompt for feedback analysis against the original plan."""
    exercises = ", ".join(
        f"{ex.name}: {ex.weight}kg, {ex.prescription() or 'без параметров'}" for ex in plan.exercises
    )
    return (
        "Сравни запланированную тренировку и отзыв пользователя.\n"
        "План:\n"
        f"Warmup: {plan.warmup}\n"
        f"Exercises: [{exercises}]\n"
        f"Cooldown: {plan.cooldown}\n\n"
        "Отзыв пользователя:\n"
        f'"{escape_json_string(feedback)}"\n\n'
        "КРИТИЧЕСКИ ВАЖНО: Ответ ТОЛЬКО в формате JSON, без дополнительного текста. Структура:\n"
        "{\n"
        '  "actual_data": [\n'
        '    {"name": "точное_название_упражнения_из_плана", "weight": число_в_кг, "reps": число_повторов, '
        '"sets": число_подходов, "status": "completed|partial|failed"}\n'
        "  ],\n"
        '  "rpe": число_от_1_до_10,\n'
        '  "recovery_status": "good/fatigued/injured",\n'
        '  "technical_notes": "краткий вывод о технике на основе слов пользователя",\n'
        '  "red_flags": ["список жалоб на боль или дискомфорт"],\n'
        '  "coach_feedback": "Твой ответ атлету"\n'
        "}\n\n"
        f"{FEEDBACK_RULES}"
    )
