"""Training volume calculation.

Volume is the load metric driving progression decisions: weight x reps x sets,
summed across exercises. The calculator is exercise-family agnostic; counting
conventions (unilateral sides, timed work, interval rounds) are normalized
upstream when feedback is parsed.
"""

from collections.abc import Iterable

from loguru import logger

from app.workouts.models import ExercisePerformance, Workout


def exercise_volume(performance: ExercisePerformance) -> int:
    """Volume of one performance record; 0 unless all three factors are positive."""
    if performance.weight > 0 and performance.reps > 0 and performance.sets > 0:
        return performance.weight * performance.reps * performance.sets
    return 0


def calculate_volume(performances: Iterable[ExercisePerformance]) -> int:
    """Sum volume over performance records.

    Records with a zero or missing factor contribute 0: bodyweight work and
    exercises the model could not quantify carry no load volume. The
    `completed` flag is not consulted.
    """
    return sum(exercise_volume(p) for p in performances)


def calculate_total_volume(workout: Workout) -> int:
    """Total volume of a workout; 0 when no performance has been recorded."""
    performance = workout.actual_performance
    if performance is None:
        return 0

    volume = calculate_volume(performance.data)

    if volume == 0 and performance.data:
        details = "; ".join(f"{p.name}: weight={p.weight}, reps={p.reps}, sets={p.sets}, status={p.status}" for p in performance.data)
        logger.warning(f"[VOLUME] Total volume is 0 but exercises exist (workout={workout.id}): {details}")
    elif performance.data:
        logger.debug(f"[VOLUME] Workout {workout.id}: {volume} kg from {len(performance.data)} exercises")

    return volume
