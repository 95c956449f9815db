"""Tests for workout persistence queries."""

from datetime import datetime, timedelta, timezone

import pytest

from app.workouts.models import ActualPerformance, Workout, WorkoutPlan, WorkoutStatus, WorkoutTiming

NOW = datetime.now(timezone.utc)


def make_workout(user_id: int, hours_ago: int, status: WorkoutStatus = WorkoutStatus.PLANNED, **kwargs) -> Workout:
    return Workout(user_id=user_id, status=status, plan=WorkoutPlan(), created_at=NOW - timedelta(hours=hours_ago), **kwargs)


@pytest.mark.asyncio
async def test_save_and_find_preserves_document(container):
    workout = make_workout(1, 1, timing=WorkoutTiming(started_at=NOW))
    await container.workouts.save(workout)

    stored = await container.workouts.find_by_id(workout.id)

    assert stored == workout
    assert stored.timing.started_at.tzinfo is not None
    assert await container.workouts.find_by_id("missing") is None


@pytest.mark.asyncio
async def test_find_by_user_id_is_most_recent_first(container):
    for hours in (5, 1, 3):
        await container.workouts.save(make_workout(1, hours))
    await container.workouts.save(make_workout(2, 0))

    workouts = await container.workouts.find_by_user_id(1, limit=2)

    assert [round((NOW - w.created_at).total_seconds() / 3600) for w in workouts] == [1, 3]


@pytest.mark.asyncio
async def test_find_recent_with_performance(container):
    await container.workouts.save(make_workout(1, 1))
    with_perf = make_workout(1, 2, WorkoutStatus.COMPLETED, actual_performance=ActualPerformance(raw_feedback="ok"))
    await container.workouts.save(with_perf)

    recent = await container.workouts.find_recent_with_performance(1, 3)

    assert [w.id for w in recent] == [with_perf.id]


@pytest.mark.asyncio
async def test_count_completed_after_is_strict(container):
    boundary = NOW - timedelta(days=30)
    at_boundary = make_workout(1, 800, WorkoutStatus.COMPLETED, timing=WorkoutTiming(completed_at=boundary))
    inside = make_workout(1, 10, WorkoutStatus.COMPLETED, timing=WorkoutTiming(completed_at=NOW - timedelta(hours=9)))
    cancelled = make_workout(1, 5, WorkoutStatus.CANCELLED, timing=WorkoutTiming(completed_at=NOW))
    for workout in (at_boundary, inside, cancelled):
        await container.workouts.save(workout)

    assert await container.workouts.count_completed_after(1, boundary) == 1


@pytest.mark.asyncio
async def test_find_latest_by_status(container):
    older = make_workout(1, 4, WorkoutStatus.IN_PROGRESS)
    newer = make_workout(1, 2, WorkoutStatus.IN_PROGRESS)
    for workout in (older, newer, make_workout(1, 1, WorkoutStatus.PLANNED)):
        await container.workouts.save(workout)

    latest = await container.workouts.find_latest_by_status(1, WorkoutStatus.IN_PROGRESS)

    assert latest.id == newer.id
    assert await container.workouts.find_latest_by_status(1, WorkoutStatus.COMPLETED) is None
