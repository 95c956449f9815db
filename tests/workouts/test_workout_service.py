"""Tests for the workout lifecycle, quota and deload logic."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from app.core.errors import (
    FeedbackAnalysisFailedError,
    InvalidInputError,
    InvalidStateTransitionError,
    SubscriptionLimitExceededError,
    UserNotFoundError,
    WorkoutNotFoundError,
)
from app.users.models import Subscription, SubscriptionType, UserProfile, UserState
from app.workouts.models import (
    ActualPerformance,
    AILog,
    Exercise,
    ExercisePerformance,
    Workout,
    WorkoutPlan,
    WorkoutStatus,
    WorkoutTiming,
)
from app.workouts.service import NO_WEIGHTS_MESSAGE, merge_ai_log, should_suggest_deload, training_week


def make_completed(user_id: int, days_ago: float, rpe: int = 7, reps: int = 10) -> Workout:
    finished = datetime.now(timezone.utc) - timedelta(days=days_ago)
    return Workout(
        user_id=user_id,
        status=WorkoutStatus.COMPLETED,
        plan=WorkoutPlan(exercises=[Exercise(name="Swing", weight=16, reps=reps, sets=5)]),
        actual_performance=ActualPerformance(
            raw_feedback="ok",
            data=[ExercisePerformance(name="Swing", weight=16, reps=reps, sets=5, completed=True)],
            rpe=rpe,
        ),
        timing=WorkoutTiming(started_at=finished - timedelta(minutes=40), completed_at=finished, duration_seconds=2400),
        created_at=finished - timedelta(minutes=45),
    )


class TestDeloadRule:
    def test_high_effort_with_rising_volume(self):
        # Most recent first: volume rises over time
        recent = [make_completed(1, 1, rpe=9, reps=12), make_completed(1, 3, rpe=9, reps=11), make_completed(1, 5, rpe=10, reps=10)]
        assert should_suggest_deload(recent)

    def test_flat_volume_counts_as_stagnation(self):
        recent = [make_completed(1, d, rpe=9, reps=10) for d in (1, 3, 5)]
        assert should_suggest_deload(recent)

    def test_falling_volume(self):
        recent = [make_completed(1, 1, rpe=9, reps=8), make_completed(1, 3, rpe=9, reps=10), make_completed(1, 5, rpe=9, reps=12)]
        assert not should_suggest_deload(recent)

    def test_rpe_threshold_is_exclusive(self):
        recent = [make_completed(1, 1, rpe=9), make_completed(1, 3, rpe=8), make_completed(1, 5, rpe=9)]
        assert not should_suggest_deload(recent)

    def test_needs_exactly_three_workouts(self):
        assert not should_suggest_deload([make_completed(1, d, rpe=10) for d in (1, 3)])
        assert not should_suggest_deload([])

    def test_missing_rpe(self):
        recent = [make_completed(1, d, rpe=9) for d in (1, 3, 5)]
        recent[0].actual_performance.rpe = None
        assert not should_suggest_deload(recent)


def test_training_week_counts_from_profile_creation():
    now = datetime(2026, 3, 20, tzinfo=timezone.utc)
    profile = UserProfile(id=1)
    profile.metadata.created_at = now - timedelta(days=15)
    assert training_week(profile, now) == 3

    profile.metadata.created_at = now - timedelta(hours=1)
    assert training_week(profile, now) == 1


def test_merge_ai_log():
    plan_log = AILog(tokens_used=120, model_version="m", plan_generation_ms=900)
    merged = merge_ai_log(plan_log, AILog(tokens_used=80, feedback_analysis_ms=400))
    assert (merged.tokens_used, merged.plan_generation_ms, merged.feedback_analysis_ms) == (200, 900, 400)
    assert merge_ai_log(plan_log, None) is plan_log


class TestGenerateWorkout:
    @pytest.mark.asyncio
    async def test_unknown_user(self, container):
        with pytest.raises(UserNotFoundError):
            await container.workout_service.generate_workout_plan(1)

    @pytest.mark.asyncio
    async def test_no_weights(self, container, seed_profile, fake_ai):
        await seed_profile(user_id=1, weights=[])
        with pytest.raises(InvalidInputError) as excinfo:
            await container.workout_service.generate_workout_plan(1)
        assert excinfo.value.message == NO_WEIGHTS_MESSAGE
        assert fake_ai.calls == []

    @pytest.mark.asyncio
    async def test_persists_planned_workout_without_touching_state(self, container, seed_profile, fake_ai, plan_reply):
        await seed_profile(user_id=1)
        fake_ai.queue(plan_reply)

        workout = await container.workout_service.generate_workout_plan(1)

        stored = await container.workouts.find_by_id(workout.id)
        assert stored.status == WorkoutStatus.PLANNED
        assert stored.ai_log.tokens_used == 100
        assert len(stored.plan.exercises) == 2
        assert await container.fsm.get_current_state(1) == UserState.IDLE

    @pytest.mark.asyncio
    async def test_free_quota_exhausted(self, container, seed_profile, fake_ai):
        await seed_profile(user_id=1)
        for day in range(10):
            await container.workouts.save(make_completed(1, day + 1))

        with pytest.raises(SubscriptionLimitExceededError):
            await container.workout_service.generate_workout_plan(1)
        assert fake_ai.calls == []

    @pytest.mark.asyncio
    async def test_quota_window_is_rolling(self, container, seed_profile, fake_ai, plan_reply):
        await seed_profile(user_id=1)
        for day in range(9):
            await container.workouts.save(make_completed(1, day + 1))
        await container.workouts.save(make_completed(1, 31))
        fake_ai.queue(plan_reply)

        workout = await container.workout_service.generate_workout_plan(1)
        assert workout.status == WorkoutStatus.PLANNED

    @pytest.mark.asyncio
    async def test_premium_skips_quota(self, container, seed_profile, fake_ai, plan_reply):
        profile = await seed_profile(user_id=1)
        profile.subscription = Subscription(type=SubscriptionType.PREMIUM)
        await container.users.save(profile)
        for day in range(12):
            await container.workouts.save(make_completed(1, day + 1))
        fake_ai.queue(plan_reply)

        await container.workout_service.generate_workout_plan(1)
        assert len(fake_ai.calls) == 1

    @pytest.mark.asyncio
    async def test_deload_flag_reaches_prompt(self, container, seed_profile, fake_ai, plan_reply):
        await seed_profile(user_id=1)
        for day, reps in ((5, 10), (3, 11), (1, 12)):
            await container.workouts.save(make_completed(1, day, rpe=9, reps=reps))
        fake_ai.queue(plan_reply)

        await container.workout_service.generate_workout_plan(1)

        _, prompt = fake_ai.calls[0]
        assert '"is_deload": true' in prompt


class TestLifecycle:
    @pytest_asyncio.fixture
    async def planned(self, container, seed_profile, fake_ai, plan_reply):
        await seed_profile(user_id=1, state=UserState.WORKOUT_REQUESTED)
        fake_ai.queue(plan_reply)
        return await container.workout_service.generate_workout_plan(1)

    @pytest.mark.asyncio
    async def test_full_cycle(self, container, fake_ai, feedback_reply, planned):
        service = container.workout_service

        started = await service.start_workout(1, planned.id)
        assert started.status == WorkoutStatus.IN_PROGRESS
        assert started.timing.started_at is not None
        assert await container.fsm.get_current_state(1) == UserState.WORKOUT_IN_PROGRESS

        finished = await service.finish_workout(1, planned.id)
        assert finished.status == WorkoutStatus.IN_PROGRESS
        assert finished.timing.duration_seconds >= 0
        assert await container.fsm.get_current_state(1) == UserState.WORKOUT_FEEDBACK_PENDING

        fake_ai.queue(feedback_reply)
        completed = await service.process_feedback(1, planned.id, "Всё сделал")
        assert completed.status == WorkoutStatus.COMPLETED
        assert completed.actual_performance.raw_feedback == "Всё сделал"
        assert completed.ai_log.tokens_used == 200
        assert service.calculate_total_volume(completed) == 1200 + 576
        assert await container.fsm.get_current_state(1) == UserState.IDLE

    @pytest.mark.asyncio
    async def test_degenerate_feedback_still_completes(self, container, fake_ai, planned):
        service = container.workout_service
        await service.start_workout(1, planned.id)
        await service.finish_workout(1, planned.id)
        fake_ai.queue('{"actual_data": []}')

        completed = await service.process_feedback(1, planned.id, "что-то делал")

        assert completed.status == WorkoutStatus.COMPLETED
        assert completed.actual_performance.data == []
        assert completed.actual_performance.issues == []
        assert service.calculate_total_volume(completed) == 0
        assert (await container.workouts.find_by_id(planned.id)).status == WorkoutStatus.COMPLETED
        assert await container.fsm.get_current_state(1) == UserState.IDLE

    @pytest.mark.asyncio
    async def test_other_users_workout_is_not_found(self, container, planned):
        with pytest.raises(WorkoutNotFoundError):
            await container.workout_service.start_workout(2, planned.id)

    @pytest.mark.asyncio
    async def test_start_twice_rejected(self, container, planned):
        await container.workout_service.start_workout(1, planned.id)
        with pytest.raises(InvalidStateTransitionError):
            await container.workout_service.start_workout(1, planned.id)

    @pytest.mark.asyncio
    async def test_finish_requires_start(self, container, planned):
        with pytest.raises(InvalidStateTransitionError):
            await container.workout_service.finish_workout(1, planned.id)

    @pytest.mark.asyncio
    async def test_feedback_on_completed_workout_rejected(self, container, fake_ai, feedback_reply, planned):
        service = container.workout_service
        await service.start_workout(1, planned.id)
        await service.finish_workout(1, planned.id)
        fake_ai.queue(feedback_reply)
        await service.process_feedback(1, planned.id, "ok")

        with pytest.raises(InvalidStateTransitionError):
            await service.process_feedback(1, planned.id, "ещё раз")
        assert len(fake_ai.calls) == 2

    @pytest.mark.asyncio
    async def test_failed_analysis_leaves_workout_open(self, container, fake_ai, planned):
        service = container.workout_service
        await service.start_workout(1, planned.id)
        await service.finish_workout(1, planned.id)
        fake_ai.queue("?", "?", "?")

        with pytest.raises(FeedbackAnalysisFailedError):
            await service.process_feedback(1, planned.id, "ok")

        stored = await container.workouts.find_by_id(planned.id)
        assert stored.status == WorkoutStatus.IN_PROGRESS
        assert await container.fsm.get_current_state(1) == UserState.WORKOUT_FEEDBACK_PENDING

    @pytest.mark.asyncio
    async def test_cancel_open_workouts(self, container, fake_ai, plan_reply, planned):
        service = container.workout_service
        await service.start_workout(1, planned.id)
        fake_ai.queue(plan_reply)
        second = await service.generate_workout_plan(1)

        assert await service.cancel_open_workouts(1) == 2
        assert (await container.workouts.find_by_id(planned.id)).status == WorkoutStatus.CANCELLED
        assert (await container.workouts.find_by_id(second.id)).status == WorkoutStatus.CANCELLED
        assert await service.cancel_open_workouts(1) == 0

    @pytest.mark.asyncio
    async def test_completed_workout_cannot_be_cancelled(self, container):
        workout = make_completed(1, 1)
        await container.workouts.save(workout)
        with pytest.raises(InvalidStateTransitionError):
            await container.workout_service.cancel_workout(1, workout.id)
