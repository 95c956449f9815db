"""Workout lifecycle: generate -> start -> finish -> feedback.

Workout status only moves forward (PLANNED -> IN_PROGRESS -> COMPLETED, or
PLANNED/IN_PROGRESS -> CANCELLED). Each step checks ownership and the
expected status before writing, then drives the owner's conversation state.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from loguru import logger

from app.coach.ai_service import AIService
from app.coach.fsm import FSMManager
from app.config.settings import Settings
from app.core.errors import (
    InvalidInputError,
    InvalidStateTransitionError,
    SubscriptionLimitExceededError,
    UserNotFoundError,
    WorkoutNotFoundError,
)
from app.users.models import UserProfile, UserState
from app.users.repository import UserRepository, as_utc
from app.workouts.models import AILog, Workout, WorkoutContext, WorkoutStatus, WorkoutTiming
from app.workouts.repository import WorkoutRepository
from app.workouts.volume import calculate_total_volume

DELOAD_WINDOW = 3
DELOAD_RPE_THRESHOLD = 8
NO_WEIGHTS_MESSAGE = "В профиле не указаны гири. Пожалуйста, добавьте их через настройки (/profile)."


def should_suggest_deload(recent_workouts: list[Workout]) -> bool:
    """Deload when effort stays high while volume stagnates or climbs.

    Args:
        recent_workouts: Performance-bearing workouts, most recent first

    Returns:
        True iff there are exactly three workouts, every RPE is above 8 and
        their volumes are non-decreasing in chronological order
    """
    if len(recent_workouts) != DELOAD_WINDOW:
        return False

    for workout in recent_workouts:
        performance = workout.actual_performance
        if performance is None or performance.rpe is None or performance.rpe <= DELOAD_RPE_THRESHOLD:
            return False

    oldest, middle, newest = (calculate_total_volume(w) for w in reversed(recent_workouts))
    return oldest <= middle <= newest


def training_week(profile: UserProfile, now: datetime | None = None) -> int:
    """1-based week number counted from profile creation."""
    now = now or datetime.now(timezone.utc)
    elapsed = now - as_utc(profile.metadata.created_at)
    return max(elapsed.days // 7, 0) + 1


def merge_ai_log(current: AILog, feedback_log: AILog | None) -> AILog:
    """Fold feedback-analysis usage into the workout's running AI log."""
    if feedback_log is None:
        return current
    return current.model_copy(
        update={
            "tokens_used": current.tokens_used + feedback_log.tokens_used,
            "feedback_analysis_ms": feedback_log.feedback_analysis_ms,
        }
    )


class WorkoutService:
    def __init__(
        self,
        workout_repository: WorkoutRepository,
        user_repository: UserRepository,
        ai_service: AIService,
        fsm: FSMManager,
        settings: Settings,
    ):
        self._workouts = workout_repository
        self._users = user_repository
        self._ai = ai_service
        self._fsm = fsm
        self._settings = settings

    async def generate_workout_plan(self, user_id: int) -> Workout:
        """Generate and persist a new PLANNED workout.

        Conversation state is left alone; callers move the user to
        WORKOUT_REQUESTED before calling.

        Raises:
            UserNotFoundError: No profile for `user_id`
            InvalidInputError: Profile has no kettlebell weights
            SubscriptionLimitExceededError: Free-tier quota reached
        """
        user = await self._users.find_by_id(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        if not user.profile.weights:
            raise InvalidInputError(NO_WEIGHTS_MESSAGE)

        now = datetime.now(timezone.utc)
        if user.subscription.is_free_tier(now):
            window_start = now - timedelta(days=self._settings.quota_window_days)
            completed = await self._workouts.count_completed_after(user_id, window_start)
            if completed >= self._settings.free_monthly_limit:
                logger.info(f"[WORKOUT] User {user_id} hit the free limit ({completed}/{self._settings.free_monthly_limit})")
                raise SubscriptionLimitExceededError(self._settings.free_monthly_limit)

        recent = await self._workouts.find_recent_with_performance(user_id, DELOAD_WINDOW)
        suggest_deload = should_suggest_deload(recent)
        if suggest_deload:
            logger.info(f"[WORKOUT] Deload suggested for user {user_id}")

        context = WorkoutContext(
            profile=user,
            recent_workouts=recent,
            available_weights=user.profile.weights,
            training_week=training_week(user, now),
            suggest_deload=suggest_deload,
        )
        plan = await self._ai.generate_workout_plan(context)

        workout = Workout(
            user_id=user_id,
            status=WorkoutStatus.PLANNED,
            plan=plan,
            timing=WorkoutTiming(),
            ai_log=plan.ai_log or AILog(model_version=self._settings.openai_model),
        )
        await self._workouts.save(workout)
        logger.info(f"[WORKOUT] Generated workout {workout.id} for user {user_id} ({len(plan.exercises)} exercises)")
        return workout

    async def _owned_workout(self, user_id: int, workout_id: str) -> Workout:
        workout = await self._workouts.find_by_id(workout_id)
        if workout is None or workout.user_id != user_id:
            raise WorkoutNotFoundError(workout_id)
        return workout

    @staticmethod
    def _require_status(workout: Workout, expected: WorkoutStatus, target: WorkoutStatus) -> None:
        if workout.status != expected:
            raise InvalidStateTransitionError(workout.status.value, target.value)

    async def start_workout(self, user_id: int, workout_id: str) -> Workout:
        workout = await self._owned_workout(user_id, workout_id)
        self._require_status(workout, WorkoutStatus.PLANNED, WorkoutStatus.IN_PROGRESS)

        workout.status = WorkoutStatus.IN_PROGRESS
        workout.timing.started_at = datetime.now(timezone.utc)
        await self._workouts.save(workout)
        await self._fsm.transition_to(user_id, UserState.WORKOUT_IN_PROGRESS)

        logger.info(f"[WORKOUT] User {user_id} started workout {workout_id}")
        return workout

    async def finish_workout(self, user_id: int, workout_id: str) -> Workout:
        """Stop the clock. Status stays IN_PROGRESS until feedback arrives."""
        workout = await self._owned_workout(user_id, workout_id)
        self._require_status(workout, WorkoutStatus.IN_PROGRESS, WorkoutStatus.COMPLETED)

        completed_at = datetime.now(timezone.utc)
        started_at = workout.timing.started_at
        workout.timing.completed_at = completed_at
        workout.timing.duration_seconds = int((completed_at - as_utc(started_at)).total_seconds()) if started_at else 0
        await self._workouts.save(workout)
        await self._fsm.transition_to(user_id, UserState.WORKOUT_FEEDBACK_PENDING)

        logger.info(f"[WORKOUT] User {user_id} finished workout {workout_id} in {workout.timing.duration_seconds}s")
        return workout

    async def process_feedback(self, user_id: int, workout_id: str, raw_text: str) -> Workout:
        """Analyze feedback against the original plan and complete the workout.

        Feedback the model could not structure yields an empty performance
        record; that still completes the workout.
        """
        workout = await self._owned_workout(user_id, workout_id)
        if workout.status in (WorkoutStatus.COMPLETED, WorkoutStatus.CANCELLED):
            raise InvalidStateTransitionError(workout.status.value, WorkoutStatus.COMPLETED.value)

        performance = await self._ai.analyze_feedback(raw_text, workout.plan)

        workout.ai_log = merge_ai_log(workout.ai_log, performance.ai_log)
        workout.status = WorkoutStatus.COMPLETED
        workout.actual_performance = performance
        await self._workouts.save(workout)
        await self._fsm.transition_to(user_id, UserState.IDLE)

        logger.info(
            f"[WORKOUT] Feedback processed for workout {workout_id}: "
            f"volume={calculate_total_volume(workout)}kg, rpe={performance.rpe}, exercises={len(performance.data)}"
        )
        return workout

    async def cancel_workout(self, user_id: int, workout_id: str) -> Workout:
        """Cancel a workout that has not been completed yet."""
        workout = await self._owned_workout(user_id, workout_id)
        if workout.status not in (WorkoutStatus.PLANNED, WorkoutStatus.IN_PROGRESS):
            raise InvalidStateTransitionError(workout.status.value, WorkoutStatus.CANCELLED.value)

        workout.status = WorkoutStatus.CANCELLED
        await self._workouts.save(workout)
        logger.info(f"[WORKOUT] User {user_id} cancelled workout {workout_id}")
        return workout

    async def cancel_open_workouts(self, user_id: int) -> int:
        """Cancel every PLANNED or IN_PROGRESS workout of the user."""
        cancelled = 0
        for status in (WorkoutStatus.PLANNED, WorkoutStatus.IN_PROGRESS):
            while (workout := await self._workouts.find_latest_by_status(user_id, status)) is not None:
                await self.cancel_workout(user_id, workout.id)
                cancelled += 1
        return cancelled

    async def find_pending_workout(self, user_id: int, status: WorkoutStatus) -> Workout | None:
        return await self._workouts.find_latest_by_status(user_id, status)

    async def get_workout_history(self, user_id: int, limit: int = 10) -> list[Workout]:
        return await self._workouts.find_by_user_id(user_id, limit)

    @staticmethod
    def calculate_total_volume(workout: Workout) -> int:
        return calculate_total_volume(workout)
