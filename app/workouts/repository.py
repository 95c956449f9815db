"""Repository for workout documents."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from app.db.models import WorkoutRecord
from app.db.session import run_in_thread, session_scope
from app.users.repository import as_utc
from app.workouts.models import Workout, WorkoutStatus


def _to_workout(record: WorkoutRecord) -> Workout:
    return Workout.model_validate(record.document)


def _apply(record: WorkoutRecord, workout: Workout) -> None:
    record.user_id = workout.user_id
    record.status = workout.status.value
    record.has_performance = workout.actual_performance is not None
    record.created_at = as_utc(workout.created_at)
    record.completed_at = as_utc(workout.timing.completed_at) if workout.timing.completed_at else None
    record.document = workout.model_dump(mode="json")


class WorkoutRepository:
    """Async access to `workouts`.

    Listing methods return workouts most recent first.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    async def save(self, workout: Workout) -> None:
        await run_in_thread(self._save, workout)

    async def find_by_id(self, workout_id: str) -> Workout | None:
        return await run_in_thread(self._find_by_id, workout_id)

    async def find_by_user_id(self, user_id: int, limit: int = 10) -> list[Workout]:
        return await run_in_thread(self._find_by_user_id, user_id, limit)

    async def find_recent_with_performance(self, user_id: int, count: int = 3) -> list[Workout]:
        """Most recent workouts that carry recorded performance."""
        return await run_in_thread(self._find_recent_with_performance, user_id, count)

    async def count_completed_after(self, user_id: int, since: datetime) -> int:
        """Count COMPLETED workouts whose completion time is after `since`."""
        return await run_in_thread(self._count_completed_after, user_id, since)

    async def find_latest_by_status(self, user_id: int, status: WorkoutStatus) -> Workout | None:
        return await run_in_thread(self._find_latest_by_status, user_id, status)

    def _save(self, workout: Workout) -> None:
        with session_scope(self._session_factory) as session:
            record = session.get(WorkoutRecord, workout.id)
            if record is None:
                record = WorkoutRecord(id=workout.id)
                session.add(record)
            _apply(record, workout)

    def _find_by_id(self, workout_id: str) -> Workout | None:
        with session_scope(self._session_factory) as session:
            record = session.get(WorkoutRecord, workout_id)
            return _to_workout(record) if record else None

    def _find_by_user_id(self, user_id: int, limit: int) -> list[Workout]:
        with session_scope(self._session_factory) as session:
            stmt = select(WorkoutRecord).where(WorkoutRecord.user_id == user_id).order_by(WorkoutRecord.created_at.desc()).limit(limit)
            return [_to_workout(r) for r in session.execute(stmt).scalars().all()]

    def _find_recent_with_performance(self, user_id: int, count: int) -> list[Workout]:
        with session_scope(self._session_factory) as session:
            stmt = (
                select(WorkoutRecord)
                .where(WorkoutRecord.user_id == user_id, WorkoutRecord.has_performance.is_(True))
                .order_by(WorkoutRecord.created_at.desc())
                .limit(count)
            )
            return [_to_workout(r) for r in session.execute(stmt).scalars().all()]

    def _count_completed_after(self, user_id: int, since: datetime) -> int:
        with session_scope(self._session_factory) as session:
            stmt = (
                select(func.count())
                .select_from(WorkoutRecord)
                .where(
                    WorkoutRecord.user_id == user_id,
                    WorkoutRecord.status == WorkoutStatus.COMPLETED.value,
                    WorkoutRecord.completed_at > as_utc(since),
                )
            )
            return int(session.execute(stmt).scalar_one())

    def _find_latest_by_status(self, user_id: int, status: WorkoutStatus) -> Workout | None:
        with session_scope(self._session_factory) as session:
            stmt = (
                select(WorkoutRecord)
                .where(WorkoutRecord.user_id == user_id, WorkoutRecord.status == status.value)
                .order_by(WorkoutRecord.created_at.desc())
                .limit(1)
            )
            record = session.execute(stmt).scalars().first()
            return _to_workout(record) if record else None
