"""Repository for user profile documents.

Each method runs a short synchronous session in a worker thread, so callers
on the event loop only ever await.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from app.db.models import UserProfileRecord
from app.db.session import run_in_thread, session_scope
from app.users.models import UserProfile, UserState


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_profile(record: UserProfileRecord) -> UserProfile:
    profile = UserProfile.model_validate(record.document)
    # Indexed column is authoritative for state
    profile.fsm_state = UserState(record.fsm_state)
    return profile


def _apply(record: UserProfileRecord, profile: UserProfile) -> None:
    record.fsm_state = profile.fsm_state.value
    record.next_workout_at = as_utc(profile.scheduling.next_workout) if profile.scheduling else None
    record.document = profile.model_dump(mode="json")


class UserRepository:
    """Async access to `user_profiles`."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    async def find_by_id(self, user_id: int) -> UserProfile | None:
        return await run_in_thread(self._find_by_id, user_id)

    async def save(self, profile: UserProfile) -> None:
        """Insert or replace the whole profile document."""
        await run_in_thread(self._save, profile)

    async def update_state(self, user_id: int, state: UserState) -> None:
        """Persist a conversation state and refresh `last_active`.

        Missing profiles are ignored.
        """
        await run_in_thread(self._update_state, user_id, state)

    async def find_users_with_schedule(self) -> list[UserProfile]:
        return await run_in_thread(self._find_users_with_schedule)

    async def delete_by_id(self, user_id: int) -> bool:
        return await run_in_thread(self._delete_by_id, user_id)

    def _find_by_id(self, user_id: int) -> UserProfile | None:
        with session_scope(self._session_factory) as session:
            record = session.get(UserProfileRecord, user_id)
            return _to_profile(record) if record else None

    def _save(self, profile: UserProfile) -> None:
        with session_scope(self._session_factory) as session:
            record = session.get(UserProfileRecord, profile.id)
            if record is None:
                record = UserProfileRecord(id=profile.id)
                session.add(record)
            _apply(record, profile)

    def _update_state(self, user_id: int, state: UserState) -> None:
        with session_scope(self._session_factory) as session:
            record = session.get(UserProfileRecord, user_id)
            if record is None:
                return
            profile = _to_profile(record)
            profile.fsm_state = state
            profile.metadata.last_active = datetime.now(timezone.utc)
            _apply(record, profile)

    def _find_users_with_schedule(self) -> list[UserProfile]:
        with session_scope(self._session_factory) as session:
            records = session.execute(select(UserProfileRecord).where(UserProfileRecord.next_workout_at.is_not(None))).scalars().all()
            return [_to_profile(r) for r in records]

    def _delete_by_id(self, user_id: int) -> bool:
        with session_scope(self._session_factory) as session:
            result = session.execute(delete(UserProfileRecord).where(UserProfileRecord.id == user_id))
            return result.rowcount > 0
