"""Product analytics: fire-and-forget event tracking and a daily report."""

from __future__ import annotations

import asyncio
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from enum import StrEnum

from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from app.db.models import AnalyticsEventRecord
from app.db.session import session_scope


class EventType(StrEnum):
    COMMAND = "COMMAND"
    STATE_CHANGE = "STATE_CHANGE"
    ACTION = "ACTION"
    ERROR = "ERROR"


class AnalyticsEvent(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: int
    type: EventType
    name: str
    metadata: dict[str, str] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DailyReport(BaseModel):
    active_users: int
    new_users: int
    workouts_started: int
    workouts_finished: int
    top_commands: list[tuple[str, int]]

    def render(self) -> str:
        lines = [
            "📊 Отчет за последние 24 часа:",
            f"👥 Активные пользователи (DAU): {self.active_users}",
            f"🆕 Новые пользователи: {self.new_users}",
            f"🏋️ Тренировки: начато {self.workouts_started} / завершено {self.workouts_finished}",
            "",
            "🔝 Топ команд:",
        ]
        lines.extend(f"- {name}: {count}" for name, count in self.top_commands)
        return "\n".join(lines)


class AnalyticsService:
    """Records analytics events without ever blocking or failing the caller."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory
        self._pending: set[asyncio.Task[None]] = set()

    def track(self, user_id: int, event_type: EventType, name: str, metadata: dict[str, str] | None = None) -> None:
        """Schedule persistence of an event and return immediately.

        Must be called from a running event loop.
        """
        event = AnalyticsEvent(user_id=user_id, type=event_type, name=name, metadata=metadata or {})
        task = asyncio.get_running_loop().create_task(self._persist(event))
        # Keep a reference so the task is not garbage collected mid-flight
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for in-flight events (used on shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _persist(self, event: AnalyticsEvent) -> None:
        try:
            await asyncio.to_thread(self._save, event)
        except Exception as e:
            logger.warning(f"[ANALYTICS] Failed to track event {event.name} for user {event.user_id}: {e}")

    def _save(self, event: AnalyticsEvent) -> None:
        with session_scope(self._session_factory) as session:
            session.add(
                AnalyticsEventRecord(
                    id=event.id,
                    user_id=event.user_id,
                    type=event.type.value,
                    name=event.name,
                    event_metadata=event.metadata,
                    timestamp=event.timestamp,
                )
            )

    async def daily_report(self, now: datetime | None = None) -> DailyReport:
        """Summarize events of the last 24 hours."""
        since = (now or datetime.now(timezone.utc)) - timedelta(hours=24)
        events = await asyncio.to_thread(self._load_since, since)

        commands = Counter(e.name for e in events if e.type == EventType.COMMAND)
        return DailyReport(
            active_users=len({e.user_id for e in events}),
            new_users=sum(1 for e in events if e.type == EventType.COMMAND and e.name == "/start"),
            workouts_started=sum(1 for e in events if e.name == "start_workout"),
            workouts_finished=sum(1 for e in events if e.name == "finish_workout"),
            top_commands=commands.most_common(5),
        )

    def _load_since(self, since: datetime) -> list[AnalyticsEvent]:
        with session_scope(self._session_factory) as session:
            records = session.execute(select(AnalyticsEventRecord).where(AnalyticsEventRecord.timestamp >= since)).scalars().all()
            return [
                AnalyticsEvent(
                    id=r.id,
                    user_id=r.user_id,
                    type=EventType(r.type),
                    name=r.name,
                    metadata=r.event_metadata or {},
                    timestamp=r.timestamp,
                )
                for r in records
            ]
