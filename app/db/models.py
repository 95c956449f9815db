"""Database tables.

Profiles and workouts are stored as documents: the full pydantic model lives
in a JSON column, and only the fields used for lookups are mirrored into
indexed columns.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Index, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""


class UserProfileRecord(Base):
    """One row per end user, keyed by the transport user id."""

    __tablename__ = "user_profiles"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    fsm_state: Mapped[str] = mapped_column(String, nullable=False, default="IDLE")
    next_workout_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    document: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class WorkoutRecord(Base):
    """One row per generated plan attempt."""

    __tablename__ = "workouts"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String, nullable=False)
    has_performance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    document: Mapped[dict] = mapped_column(JSON, nullable=False)

    __table_args__ = (
        Index("idx_workouts_user_created", "user_id", "created_at"),
        Index("idx_workouts_user_status", "user_id", "status"),
    )


class AnalyticsEventRecord(Base):
    __tablename__ = "analytics_events"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    event_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
