"""Workout domain models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field

from app.users.models import UserProfile

PerformanceStatus = Literal["completed", "partial", "failed"]


class WorkoutStatus(StrEnum):
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class AILog(BaseModel):
    """AI usage recorded for one workout across its plan and feedback phases."""

    tokens_used: int = 0
    model_version: str = ""
    plan_generation_ms: int = 0
    feedback_analysis_ms: int | None = None
    finish_reason: str | None = None


class Exercise(BaseModel):
    """One planned exercise.

    Either `reps`/`sets` or `time_work`/`time_rest` carry the prescription.
    """

    name: str
    weight: int = 0
    reps: int | None = None
    sets: int | None = None
    time_work: int | None = None
    time_rest: int | None = None
    coaching_tips: str | None = None

    def prescription(self) -> str:
        """Short human-readable prescription, e.g. '10x3' or '40s/20s'."""
        if self.reps is not None and self.sets is not None:
            return f"{self.reps}x{self.sets}"
        if self.time_work is not None and self.time_rest is not None:
            return f"{self.time_work}s/{self.time_rest}s"
        if self.time_work is not None:
            return f"{self.time_work}s"
        return ""


class WorkoutPlan(BaseModel):
    warmup: str = ""
    exercises: list[Exercise] = Field(default_factory=list)
    cooldown: str = ""
    ai_log: AILog | None = None


class ExercisePerformance(BaseModel):
    name: str
    weight: int = 0
    reps: int = 0
    sets: int = 0
    completed: bool = False
    status: PerformanceStatus | None = None


class ActualPerformance(BaseModel):
    raw_feedback: str
    data: list[ExercisePerformance] = Field(default_factory=list)
    rpe: int | None = Field(default=None, ge=1, le=10)
    issues: list[str] = Field(default_factory=list)
    recovery_status: str | None = None
    technical_notes: str | None = None
    coach_feedback: str | None = None
    ai_log: AILog | None = None


class WorkoutTiming(BaseModel):
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_seconds: int | None = None


class Workout(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: int
    status: WorkoutStatus = WorkoutStatus.PLANNED
    plan: WorkoutPlan
    actual_performance: ActualPerformance | None = None
    timing: WorkoutTiming = Field(default_factory=WorkoutTiming)
    ai_log: AILog = Field(default_factory=AILog)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    schema_version: int = 1


class WorkoutContext(BaseModel):
    """Everything plan generation needs; built per request, never persisted."""

    profile: UserProfile
    recent_workouts: list[Workout] = Field(default_factory=list)
    available_weights: list[int] = Field(default_factory=list)
    training_week: int = 1
    suggest_deload: bool = False
