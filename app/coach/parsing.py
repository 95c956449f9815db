"""Defensive parsing of model replies into domain records.

Model output is untrusted: it may be wrapped in markdown fences or prose,
numbers may arrive as strings, and any field may be missing. Replies are
validated against lenient reply models; only the required top-level arrays
are enforced and everything else degrades to "not specified". Nothing
partially parsed leaves this module: a reply either yields a complete record
or raises `ResponseParseError`.
"""

from __future__ import annotations

import json
import math
from typing import Any, TypeVar

from loguru import logger
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from app.workouts.models import ActualPerformance, AILog, Exercise, ExercisePerformance, WorkoutPlan

_VALID_STATUSES = {"completed", "partial", "failed"}
_COMPLETED_STATUSES = {"completed", "partial"}

ReplyT = TypeVar("ReplyT", bound=BaseModel)


class ResponseParseError(ValueError):
    """Model reply could not be turned into the expected record."""


def extract_json_object(raw: str) -> dict[str, Any]:
    """Parse the substring from the first `{` to the last `}` as a JSON object.

    Raises:
        ResponseParseError: If no braces are found or the substring is not a JSON object
    """
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end <= start:
        raise ResponseParseError("No JSON object found in model reply")

    try:
        parsed = json.loads(raw[start : end + 1])
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Malformed JSON in model reply: {e}") from e

    if not isinstance(parsed, dict):
        raise ResponseParseError("Model reply is not a JSON object")
    return parsed


def coerce_int(value: Any) -> int | None:
    """Permissive int coercion: whole numbers and numeric strings, else None.

    Fractional values ("16.5", 7.6) count as not specified rather than being
    rounded. Booleans are rejected even though they are ints in Python.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            value = float(text.replace(",", "."))
        except ValueError:
            return None
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return None


def _as_text(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    return None


class _ExerciseReply(BaseModel):
    name: str | None = None
    weight: int | None = None
    reps: int | None = None
    sets: int | None = None
    time_work: int | None = Field(default=None, validation_alias=AliasChoices("timeWork", "time_work"))
    time_rest: int | None = Field(default=None, validation_alias=AliasChoices("timeRest", "time_rest"))
    coaching_tips: str | None = None

    @field_validator("weight", "reps", "sets", "time_work", "time_rest", mode="before")
    @classmethod
    def lenient_int(cls, value: Any) -> int | None:
        return coerce_int(value)

    @field_validator("name", "coaching_tips", mode="before")
    @classmethod
    def lenient_text(cls, value: Any) -> str | None:
        return _as_text(value)

    def to_exercise(self) -> Exercise:
        return Exercise(
            name=self.name or "",
            weight=self.weight or 0,
            reps=self.reps,
            sets=self.sets,
            time_work=self.time_work,
            time_rest=self.time_rest,
            coaching_tips=self.coaching_tips,
        )


class _PlanReply(BaseModel):
    warmup: str | None = None
    exercises: list[_ExerciseReply]
    cooldown: str | None = None

    @field_validator("warmup", "cooldown", mode="before")
    @classmethod
    def lenient_text(cls, value: Any) -> str | None:
        return _as_text(value)


class _PerformanceEntryReply(BaseModel):
    name: str | None = None
    weight: int | None = None
    reps: int | None = None
    sets: int | None = None
    status: str | None = None

    @field_validator("weight", "reps", "sets", mode="before")
    @classmethod
    def lenient_int(cls, value: Any) -> int | None:
        return coerce_int(value)

    @field_validator("name", mode="before")
    @classmethod
    def lenient_text(cls, value: Any) -> str | None:
        return _as_text(value)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> str | None:
        text = _as_text(value)
        return text.strip().lower() if text else None

    def to_performance(self) -> ExercisePerformance:
        return ExercisePerformance(
            name=self.name or "",
            weight=self.weight or 0,
            reps=self.reps or 0,
            sets=self.sets or 0,
            completed=self.status in _COMPLETED_STATUSES,
            status=self.status if self.status in _VALID_STATUSES else None,
        )


class _FeedbackReply(BaseModel):
    actual_data: list[_PerformanceEntryReply]
    rpe: int | None = None
    red_flags: list[str] = Field(default_factory=list)
    recovery_status: str | None = None
    technical_notes: str | None = None
    coach_feedback: str | None = None

    @field_validator("rpe", mode="before")
    @classmethod
    def lenient_int(cls, value: Any) -> int | None:
        return coerce_int(value)

    @field_validator("recovery_status", "technical_notes", "coach_feedback", mode="before")
    @classmethod
    def lenient_text(cls, value: Any) -> str | None:
        return _as_text(value)

    @field_validator("red_flags", mode="before")
    @classmethod
    def drop_empty_flags(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        return [text for text in (_as_text(flag) for flag in value) if text]


def _validate_reply(model: type[ReplyT], raw: str) -> ReplyT:
    data = extract_json_object(raw)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.error(f"[AI] Model reply failed validation: {e.error_count()} errors. Available keys: {sorted(data.keys())}")
        raise ResponseParseError(f"Invalid model reply: {e}") from e


def parse_workout_plan(raw: str, ai_log: AILog | None = None) -> WorkoutPlan:
    """Parse a plan-generation reply.

    Args:
        raw: Model reply text
        ai_log: Usage metadata to attach to the plan

    Returns:
        Parsed plan

    Raises:
        ResponseParseError: If the reply has no JSON object or no `exercises` array
    """
    reply = _validate_reply(_PlanReply, raw)
    return WorkoutPlan(
        warmup=reply.warmup or "",
        exercises=[entry.to_exercise() for entry in reply.exercises],
        cooldown=reply.cooldown or "",
        ai_log=ai_log,
    )


def parse_actual_performance(raw: str, raw_feedback: str, ai_log: AILog | None = None) -> ActualPerformance:
    """Parse a feedback-analysis reply.

    Absent numeric fields default to 0. An RPE outside 1..10 is dropped.

    Args:
        raw: Model reply text
        raw_feedback: The athlete's original feedback, stored verbatim
        ai_log: Usage metadata to attach

    Returns:
        Parsed performance (possibly with an empty `data` list)

    Raises:
        ResponseParseError: If the reply has no JSON object or no `actual_data` array
    """
    reply = _validate_reply(_FeedbackReply, raw)
    entries = [entry.to_performance() for entry in reply.actual_data]

    rpe = reply.rpe
    if rpe is not None and not 1 <= rpe <= 10:
        logger.warning(f"[AI] Ignoring out-of-range RPE {rpe}")
        rpe = None

    performance = ActualPerformance(
        raw_feedback=raw_feedback,
        data=entries,
        rpe=rpe,
        issues=reply.red_flags,
        recovery_status=reply.recovery_status,
        technical_notes=reply.technical_notes,
        coach_feedback=reply.coach_feedback,
        ai_log=ai_log,
    )
    logger.debug(
        f"[AI] Parsed {len(entries)} exercises from feedback: rpe={rpe}, recovery={performance.recovery_status}, "
        f"issues={performance.issues}"
    )
    return performance
