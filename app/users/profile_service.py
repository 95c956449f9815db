"""Service for managing athlete profiles and parsing profile input typed in chat.

Parsers turn free chat text into typed values and raise `InvalidInputError`
with a user-facing hint when the text cannot be understood. The service
methods then apply domain validation and persist the change.
"""

from __future__ import annotations

import re
from datetime import datetime, time, timedelta, timezone
from typing import Literal
from zoneinfo import ZoneInfo

from loguru import logger

from app.core.errors import FieldValidationError, InvalidInputError, UserNotFoundError
from app.users.models import (
    ExperienceLevel,
    Gender,
    ProfileData,
    TrainingGoal,
    UserProfile,
    UserScheduling,
)
from app.users.repository import UserRepository

MIN_BODY_WEIGHT = 30.0
MAX_BODY_WEIGHT = 250.0
DEFAULT_WORKOUT_TIME = time(18, 0)

ReminderType = Literal["1h", "5m"]

_NUMBER = re.compile(r"\d+(?:[.,]\d+)?")
_SCHEDULE = re.compile(r"^\s*(\d{1,2})\.(\d{1,2})(?:\.(\d{2,4}))?\s+(\d{1,2})[:.](\d{2})\s*$")

_EXPERIENCE_ALIASES = {
    "1": ExperienceLevel.BEGINNER,
    "новичок": ExperienceLevel.BEGINNER,
    "beginner": ExperienceLevel.BEGINNER,
    "2": ExperienceLevel.AMATEUR,
    "любитель": ExperienceLevel.AMATEUR,
    "amateur": ExperienceLevel.AMATEUR,
    "3": ExperienceLevel.PRO,
    "профи": ExperienceLevel.PRO,
    "pro": ExperienceLevel.PRO,
}

_GENDER_ALIASES = {
    "м": Gender.MALE,
    "муж": Gender.MALE,
    "мужской": Gender.MALE,
    "m": Gender.MALE,
    "male": Gender.MALE,
    "ж": Gender.FEMALE,
    "жен": Gender.FEMALE,
    "женский": Gender.FEMALE,
    "f": Gender.FEMALE,
    "female": Gender.FEMALE,
}

_GOAL_ALIASES = {
    "1": TrainingGoal.GENERAL_FITNESS,
    "2": TrainingGoal.STRENGTH,
    "3": TrainingGoal.ENDURANCE,
    "4": TrainingGoal.WEIGHT_LOSS,
    "5": TrainingGoal.MOBILITY,
}


def parse_weights(text: str) -> list[int]:
    """Parse kettlebell weights such as "16, 24 и 32 кг"."""
    numbers = re.findall(r"\d+", text)
    if not numbers:
        raise InvalidInputError("Укажи веса гирь числами через запятую, например: 16, 24, 32")
    return sorted({int(n) for n in numbers})


def parse_experience(text: str) -> ExperienceLevel:
    key = text.strip().lower()
    if key in _EXPERIENCE_ALIASES:
        return _EXPERIENCE_ALIASES[key]
    for level in ExperienceLevel:
        if key == level.display_name().lower():
            return level
    raise InvalidInputError("Выбери уровень: 1 - Новичок, 2 - Любитель, 3 - Профи")


def parse_personal_data(text: str) -> tuple[float, Gender]:
    """Parse body weight and gender such as "80 м" or "62.5, жен".

    Gender is optional and defaults to OTHER.
    """
    match = _NUMBER.search(text)
    if match is None:
        raise InvalidInputError("Укажи вес тела в кг и пол, например: 80 м или 62.5 ж")
    body_weight = float(match.group(0).replace(",", "."))

    words = re.findall(r"[a-zа-яё]+", text[match.end() :].lower())
    gender = next((_GENDER_ALIASES[w] for w in words if w in _GENDER_ALIASES), Gender.OTHER)
    return body_weight, gender


def parse_goal(text: str) -> TrainingGoal:
    key = text.strip().lower()
    if key in _GOAL_ALIASES:
        return _GOAL_ALIASES[key]
    for goal in TrainingGoal:
        if key in {goal.value.lower(), goal.display_name().lower()}:
            return goal
    options = ", ".join(f"{number} - {goal.display_name()}" for number, goal in _GOAL_ALIASES.items())
    raise InvalidInputError(f"Выбери цель: {options}")


def parse_schedule_datetime(text: str, now: datetime, tz_name: str) -> datetime:
    """Parse "DD.MM HH:MM" or "DD.MM.YYYY HH:MM" in the user's timezone.

    A date without a year that has already passed this year is moved to the
    next year. Returns an aware UTC datetime.

    Raises:
        InvalidInputError: Unparseable text, impossible date, or a past moment
    """
    hint = "Укажи дату и время в формате ДД.ММ ЧЧ:ММ, например: 25.01 18:30"
    match = _SCHEDULE.match(text)
    if match is None:
        raise InvalidInputError(hint)

    day, month, year_text, hour, minute = match.groups()
    tz = ZoneInfo(tz_name)
    local_now = now.astimezone(tz)
    year = int(year_text) if year_text else local_now.year
    if year < 100:
        year += 2000

    try:
        scheduled = datetime(year, int(month), int(day), int(hour), int(minute), tzinfo=tz)
        if year_text is None and scheduled <= local_now:
            scheduled = scheduled.replace(year=year + 1)
    except ValueError as e:
        raise InvalidInputError(hint) from e

    if scheduled <= local_now:
        raise InvalidInputError("Это время уже прошло. Выбери момент в будущем.")
    return scheduled.astimezone(timezone.utc)


def schedule_preset(preset: str, now: datetime, tz_name: str) -> datetime:
    """Resolve a quick-schedule button to an aware UTC datetime at 18:00 local time."""
    offsets = {"today": 0, "tomorrow": 1, "day_after": 2}
    if preset not in offsets:
        raise InvalidInputError("Неизвестный вариант расписания")

    tz = ZoneInfo(tz_name)
    local_day = now.astimezone(tz).date() + timedelta(days=offsets[preset])
    scheduled = datetime.combine(local_day, DEFAULT_WORKOUT_TIME, tzinfo=tz)
    if scheduled <= now:
        raise InvalidInputError("Сегодня уже поздно. Выбери завтра или введи дату вручную.")
    return scheduled.astimezone(timezone.utc)


def validate_weights(weights: list[int]) -> None:
    if not weights:
        raise FieldValidationError("weights", "Нужно указать хотя бы одну гирю")
    if any(w <= 0 for w in weights):
        raise FieldValidationError("weights", "Вес гири должен быть положительным числом")


def validate_body_weight(body_weight: float) -> None:
    if not MIN_BODY_WEIGHT <= body_weight <= MAX_BODY_WEIGHT:
        raise FieldValidationError(
            "body_weight",
            f"Вес тела должен быть от {MIN_BODY_WEIGHT:.0f} до {MAX_BODY_WEIGHT:.0f} кг",
        )


class ProfileService:
    """CRUD over user profiles with domain validation."""

    def __init__(self, user_repository: UserRepository):
        self._users = user_repository

    async def init_profile(self, user_id: int) -> UserProfile:
        """Replace any existing profile with a clean one (idempotent)."""
        await self._users.delete_by_id(user_id)
        profile = UserProfile(id=user_id, profile=ProfileData())
        await self._users.save(profile)
        logger.info(f"[PROFILE] Initialized clean profile for user {user_id}")
        return profile

    async def get_profile(self, user_id: int) -> UserProfile | None:
        return await self._users.find_by_id(user_id)

    async def _require(self, user_id: int) -> UserProfile:
        profile = await self._users.find_by_id(user_id)
        if profile is None:
            raise UserNotFoundError(user_id)
        return profile

    async def update_equipment(self, user_id: int, weights: list[int]) -> UserProfile:
        validate_weights(weights)
        profile = await self._require(user_id)
        profile.profile = profile.profile.model_copy(update={"weights": sorted(set(weights))})
        await self._users.save(profile)
        return profile

    async def update_experience(self, user_id: int, experience: ExperienceLevel) -> UserProfile:
        profile = await self._require(user_id)
        profile.profile.experience = experience
        await self._users.save(profile)
        return profile

    async def update_personal_data(self, user_id: int, body_weight: float, gender: Gender) -> UserProfile:
        validate_body_weight(body_weight)
        profile = await self._require(user_id)
        profile.profile.body_weight = body_weight
        profile.profile.gender = gender
        await self._users.save(profile)
        return profile

    async def update_goal(self, user_id: int, goal: TrainingGoal) -> UserProfile:
        profile = await self._require(user_id)
        profile.profile.goal = goal
        await self._users.save(profile)
        return profile

    async def update_scheduling(self, user_id: int, next_workout: datetime) -> UserProfile:
        """Set the next workout time and reset both reminder flags."""
        profile = await self._require(user_id)
        profile.scheduling = UserScheduling(next_workout=next_workout)
        await self._users.save(profile)
        logger.info(f"[PROFILE] User {user_id} scheduled next workout at {next_workout.isoformat()}")
        return profile

    async def clear_scheduling(self, user_id: int) -> UserProfile:
        profile = await self._require(user_id)
        profile.scheduling = None
        await self._users.save(profile)
        return profile

    async def get_users_with_pending_reminders(self) -> list[UserProfile]:
        return await self._users.find_users_with_schedule()

    async def mark_reminder_sent(self, user_id: int, reminder: ReminderType) -> UserProfile:
        profile = await self._require(user_id)
        if profile.scheduling is None:
            return profile

        if reminder == "1h":
            profile.scheduling.reminder_1h_sent = True
        elif reminder == "5m":
            profile.scheduling.reminder_5m_sent = True
        await self._users.save(profile)
        return profile
