"""User profile domain models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


class UserState(StrEnum):
    """Per-user conversation state."""

    IDLE = "IDLE"
    ONBOARDING_MEDICAL_CONFIRM = "ONBOARDING_MEDICAL_CONFIRM"
    ONBOARDING_EQUIPMENT = "ONBOARDING_EQUIPMENT"
    ONBOARDING_EXPERIENCE = "ONBOARDING_EXPERIENCE"
    ONBOARDING_PERSONAL_DATA = "ONBOARDING_PERSONAL_DATA"
    ONBOARDING_GOALS = "ONBOARDING_GOALS"
    WORKOUT_REQUESTED = "WORKOUT_REQUESTED"
    WORKOUT_IN_PROGRESS = "WORKOUT_IN_PROGRESS"
    WORKOUT_FEEDBACK_PENDING = "WORKOUT_FEEDBACK_PENDING"
    EDIT_EQUIPMENT = "EDIT_EQUIPMENT"
    EDIT_EXPERIENCE = "EDIT_EXPERIENCE"
    EDIT_PERSONAL_DATA = "EDIT_PERSONAL_DATA"
    EDIT_GOAL = "EDIT_GOAL"
    SCHEDULING_DATE = "SCHEDULING_DATE"


class ExperienceLevel(StrEnum):
    BEGINNER = "BEGINNER"
    AMATEUR = "AMATEUR"
    PRO = "PRO"

    def display_name(self) -> str:
        return {
            ExperienceLevel.BEGINNER: "Новичок",
            ExperienceLevel.AMATEUR: "Любитель",
            ExperienceLevel.PRO: "Профи",
        }[self]


class Gender(StrEnum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"

    def display_name(self) -> str:
        return {
            Gender.MALE: "Мужской",
            Gender.FEMALE: "Женский",
            Gender.OTHER: "Не указан",
        }[self]


class TrainingGoal(StrEnum):
    GENERAL_FITNESS = "GENERAL_FITNESS"
    STRENGTH = "STRENGTH"
    ENDURANCE = "ENDURANCE"
    WEIGHT_LOSS = "WEIGHT_LOSS"
    MOBILITY = "MOBILITY"

    def display_name(self) -> str:
        return {
            TrainingGoal.GENERAL_FITNESS: "Общая физическая подготовка",
            TrainingGoal.STRENGTH: "Сила",
            TrainingGoal.ENDURANCE: "Выносливость",
            TrainingGoal.WEIGHT_LOSS: "Снижение веса",
            TrainingGoal.MOBILITY: "Мобильность и здоровье суставов",
        }[self]


class SubscriptionType(StrEnum):
    FREE = "FREE"
    PREMIUM = "PREMIUM"


class ProfileData(BaseModel):
    """Athlete data collected during onboarding.

    `weights` is the set of kettlebell weights (kg) the athlete owns, kept
    sorted and de-duplicated. It is empty until onboarding reaches the
    equipment step.
    """

    weights: list[int] = Field(default_factory=list)
    experience: ExperienceLevel = ExperienceLevel.BEGINNER
    body_weight: float = 0.0
    gender: Gender = Gender.OTHER
    goal: TrainingGoal = TrainingGoal.GENERAL_FITNESS

    @field_validator("weights")
    @classmethod
    def normalize_weights(cls, value: list[int]) -> list[int]:
        if any(w <= 0 for w in value):
            raise ValueError("All weights must be positive integers")
        return sorted(set(value))


class Subscription(BaseModel):
    type: SubscriptionType = SubscriptionType.FREE
    expires_at: datetime | None = None

    def is_free_tier(self, now: datetime | None = None) -> bool:
        """Return True when the free-tier quota applies.

        A premium subscription whose expiry has passed counts as free.
        """
        if self.type == SubscriptionType.FREE:
            return True
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.expires_at <= now


class UserMetadata(BaseModel):
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_active: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class UserScheduling(BaseModel):
    next_workout: datetime
    reminder_1h_sent: bool = False
    reminder_5m_sent: bool = False


class UserProfile(BaseModel):
    id: int
    fsm_state: UserState = UserState.IDLE
    profile: ProfileData = Field(default_factory=ProfileData)
    subscription: Subscription = Field(default_factory=Subscription)
    metadata: UserMetadata = Field(default_factory=UserMetadata)
    scheduling: UserScheduling | None = None
    schema_version: int = 1

    @property
    def is_busy(self) -> bool:
        """A busy user may not start a new top-level flow."""
        return self.fsm_state != UserState.IDLE
