"""Tests for profile updates and chat input parsers."""

from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import FieldValidationError, InvalidInputError, UserNotFoundError
from app.users.models import ExperienceLevel, Gender, TrainingGoal, UserState
from app.users.profile_service import (
    parse_experience,
    parse_goal,
    parse_personal_data,
    parse_schedule_datetime,
    parse_weights,
    schedule_preset,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class TestParsers:
    def test_parse_weights(self):
        assert parse_weights("24, 16 и 32 кг, 16") == [16, 24, 32]
        with pytest.raises(InvalidInputError):
            parse_weights("много")

    @pytest.mark.parametrize(
        ("text", "expected"),
        [("1", ExperienceLevel.BEGINNER), (" Любитель ", ExperienceLevel.AMATEUR), ("pro", ExperienceLevel.PRO)],
    )
    def test_parse_experience(self, text, expected):
        assert parse_experience(text) == expected

    def test_parse_experience_rejects_unknown(self):
        with pytest.raises(InvalidInputError):
            parse_experience("гуру")

    def test_parse_personal_data(self):
        assert parse_personal_data("62,5 ж") == (62.5, Gender.FEMALE)
        assert parse_personal_data("Вес 80 кг, мужской") == (80.0, Gender.MALE)
        assert parse_personal_data("75") == (75.0, Gender.OTHER)
        with pytest.raises(InvalidInputError):
            parse_personal_data("не скажу")

    def test_parse_goal(self):
        assert parse_goal("3") == TrainingGoal.ENDURANCE
        assert parse_goal("Сила") == TrainingGoal.STRENGTH
        assert parse_goal("weight_loss") == TrainingGoal.WEIGHT_LOSS
        with pytest.raises(InvalidInputError):
            parse_goal("9")

    def test_parse_schedule_datetime(self):
        assert parse_schedule_datetime("15.03 18:30", NOW, "UTC") == datetime(2026, 3, 15, 18, 30, tzinfo=timezone.utc)
        assert parse_schedule_datetime("15.03.2026 18:30", NOW, "Europe/Moscow") == datetime(
            2026, 3, 15, 15, 30, tzinfo=timezone.utc
        )

    def test_yearless_past_date_rolls_over(self):
        assert parse_schedule_datetime("01.01 10:00", NOW, "UTC").year == 2027

    @pytest.mark.parametrize("text", ["завтра", "31.02 10:00", "15.03 25:00", "01.01.2026 10:00"])
    def test_parse_schedule_datetime_rejects(self, text):
        with pytest.raises(InvalidInputError):
            parse_schedule_datetime(text, NOW, "UTC")

    def test_schedule_preset(self):
        assert schedule_preset("today", NOW, "UTC") == datetime(2026, 3, 10, 18, 0, tzinfo=timezone.utc)
        assert schedule_preset("day_after", NOW, "UTC") == datetime(2026, 3, 12, 18, 0, tzinfo=timezone.utc)

    def test_schedule_preset_rejects_past_and_unknown(self):
        evening = NOW.replace(hour=19)
        with pytest.raises(InvalidInputError):
            schedule_preset("today", evening, "UTC")
        assert schedule_preset("tomorrow", evening, "UTC").day == 11
        with pytest.raises(InvalidInputError):
            schedule_preset("weekly", NOW, "UTC")


class TestProfileService:
    @pytest.mark.asyncio
    async def test_init_profile_replaces_existing(self, container, seed_profile):
        await seed_profile(user_id=1, state=UserState.WORKOUT_IN_PROGRESS)

        profile = await container.profile_service.init_profile(1)

        stored = await container.profile_service.get_profile(1)
        assert stored == profile
        assert stored.fsm_state == UserState.IDLE
        assert stored.profile.weights == []

    @pytest.mark.asyncio
    async def test_init_profile_is_idempotent(self, container):
        await container.profile_service.init_profile(1)
        await container.profile_service.init_profile(1)
        assert (await container.profile_service.get_profile(1)).profile.weights == []

    @pytest.mark.asyncio
    async def test_update_equipment(self, container, seed_profile):
        await seed_profile(user_id=1)
        profile = await container.profile_service.update_equipment(1, [32, 16, 16])
        assert profile.profile.weights == [16, 32]

        with pytest.raises(FieldValidationError):
            await container.profile_service.update_equipment(1, [])
        with pytest.raises(FieldValidationError):
            await container.profile_service.update_equipment(1, [0, 16])

    @pytest.mark.asyncio
    async def test_update_personal_data_bounds(self, container, seed_profile):
        await seed_profile(user_id=1)
        with pytest.raises(FieldValidationError) as excinfo:
            await container.profile_service.update_personal_data(1, 29.9, Gender.MALE)
        assert excinfo.value.field == "body_weight"

        profile = await container.profile_service.update_personal_data(1, 250, Gender.FEMALE)
        assert (profile.profile.body_weight, profile.profile.gender) == (250, Gender.FEMALE)

    @pytest.mark.asyncio
    async def test_updates_require_profile(self, container):
        with pytest.raises(UserNotFoundError):
            await container.profile_service.update_goal(1, TrainingGoal.MOBILITY)

    @pytest.mark.asyncio
    async def test_scheduling_lifecycle(self, container, seed_profile):
        await seed_profile(user_id=1)
        service = container.profile_service
        when = datetime.now(timezone.utc) + timedelta(days=1)

        await service.update_scheduling(1, when)
        await service.mark_reminder_sent(1, "1h")
        profile = await service.get_profile(1)
        assert profile.scheduling.reminder_1h_sent and not profile.scheduling.reminder_5m_sent
        assert [u.id for u in await service.get_users_with_pending_reminders()] == [1]

        # Rescheduling resets both flags
        await service.update_scheduling(1, when + timedelta(days=1))
        profile = await service.get_profile(1)
        assert not profile.scheduling.reminder_1h_sent

        await service.clear_scheduling(1)
        assert (await service.get_profile(1)).scheduling is None
        assert await service.get_users_with_pending_reminders() == []
