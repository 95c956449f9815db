"""Conversation handler: routes Telegram updates to services.

Commands and callback actions are dispatched through lookup tables; free
text is routed by the user's conversation state. Every failure is classified
and answered with a localized message, so a raw exception never reaches the
user.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from loguru import logger

from app.analytics.service import AnalyticsService, EventType
from app.bot.schemas import InlineButton, InlineKeyboard, TelegramCallbackQuery, TelegramMessage, TelegramUpdate
from app.bot.telegram_client import TelegramClient
from app.coach.ai_service import AIService
from app.coach.fsm import FSMManager
from app.config.settings import Settings
from app.core.errors import AppError, UnexpectedError, UserNotFoundError, to_user_message
from app.core.retry import classify
from app.users.models import TrainingGoal, UserProfile, UserState
from app.users.profile_service import (
    ProfileService,
    parse_experience,
    parse_goal,
    parse_personal_data,
    parse_schedule_datetime,
    parse_weights,
    schedule_preset,
)
from app.users.repository import as_utc
from app.workouts.models import Workout, WorkoutStatus
from app.workouts.service import WorkoutService

CommandHandler = Callable[[int, int, str], Awaitable[None]]
CallbackHandler = Callable[[int, int, str], Awaitable[None]]

REMINDER_1H = timedelta(hours=1)
REMINDER_5M = timedelta(minutes=5)
STALE_SCHEDULE = timedelta(hours=1)
HISTORY_LIMIT = 10

UNKNOWN_COMMAND = "Неизвестная команда. Используйте /help для списка команд."
USE_COMMANDS = "Используйте команды для взаимодействия с ботом. /help для списка команд."
BUSY_MESSAGE = "Сейчас ты находишься в процессе. Заверши текущее действие или отмени его."
HELP_TEXT = (
    "Доступные команды:\n\n"
    "/start - Начать работу с ботом\n"
    "/help - Показать это сообщение\n"
    "/profile - Просмотр и редактирование профиля\n"
    "/workout - Создать новую тренировку\n"
    "/history - История тренировок\n"
    "/schedule - Запланировать тренировку\n"
    "/reset - Начать заново (профиль будет сброшен)"
)
MEDICAL_PROMPT = (
    "Привет! Я бот для тренировок с гирями.\n\n"
    "Перед началом мне нужно убедиться, что у тебя нет медицинских противопоказаний к физическим нагрузкам.\n\n"
    "Напиши «да», если противопоказаний нет."
)
WELCOME_BACK = (
    "С возвращением!\n\n"
    "/workout - создать новую тренировку\n"
    "/profile - профиль\n"
    "/history - история тренировок"
)
EQUIPMENT_PROMPT = "Какие гири у тебя есть? Перечисли веса в кг через запятую, например: 16, 24, 32"
EXPERIENCE_PROMPT = "Какой у тебя опыт с гирями? 1 - Новичок, 2 - Любитель, 3 - Профи"
PERSONAL_DATA_PROMPT = "Укажи свой вес в кг и пол (м/ж), например: 80 м"
GOAL_PROMPT = "Какая у тебя цель?\n" + "\n".join(
    f"{number} - {goal.display_name()}" for number, goal in enumerate(TrainingGoal, start=1)
)
SCHEDULE_PROMPT = "Когда следующая тренировка? Выбери вариант или введи дату и время в формате ДД.ММ ЧЧ:ММ"
FEEDBACK_PROMPT = "Отлично! Расскажи, как прошла тренировка: что получилось, что было тяжело (текстом или голосом)."

_AFFIRMATIVE = {"да", "yes", "ок", "ok", "подтверждаю", "согласен", "согласна", "нет противопоказаний"}

_ONBOARDING_STATES = frozenset(
    {
        UserState.ONBOARDING_MEDICAL_CONFIRM,
        UserState.ONBOARDING_EQUIPMENT,
        UserState.ONBOARDING_EXPERIENCE,
        UserState.ONBOARDING_PERSONAL_DATA,
        UserState.ONBOARDING_GOALS,
    }
)

_EDIT_PROMPTS = {
    UserState.EDIT_EQUIPMENT: EQUIPMENT_PROMPT,
    UserState.EDIT_EXPERIENCE: EXPERIENCE_PROMPT,
    UserState.EDIT_PERSONAL_DATA: PERSONAL_DATA_PROMPT,
    UserState.EDIT_GOAL: GOAL_PROMPT,
}


def cancel_keyboard() -> InlineKeyboard:
    return [[InlineButton(text="❌ Отменить", callback_data="cancel_action")]]


def format_plan(workout: Workout) -> str:
    plan = workout.plan
    lines = ["💪 План тренировки:", "", "Разминка:", plan.warmup, "", "Упражнения:"]
    for index, ex in enumerate(plan.exercises, start=1):
        line = f"{index}. {ex.name} - {ex.weight}кг"
        if ex.reps is not None and ex.sets is not None:
            line += f" ({ex.reps}×{ex.sets})"
        elif ex.time_work is not None and ex.time_rest is not None:
            line += f" (Работа: {ex.time_work}с, Отдых: {ex.time_rest}с)"
        elif ex.time_work is not None:
            line += f" (Работа: {ex.time_work}с)"
        lines.append(line)
        if ex.coaching_tips:
            lines.append(f"   💡 {ex.coaching_tips}")
    lines.extend(["", "Заминка:", plan.cooldown])
    return "\n".join(lines)


def format_profile(profile: UserProfile) -> str:
    data = profile.profile
    weights = ", ".join(str(w) for w in data.weights) or "не указаны"
    lines = [
        "📋 Твой профиль:",
        "",
        f"Опыт: {data.experience.display_name()}",
        f"Вес тела: {data.body_weight:g} кг",
        f"Пол: {data.gender.display_name()}",
        f"Доступные гири: {weights} кг",
        f"Цель: {data.goal.display_name()}",
    ]
    if profile.scheduling:
        lines.append(f"Следующая тренировка: {as_utc(profile.scheduling.next_workout).strftime('%d.%m.%Y %H:%M')} UTC")
    return "\n".join(lines)


def format_history(workouts: list[Workout]) -> str:
    completed = [w for w in workouts if w.status == WorkoutStatus.COMPLETED]
    if not completed:
        return "У тебя пока нет завершенных тренировок."

    lines = ["📊 История тренировок:", ""]
    for index, workout in enumerate(completed, start=1):
        finished = workout.timing.completed_at
        lines.append(f"{index}. {finished.strftime('%d.%m.%Y') if finished else 'Дата неизвестна'}")
        performance = workout.actual_performance
        if performance is not None:
            lines.append(f"   Объем: {WorkoutService.calculate_total_volume(workout)} кг")
            if performance.rpe is not None:
                lines.append(f"   RPE: {performance.rpe}")
        lines.append("")
    return "\n".join(lines).rstrip()


def format_feedback_result(workout: Workout) -> str:
    performance = workout.actual_performance
    lines = ["✅ Тренировка завершена!"]
    if performance is not None:
        lines.append(f"Объем: {WorkoutService.calculate_total_volume(workout)} кг")
        if performance.rpe is not None:
            lines.append(f"RPE: {performance.rpe}")
        if performance.coach_feedback:
            lines.extend(["", performance.coach_feedback])
    return "\n".join(lines)


class BotHandler:
    def __init__(
        self,
        telegram: TelegramClient,
        fsm: FSMManager,
        profile_service: ProfileService,
        workout_service: WorkoutService,
        ai_service: AIService,
        analytics: AnalyticsService,
        settings: Settings,
    ):
        self._telegram = telegram
        self._fsm = fsm
        self._profiles = profile_service
        self._workouts = workout_service
        self._ai = ai_service
        self._analytics = analytics
        self._settings = settings

        self._commands: dict[str, CommandHandler] = {
            "/start": self._cmd_start,
            "/help": self._cmd_help,
            "/profile": self._cmd_profile,
            "/workout": self._cmd_workout,
            "/history": self._cmd_history,
            "/reset": self._cmd_reset,
            "/schedule": self._cmd_schedule,
            "/stats": self._cmd_stats,
        }
        self._callbacks: dict[str, CallbackHandler] = {
            "start_workout": self._cb_start_workout,
            "finish_workout": self._cb_finish_workout,
            "edit_equipment": self._edit_callback(UserState.EDIT_EQUIPMENT),
            "edit_experience": self._edit_callback(UserState.EDIT_EXPERIENCE),
            "edit_personal_data": self._edit_callback(UserState.EDIT_PERSONAL_DATA),
            "edit_goal": self._edit_callback(UserState.EDIT_GOAL),
            "cancel_action": self._cb_cancel,
            "schedule": self._cb_schedule,
        }

    # ==========================================================================
    # Entry points
    # ==========================================================================

    async def handle_update(self, update: TelegramUpdate) -> None:
        """Process one update. Never raises."""
        user_id, chat_id = self._identify(update)
        if user_id is None or chat_id is None:
            logger.warning(f"[BOT] Unsupported update {update.update_id}")
            return

        try:
            if update.callback_query is not None:
                await self._handle_callback(update.callback_query, user_id, chat_id)
            elif update.message is not None and update.message.text is not None:
                await self._handle_text(update.message.text, user_id, chat_id)
            elif update.message is not None and update.message.voice is not None:
                await self._handle_voice(update.message, user_id, chat_id)
            else:
                logger.debug(f"[BOT] Ignoring update {update.update_id} without text, voice or callback")
        except Exception as e:
            await self._report_error(user_id, chat_id, e, context=f"update={update.update_id}")

    async def check_reminders(self, now: datetime | None = None) -> None:
        """Send due reminders; a failure for one user never stops the rest."""
        now = now or datetime.now(timezone.utc)
        users = await self._profiles.get_users_with_pending_reminders()
        for user in users:
            try:
                await self._process_reminder(user, now)
            except Exception as e:
                await self._report_error(user.id, user.id, e, context="reminders")

    # ==========================================================================
    # Dispatch
    # ==========================================================================

    @staticmethod
    def _identify(update: TelegramUpdate) -> tuple[int | None, int | None]:
        if update.callback_query is not None:
            query = update.callback_query
            chat_id = query.message.chat.id if query.message else query.from_user.id
            return query.from_user.id, chat_id
        if update.message is not None:
            message = update.message
            user_id = message.from_user.id if message.from_user else message.chat.id
            return user_id, message.chat.id
        return None, None

    async def _handle_text(self, text: str, user_id: int, chat_id: int) -> None:
        if text.startswith("/"):
            command, _, args = text.strip().partition(" ")
            # "/start@MyBot" in group chats
            command = command.split("@", 1)[0].lower()
            handler = self._commands.get(command)
            if command == "/stats" and user_id not in self._settings.admin_ids:
                handler = None
            self._analytics.track(user_id, EventType.COMMAND, command)
            if handler is None:
                await self._telegram.send_message(chat_id, UNKNOWN_COMMAND)
                return
            await handler(user_id, chat_id, args.strip())
            return

        await self._handle_state_text(text.strip(), user_id, chat_id)

    async def _handle_callback(self, query: TelegramCallbackQuery, user_id: int, chat_id: int) -> None:
        await self._telegram.answer_callback_query(query.id)
        action, _, payload = (query.data or "").partition(":")
        handler = self._callbacks.get(action)
        if handler is None:
            logger.warning(f"[BOT] Unknown callback action '{action}' from user {user_id}")
            return
        self._analytics.track(user_id, EventType.ACTION, action)
        await handler(user_id, chat_id, payload)

    async def _handle_state_text(self, text: str, user_id: int, chat_id: int) -> None:
        state = await self._fsm.get_current_state(user_id)
        match state:
            case UserState.IDLE:
                await self._telegram.send_message(chat_id, USE_COMMANDS)
            case UserState.ONBOARDING_MEDICAL_CONFIRM:
                await self._onboarding_medical(text, user_id, chat_id)
            case UserState.ONBOARDING_EQUIPMENT:
                await self._profiles.update_equipment(user_id, parse_weights(text))
                await self._fsm.ensure_transition(user_id, UserState.ONBOARDING_EXPERIENCE)
                await self._telegram.send_message(chat_id, EXPERIENCE_PROMPT)
            case UserState.ONBOARDING_EXPERIENCE:
                await self._profiles.update_experience(user_id, parse_experience(text))
                await self._fsm.ensure_transition(user_id, UserState.ONBOARDING_PERSONAL_DATA)
                await self._telegram.send_message(chat_id, PERSONAL_DATA_PROMPT)
            case UserState.ONBOARDING_PERSONAL_DATA:
                body_weight, gender = parse_personal_data(text)
                await self._profiles.update_personal_data(user_id, body_weight, gender)
                await self._fsm.ensure_transition(user_id, UserState.ONBOARDING_GOALS)
                await self._telegram.send_message(chat_id, GOAL_PROMPT)
            case UserState.ONBOARDING_GOALS:
                profile = await self._profiles.update_goal(user_id, parse_goal(text))
                await self._fsm.ensure_transition(user_id, UserState.IDLE)
                await self._telegram.send_message(
                    chat_id,
                    f"Профиль готов! 🎉\n\n{format_profile(profile)}\n\nИспользуй /workout, чтобы получить первую тренировку.",
                )
            case UserState.WORKOUT_REQUESTED:
                await self._telegram.send_message(
                    chat_id, "План тренировки уже готов. Нажми «Начать тренировку» или отмени его.", cancel_keyboard()
                )
            case UserState.WORKOUT_IN_PROGRESS:
                await self._remind_finish(user_id, chat_id)
            case UserState.WORKOUT_FEEDBACK_PENDING:
                await self._process_feedback(text, user_id, chat_id)
            case UserState.EDIT_EQUIPMENT:
                await self._finish_edit(user_id, chat_id, self._profiles.update_equipment(user_id, parse_weights(text)))
            case UserState.EDIT_EXPERIENCE:
                await self._finish_edit(user_id, chat_id, self._profiles.update_experience(user_id, parse_experience(text)))
            case UserState.EDIT_PERSONAL_DATA:
                body_weight, gender = parse_personal_data(text)
                await self._finish_edit(user_id, chat_id, self._profiles.update_personal_data(user_id, body_weight, gender))
            case UserState.EDIT_GOAL:
                await self._finish_edit(user_id, chat_id, self._profiles.update_goal(user_id, parse_goal(text)))
            case UserState.SCHEDULING_DATE:
                scheduled = parse_schedule_datetime(text, datetime.now(timezone.utc), self._settings.user_timezone)
                await self._save_schedule(user_id, chat_id, scheduled)

    async def _handle_voice(self, message: TelegramMessage, user_id: int, chat_id: int) -> None:
        state = await self._fsm.get_current_state(user_id)
        if state != UserState.WORKOUT_FEEDBACK_PENDING or message.voice is None:
            await self._telegram.send_message(chat_id, "Голосовые сообщения принимаются только для отзыва о тренировке.")
            return

        file_path = await self._telegram.get_file(message.voice.file_id)
        audio = await self._telegram.download_file(file_path)
        text = await self._ai.transcribe_voice(audio)
        await self._telegram.send_message(chat_id, f"🎙 Распознано: {text}")
        await self._process_feedback(text, user_id, chat_id)

    # ==========================================================================
    # Commands
    # ==========================================================================

    async def _cmd_start(self, user_id: int, chat_id: int, _args: str) -> None:
        profile = await self._profiles.get_profile(user_id)
        if profile is not None and profile.profile.weights and profile.fsm_state not in _ONBOARDING_STATES:
            await self._telegram.send_message(chat_id, WELCOME_BACK)
            return

        await self._begin_onboarding(user_id, chat_id)

    async def _cmd_help(self, _user_id: int, chat_id: int, _args: str) -> None:
        await self._telegram.send_message(chat_id, HELP_TEXT)

    async def _cmd_profile(self, user_id: int, chat_id: int, _args: str) -> None:
        profile = await self._profiles.get_profile(user_id)
        if profile is None:
            raise UserNotFoundError(user_id)

        keyboard = [
            [InlineButton(text="🏋️ Гири", callback_data="edit_equipment"), InlineButton(text="📈 Опыт", callback_data="edit_experience")],
            [InlineButton(text="⚖️ Вес и пол", callback_data="edit_personal_data"), InlineButton(text="🎯 Цель", callback_data="edit_goal")],
        ]
        await self._telegram.send_message(chat_id, format_profile(profile), keyboard)

    async def _cmd_workout(self, user_id: int, chat_id: int, _args: str) -> None:
        profile = await self._profiles.get_profile(user_id)
        if profile is None:
            raise UserNotFoundError(user_id)
        if profile.is_busy:
            await self._reply_busy(chat_id)
            return

        await self._telegram.send_message(chat_id, "⏳ Генерирую тренировку...")
        await self._request_workout(user_id, chat_id)

    async def _cmd_history(self, user_id: int, chat_id: int, _args: str) -> None:
        workouts = await self._workouts.get_workout_history(user_id, HISTORY_LIMIT)
        await self._telegram.send_message(chat_id, format_history(workouts))

    async def _cmd_reset(self, user_id: int, chat_id: int, _args: str) -> None:
        cancelled = await self._workouts.cancel_open_workouts(user_id)
        if cancelled:
            logger.info(f"[BOT] Reset cancelled {cancelled} open workout(s) for user {user_id}")
        await self._begin_onboarding(user_id, chat_id)

    async def _cmd_schedule(self, user_id: int, chat_id: int, _args: str) -> None:
        profile = await self._profiles.get_profile(user_id)
        if profile is None:
            raise UserNotFoundError(user_id)
        if profile.is_busy:
            await self._reply_busy(chat_id)
            return

        await self._fsm.ensure_transition(user_id, UserState.SCHEDULING_DATE)
        keyboard = [
            [
                InlineButton(text="Сегодня 18:00", callback_data="schedule:today"),
                InlineButton(text="Завтра 18:00", callback_data="schedule:tomorrow"),
            ],
            [InlineButton(text="Послезавтра 18:00", callback_data="schedule:day_after")],
            [InlineButton(text="❌ Отменить", callback_data="cancel_action")],
        ]
        await self._telegram.send_message(chat_id, SCHEDULE_PROMPT, keyboard)

    async def _cmd_stats(self, _user_id: int, chat_id: int, _args: str) -> None:
        report = await self._analytics.daily_report()
        await self._telegram.send_message(chat_id, report.render())

    # ==========================================================================
    # Callbacks
    # ==========================================================================

    async def _cb_start_workout(self, user_id: int, chat_id: int, workout_id: str) -> None:
        workout = await self._workouts.start_workout(user_id, workout_id)
        profile = await self._profiles.get_profile(user_id)
        if profile is not None and profile.scheduling is not None:
            await self._profiles.clear_scheduling(user_id)

        keyboard = [[InlineButton(text="🏁 Завершить тренировку", callback_data=f"finish_workout:{workout.id}")]]
        await self._telegram.send_message(chat_id, "Тренировка началась! Удачи 💪 Нажми кнопку, когда закончишь.", keyboard)

    async def _cb_finish_workout(self, user_id: int, chat_id: int, workout_id: str) -> None:
        workout = await self._workouts.finish_workout(user_id, workout_id)
        minutes = (workout.timing.duration_seconds or 0) // 60
        await self._telegram.send_message(chat_id, f"Время тренировки: {minutes} мин.\n\n{FEEDBACK_PROMPT}")

    def _edit_callback(self, target: UserState) -> CallbackHandler:
        async def handler(user_id: int, chat_id: int, _payload: str) -> None:
            profile = await self._profiles.get_profile(user_id)
            if profile is None:
                raise UserNotFoundError(user_id)
            if profile.is_busy:
                await self._reply_busy(chat_id)
                return
            await self._fsm.ensure_transition(user_id, target)
            await self._telegram.send_message(chat_id, _EDIT_PROMPTS[target], cancel_keyboard())

        return handler

    async def _cb_cancel(self, user_id: int, chat_id: int, _payload: str) -> None:
        state = await self._fsm.get_current_state(user_id)
        if state in (UserState.WORKOUT_REQUESTED, UserState.WORKOUT_IN_PROGRESS, UserState.WORKOUT_FEEDBACK_PENDING):
            await self._workouts.cancel_open_workouts(user_id)
        await self._fsm.transition_to(user_id, UserState.IDLE)
        await self._telegram.send_message(chat_id, "Действие отменено.")

    async def _cb_schedule(self, user_id: int, chat_id: int, preset: str) -> None:
        state = await self._fsm.get_current_state(user_id)
        if state not in (UserState.IDLE, UserState.SCHEDULING_DATE):
            await self._reply_busy(chat_id)
            return
        scheduled = schedule_preset(preset, datetime.now(timezone.utc), self._settings.user_timezone)
        await self._save_schedule(user_id, chat_id, scheduled)

    # ==========================================================================
    # Flows
    # ==========================================================================

    async def _begin_onboarding(self, user_id: int, chat_id: int) -> None:
        await self._profiles.init_profile(user_id)
        await self._fsm.ensure_transition(user_id, UserState.ONBOARDING_MEDICAL_CONFIRM)
        await self._telegram.send_message(chat_id, MEDICAL_PROMPT)

    async def _onboarding_medical(self, text: str, user_id: int, chat_id: int) -> None:
        if text.lower().strip(" .!") not in _AFFIRMATIVE:
            await self._telegram.send_message(chat_id, "Чтобы продолжить, подтверди отсутствие противопоказаний: напиши «да».")
            return
        await self._fsm.ensure_transition(user_id, UserState.ONBOARDING_EQUIPMENT)
        await self._telegram.send_message(chat_id, EQUIPMENT_PROMPT)

    async def _finish_edit(self, user_id: int, chat_id: int, update: Awaitable[UserProfile]) -> None:
        profile = await update
        await self._fsm.ensure_transition(user_id, UserState.IDLE)
        await self._telegram.send_message(chat_id, f"Профиль обновлен ✅\n\n{format_profile(profile)}")

    async def _save_schedule(self, user_id: int, chat_id: int, scheduled: datetime) -> None:
        await self._profiles.update_scheduling(user_id, scheduled)
        await self._fsm.transition_to(user_id, UserState.IDLE)
        local = scheduled.astimezone(ZoneInfo(self._settings.user_timezone))
        await self._telegram.send_message(
            chat_id, f"📅 Тренировка запланирована на {local.strftime('%d.%m.%Y %H:%M')}. Я напомню заранее!"
        )

    async def _request_workout(self, user_id: int, chat_id: int) -> Workout:
        await self._fsm.ensure_transition(user_id, UserState.WORKOUT_REQUESTED)
        try:
            workout = await self._workouts.generate_workout_plan(user_id)
        except Exception:
            await self._fsm.transition_to(user_id, UserState.IDLE)
            raise

        keyboard = [
            [InlineButton(text="▶️ Начать тренировку", callback_data=f"start_workout:{workout.id}")],
            [InlineButton(text="❌ Отменить", callback_data="cancel_action")],
        ]
        await self._telegram.send_message(chat_id, format_plan(workout), keyboard)
        return workout

    async def _remind_finish(self, user_id: int, chat_id: int) -> None:
        workout = await self._workouts.find_pending_workout(user_id, WorkoutStatus.IN_PROGRESS)
        if workout is None:
            await self._fsm.transition_to(user_id, UserState.IDLE)
            await self._telegram.send_message(chat_id, "Активная тренировка не найдена. " + USE_COMMANDS)
            return
        keyboard = [[InlineButton(text="🏁 Завершить тренировку", callback_data=f"finish_workout:{workout.id}")]]
        await self._telegram.send_message(chat_id, "Тренировка идет. Нажми кнопку, когда закончишь.", keyboard)

    async def _process_feedback(self, text: str, user_id: int, chat_id: int) -> None:
        workout = await self._workouts.find_pending_workout(user_id, WorkoutStatus.IN_PROGRESS)
        if workout is None:
            await self._fsm.transition_to(user_id, UserState.IDLE)
            await self._telegram.send_message(chat_id, "Не нашел тренировку для отзыва. " + USE_COMMANDS)
            return

        await self._telegram.send_message(chat_id, "⏳ Анализирую отзыв...")
        completed = await self._workouts.process_feedback(user_id, workout.id, text)
        await self._telegram.send_message(chat_id, format_feedback_result(completed))

    async def _process_reminder(self, user: UserProfile, now: datetime) -> None:
        scheduling = user.scheduling
        if scheduling is None:
            return

        until = as_utc(scheduling.next_workout) - now
        if until < -STALE_SCHEDULE:
            await self._profiles.clear_scheduling(user.id)
            logger.info(f"[REMINDERS] Cleared stale schedule for user {user.id}")
            return

        if until <= REMINDER_5M:
            if scheduling.reminder_5m_sent:
                return
            await self._profiles.mark_reminder_sent(user.id, "5m")
            if user.fsm_state == UserState.IDLE:
                await self._telegram.send_message(user.id, "⏰ Тренировка через 5 минут! Готовлю план...")
                await self._request_workout(user.id, user.id)
            else:
                await self._telegram.send_message(user.id, "⏰ Тренировка через 5 минут!")
            return

        if until <= REMINDER_1H and not scheduling.reminder_1h_sent:
            await self._profiles.mark_reminder_sent(user.id, "1h")
            await self._telegram.send_message(user.id, "⏰ Напоминание: тренировка через час!")

    # ==========================================================================
    # Replies
    # ==========================================================================

    async def _reply_busy(self, chat_id: int) -> None:
        await self._telegram.send_message(chat_id, BUSY_MESSAGE, cancel_keyboard())

    async def _report_error(self, user_id: int, chat_id: int, error: Exception, context: str) -> None:
        classified: AppError = classify(error)
        if isinstance(classified, UnexpectedError):
            logger.opt(exception=error).error(f"[BOT] Unexpected error for user {user_id} ({context}): {error}")
        else:
            logger.warning(f"[BOT] {type(classified).__name__} for user {user_id} ({context}): {classified.message}")

        try:
            self._analytics.track(user_id, EventType.ERROR, type(classified).__name__, {"context": context})
        except Exception as e:
            logger.warning(f"[BOT] Failed to track error event: {e}")
        await self._telegram.send_message(chat_id, to_user_message(classified))