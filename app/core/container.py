"""Wiring of repositories, services and clients into one object graph."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from app.analytics.service import AnalyticsService
from app.bot.handler import BotHandler
from app.bot.telegram_client import TelegramClient
from app.coach.ai_service import AIService
from app.coach.fsm import FSMManager
from app.coach.llm_client import CompletionClient, OpenAICompletionClient
from app.config.settings import Settings
from app.db.session import get_session_factory
from app.users.profile_service import ProfileService
from app.users.repository import UserRepository
from app.workouts.repository import WorkoutRepository
from app.workouts.service import WorkoutService


@dataclass
class AppContainer:
    settings: Settings
    session_factory: sessionmaker[Session]
    telegram: TelegramClient
    ai_client: CompletionClient
    analytics: AnalyticsService
    users: UserRepository
    workouts: WorkoutRepository
    fsm: FSMManager
    profile_service: ProfileService
    workout_service: WorkoutService
    ai_service: AIService
    handler: BotHandler

    async def close(self) -> None:
        await self.analytics.drain()
        await self.telegram.close()
        close = getattr(self.ai_client, "close", None)
        if close is not None:
            await close()


def build_container(
    settings: Settings,
    session_factory: sessionmaker[Session] | None = None,
    ai_client: CompletionClient | None = None,
    telegram: TelegramClient | None = None,
) -> AppContainer:
    """Build the full object graph. Collaborators may be injected for tests."""
    session_factory = session_factory or get_session_factory()
    ai_client = ai_client or OpenAICompletionClient(settings)
    telegram = telegram or TelegramClient(settings)

    analytics = AnalyticsService(session_factory)
    users = UserRepository(session_factory)
    workouts = WorkoutRepository(session_factory)
    fsm = FSMManager(users, analytics)
    ai_service = AIService(ai_client, settings)
    profile_service = ProfileService(users)
    workout_service = WorkoutService(workouts, users, ai_service, fsm, settings)
    handler = BotHandler(telegram, fsm, profile_service, workout_service, ai_service, analytics, settings)

    return AppContainer(
        settings=settings,
        session_factory=session_factory,
        telegram=telegram,
        ai_client=ai_client,
        analytics=analytics,
        users=users,
        workouts=workouts,
        fsm=fsm,
        profile_service=profile_service,
        workout_service=workout_service,
        ai_service=ai_service,
        handler=handler,
    )
