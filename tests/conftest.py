"""Root conftest for all tests.

Shared fixtures: settings with instant retries, a file-backed SQLite database
per test, and in-memory fakes for the AI provider and the Telegram Bot API.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from app.bot.schemas import InlineKeyboard, TelegramUpdate, UpdateBatch
from app.coach.llm_client import Completion
from app.config.settings import Settings
from app.core.container import build_container
from app.db.session import build_engine, create_schema
from app.users.models import ExperienceLevel, Gender, ProfileData, TrainingGoal, UserProfile, UserState

PLAN_REPLY = """Вот твоя тренировка:
```json
{
  "warmup": "Суставная гимнастика 5 минут",
  "exercises": [
    {"name": "Swing", "weight": 16, "reps": 15, "sets": 5, "coaching_tips": "Толчок тазом"},
    {"name": "Goblet squat", "weight": "24", "reps": 8, "sets": 4}
  ],
  "cooldown": "Растяжка"
}
```"""

FEEDBACK_REPLY = """{
  "actual_data": [
    {"name": "Swing", "weight": 16, "reps": 15, "sets": 5, "status": "completed"},
    {"name": "Goblet squat", "weight": 24, "reps": 8, "sets": 3, "status": "partial"}
  ],
  "rpe": 7,
  "recovery_status": "good",
  "technical_notes": "Техника стабильная",
  "coach_feedback": "Хорошая работа!",
  "red_flags": []
}"""


class FakeCompletionClient:
    """Scripted AI provider: replies are consumed in order."""

    def __init__(self):
        self.model = "test-model"
        self.replies: list[str | Exception] = []
        self.transcripts: list[str | Exception] = []
        self.calls: list[tuple[str, str]] = []
        self.transcribe_calls = 0

    def queue(self, *replies: str | Exception) -> None:
        self.replies.extend(replies)

    async def complete(self, system: str, prompt: str) -> Completion:
        self.calls.append((system, prompt))
        if not self.replies:
            raise AssertionError("No AI reply queued")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return Completion(text=reply, tokens_used=100, finish_reason="stop", model=self.model)

    async def transcribe(self, audio: bytes, language: str) -> str:
        self.transcribe_calls += 1
        reply = self.transcripts.pop(0) if self.transcripts else ""
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def close(self) -> None:
        pass


@dataclass
class SentMessage:
    chat_id: int
    text: str
    keyboard: InlineKeyboard | None


class FakeTelegram:
    """Records outbound Bot API calls instead of performing them."""

    def __init__(self):
        self.sent: list[SentMessage] = []
        self.answered: list[str] = []
        self.closed = False

    async def send_message(self, chat_id: int, text: str, keyboard: InlineKeyboard | None = None) -> None:
        self.sent.append(SentMessage(chat_id, text, keyboard))

    async def answer_callback_query(self, callback_query_id: str, text: str | None = None) -> None:
        self.answered.append(callback_query_id)

    async def get_file(self, file_id: str) -> str:
        return f"voice/{file_id}.ogg"

    async def download_file(self, file_path: str) -> bytes:
        return b"OggS-fake-audio"

    async def get_updates(self, offset: int | None = None) -> UpdateBatch:
        return UpdateBatch()

    async def close(self) -> None:
        self.closed = True

    @property
    def last(self) -> SentMessage:
        assert self.sent, "No messages sent"
        return self.sent[-1]

    def callback_data(self) -> list[str]:
        """All callback_data values of the last message's keyboard."""
        keyboard = self.last.keyboard or []
        return [button.callback_data for row in keyboard for button in row]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        TELEGRAM_BOT_TOKEN="test-token",
        OPENAI_API_KEY="test-key",
        DATABASE_URL="sqlite://",
        BOT_MODE="webhook",
        FREE_MONTHLY_LIMIT=10,
        QUOTA_WINDOW_DAYS=30,
        AI_MAX_ATTEMPTS=3,
        RETRY_INITIAL_DELAY_SECONDS=0,
        USER_TIMEZONE="UTC",
        ADMIN_USER_IDS="999",
    )


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    create_schema(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def fake_ai() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def fake_telegram() -> FakeTelegram:
    return FakeTelegram()


@pytest.fixture
def container(settings, session_factory, fake_ai, fake_telegram):
    return build_container(settings, session_factory=session_factory, ai_client=fake_ai, telegram=fake_telegram)


@pytest.fixture
def seed_profile(container):
    """Persist a fully onboarded profile and return it."""

    async def _seed(
        user_id: int = 42,
        state: UserState = UserState.IDLE,
        weights: list[int] | None = None,
        created_at: datetime | None = None,
    ) -> UserProfile:
        profile = UserProfile(
            id=user_id,
            fsm_state=state,
            profile=ProfileData(
                weights=[16, 24] if weights is None else weights,
                experience=ExperienceLevel.AMATEUR,
                body_weight=80.0,
                gender=Gender.MALE,
                goal=TrainingGoal.STRENGTH,
            ),
        )
        if created_at is not None:
            profile.metadata.created_at = created_at
        await container.users.save(profile)
        return profile

    return _seed


def _user(user_id: int) -> dict:
    return {"id": user_id, "first_name": "Test", "is_bot": False}


@pytest.fixture
def text_update():
    counter = iter(range(1, 10_000))

    def _make(text: str, user_id: int = 42) -> TelegramUpdate:
        return TelegramUpdate.model_validate(
            {
                "update_id": next(counter),
                "message": {
                    "message_id": 1,
                    "from": _user(user_id),
                    "chat": {"id": user_id, "type": "private"},
                    "date": int(datetime.now(timezone.utc).timestamp()),
                    "text": text,
                },
            }
        )

    return _make


@pytest.fixture
def voice_update():
    def _make(file_id: str = "voice-1", user_id: int = 42) -> TelegramUpdate:
        return TelegramUpdate.model_validate(
            {
                "update_id": 5000,
                "message": {
                    "message_id": 2,
                    "from": _user(user_id),
                    "chat": {"id": user_id, "type": "private"},
                    "voice": {"file_id": file_id, "duration": 12},
                },
            }
        )

    return _make


@pytest.fixture
def callback_update():
    counter = iter(range(20_000, 30_000))

    def _make(data: str, user_id: int = 42) -> TelegramUpdate:
        return TelegramUpdate.model_validate(
            {
                "update_id": next(counter),
                "callback_query": {
                    "id": f"cb-{data}",
                    "from": _user(user_id),
                    "message": {"message_id": 3, "chat": {"id": user_id, "type": "private"}},
                    "data": data,
                },
            }
        )

    return _make


@pytest.fixture
def plan_reply() -> str:
    return PLAN_REPLY


@pytest.fixture
def feedback_reply() -> str:
    return FEEDBACK_REPLY
