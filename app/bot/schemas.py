"""Telegram update envelopes.

Only the fields the bot reads are modelled; everything else in the payload
is ignored.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class TelegramModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TelegramUser(TelegramModel):
    id: int
    first_name: str = ""
    username: str | None = None


class TelegramChat(TelegramModel):
    id: int
    type: str = "private"


class TelegramVoice(TelegramModel):
    file_id: str
    duration: int | None = None


class TelegramMessage(TelegramModel):
    message_id: int
    from_user: TelegramUser | None = Field(default=None, alias="from")
    chat: TelegramChat
    text: str | None = None
    voice: TelegramVoice | None = None


class TelegramCallbackQuery(TelegramModel):
    id: str
    from_user: TelegramUser = Field(alias="from")
    message: TelegramMessage | None = None
    data: str | None = None


class TelegramUpdate(TelegramModel):
    update_id: int
    message: TelegramMessage | None = None
    callback_query: TelegramCallbackQuery | None = None


class InlineButton(TelegramModel):
    text: str
    callback_data: str


InlineKeyboard = list[list[InlineButton]]


class UpdateBatch(BaseModel):
    """One getUpdates result: the valid updates and the cursor past the whole batch.

    `next_offset` also covers updates that failed validation, so they are
    acknowledged and never refetched.
    """

    updates: list[TelegramUpdate] = Field(default_factory=list)
    next_offset: int | None = None
