"""Outbound Telegram Bot API client."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from app.bot.schemas import InlineKeyboard, TelegramUpdate, UpdateBatch
from app.config.settings import Settings

HTTP_TIMEOUT = 30.0


class TelegramAPIError(RuntimeError):
    """Bot API answered with ok=false or a non-2xx status."""


class TelegramClient:
    """Thin async wrapper over the Bot API methods the bot uses."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self._token = settings.telegram_bot_token
        self._base_url = settings.telegram_api_url.rstrip("/")
        self._polling_timeout = settings.polling_timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=HTTP_TIMEOUT)

    @property
    def _method_url(self) -> str:
        return f"{self._base_url}/bot{self._token}"

    async def _call(self, method: str, payload: dict[str, Any], timeout: float | None = None) -> Any:
        response = await self._client.post(
            f"{self._method_url}/{method}",
            json=payload,
            timeout=timeout or HTTP_TIMEOUT,
        )
        if response.status_code >= 400:
            raise TelegramAPIError(f"Telegram API {method} failed: HTTP {response.status_code} {response.text[:200]}")
        body = response.json()
        if not body.get("ok", False):
            raise TelegramAPIError(f"Telegram API {method} failed: {body.get('description')}")
        return body.get("result")

    async def send_message(self, chat_id: int, text: str, keyboard: InlineKeyboard | None = None) -> None:
        """Send a text message. Delivery failures are logged, never raised."""
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if keyboard:
            payload["reply_markup"] = {"inline_keyboard": [[button.model_dump() for button in row] for row in keyboard]}
        try:
            await self._call("sendMessage", payload)
        except (httpx.HTTPError, TelegramAPIError) as e:
            logger.error(f"[BOT] Failed to send message to chat {chat_id}: {e}")

    async def answer_callback_query(self, callback_query_id: str, text: str | None = None) -> None:
        payload: dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        try:
            await self._call("answerCallbackQuery", payload)
        except (httpx.HTTPError, TelegramAPIError) as e:
            logger.warning(f"[BOT] Failed to answer callback {callback_query_id}: {e}")

    async def get_file(self, file_id: str) -> str:
        """Resolve a file id to its download path."""
        result = await self._call("getFile", {"file_id": file_id})
        return result["file_path"]

    async def download_file(self, file_path: str) -> bytes:
        response = await self._client.get(f"{self._base_url}/file/bot{self._token}/{file_path}")
        response.raise_for_status()
        return response.content

    async def get_updates(self, offset: int | None = None) -> UpdateBatch:
        """Long-poll for updates starting at `offset`.

        Each update is validated on its own: a malformed one is logged and
        skipped, but still counts towards `next_offset`.
        """
        payload: dict[str, Any] = {"timeout": self._polling_timeout, "allowed_updates": ["message", "callback_query"]}
        if offset is not None:
            payload["offset"] = offset
        result = await self._call("getUpdates", payload, timeout=self._polling_timeout + HTTP_TIMEOUT)
        batch = UpdateBatch()
        for item in result or []:
            update_id = item.get("update_id") if isinstance(item, dict) else None
            if isinstance(update_id, int) and not isinstance(update_id, bool):
                batch.next_offset = max(batch.next_offset or 0, update_id + 1)
            try:
                batch.updates.append(TelegramUpdate.model_validate(item))
            except ValidationError as e:
                logger.warning(f"[BOT] Skipping malformed update {update_id}: {e.error_count()} validation errors")
        return batch

    async def close(self) -> None:
        await self._client.aclose()
