"""Long-polling worker that feeds Telegram updates to the handler."""

from __future__ import annotations

import asyncio

from loguru import logger

from app.bot.handler import BotHandler
from app.bot.telegram_client import TelegramClient


class PollingWorker:
    """Pull updates with getUpdates and dispatch each one as its own task.

    The offset cursor advances past every received update, including ones that
    fail validation or fail inside the handler, so none is redelivered.
    """

    def __init__(self, telegram: TelegramClient, handler: BotHandler, error_delay_seconds: float = 5.0):
        self._telegram = telegram
        self._handler = handler
        self._error_delay = error_delay_seconds
        self._offset: int | None = None
        self._tasks: set[asyncio.Task] = set()
        self._stopped = asyncio.Event()

    @property
    def offset(self) -> int | None:
        return self._offset

    async def poll_once(self) -> int:
        """Fetch one batch of updates and schedule their handling.

        Returns:
            Number of valid updates received
        """
        batch = await self._telegram.get_updates(self._offset)
        if batch.next_offset is not None:
            self._offset = max(self._offset or 0, batch.next_offset)
        for update in batch.updates:
            task = asyncio.create_task(self._handler.handle_update(update))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return len(batch.updates)

    async def run(self) -> None:
        logger.info("[POLLING] Starting long-polling loop")
        while not self._stopped.is_set():
            try:
                received = await self.poll_once()
                if received:
                    logger.debug(f"[POLLING] Received {received} update(s), next offset={self._offset}")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[POLLING] getUpdates failed: {type(e).__name__}: {e}. Retrying in {self._error_delay}s")
                await asyncio.sleep(self._error_delay)
        logger.info("[POLLING] Stopped long-polling loop")

    async def stop(self) -> None:
        self._stopped.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
