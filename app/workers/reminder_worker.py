"""Periodic job that sends scheduled-workout reminders."""

from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from app.bot.handler import BotHandler

REMINDER_JOB_ID = "workout_reminders"


async def reminder_tick(handler: BotHandler) -> None:
    """Run one reminder pass. Errors are logged so the scheduler keeps firing."""
    try:
        await handler.check_reminders()
    except Exception as e:
        logger.error(f"[REMINDERS] Reminder pass failed: {type(e).__name__}: {e}")


def build_reminder_scheduler(handler: BotHandler, interval_seconds: int) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        reminder_tick,
        trigger=IntervalTrigger(seconds=interval_seconds),
        args=[handler],
        id=REMINDER_JOB_ID,
        name="Workout reminders",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler
