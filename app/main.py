import asyncio
import secrets
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from loguru import logger
from pydantic import ValidationError

from app.bot.schemas import TelegramUpdate
from app.config.settings import settings
from app.core.container import AppContainer, build_container
from app.core.logger import setup_logger
from app.db.session import create_schema, get_engine
from app.workers.polling_worker import PollingWorker
from app.workers.reminder_worker import build_reminder_scheduler


def create_app(container: AppContainer | None = None) -> FastAPI:
    """Build the FastAPI app.

    When no container is injected, the default one is built on startup and
    the database schema is created.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_container = container is None
        if owns_container:
            setup_logger(settings)
            create_schema(get_engine())
            app.state.container = build_container(settings)
        current: AppContainer = app.state.container

        scheduler = build_reminder_scheduler(current.handler, current.settings.reminder_interval_seconds)
        scheduler.start()
        logger.info(
            f"[SCHEDULER] Started reminder scheduler (every {current.settings.reminder_interval_seconds}s)"
        )

        polling: PollingWorker | None = None
        polling_task: asyncio.Task | None = None
        if current.settings.bot_mode == "polling":
            polling = PollingWorker(current.telegram, current.handler, current.settings.polling_error_delay_seconds)
            polling_task = asyncio.create_task(polling.run())
            logger.info("[POLLING] Bot running in polling mode")
        else:
            logger.info("[WEBHOOK] Bot running in webhook mode")

        yield

        if polling is not None and polling_task is not None:
            await polling.stop()
            polling_task.cancel()
            try:
                await polling_task
            except asyncio.CancelledError:
                pass
        scheduler.shutdown(wait=False)
        logger.info("[SCHEDULER] Stopped reminder scheduler")
        if owns_container:
            await current.close()
        else:
            await current.analytics.drain()

    app = FastAPI(title="Kettlebell Coach Bot", lifespan=lifespan)
    if container is not None:
        app.state.container = container

    @app.get("/health", response_class=PlainTextResponse)
    def health():
        return "OK"

    @app.post("/webhook/{token}")
    async def webhook(token: str, request: Request, background_tasks: BackgroundTasks):
        current: AppContainer = request.app.state.container
        expected = current.settings.telegram_bot_token
        if not expected or not secrets.compare_digest(token.encode(), expected.encode()):
            logger.warning("[WEBHOOK] Rejected request with invalid token")
            raise HTTPException(status_code=403, detail="Forbidden")

        try:
            update = TelegramUpdate.model_validate(await request.json())
        except (ValueError, ValidationError) as e:
            # Acknowledge anyway so Telegram does not redeliver a payload we cannot read
            logger.warning(f"[WEBHOOK] Ignoring malformed update: {e}")
            return JSONResponse({"ok": True})

        background_tasks.add_task(current.handler.handle_update, update)
        logger.debug(f"[WEBHOOK] Accepted update {update.update_id}")
        return JSONResponse({"ok": True})

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests without the bot token in the path."""
        path = "/webhook/***" if request.url.path.startswith("/webhook/") else request.url.path
        logger.debug(f"Request: {request.method} {path}")
        response = await call_next(request)
        logger.debug(f"Response: {response.status_code} for {request.method} {path}")
        return response

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000)
