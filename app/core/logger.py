"""Loguru sinks for the coach service.

Console output is always on; a rotating file sink is added when ``LOG_FILE``
is configured. Every record passes through a filter that masks the bot token,
since Bot API URLs embed it and httpx errors echo those URLs back.
"""

import sys
from pathlib import Path

from loguru import logger

from app.config.settings import Settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | user={extra[user_id]} - {message}"


def _token_mask(token: str):
    def mask(record) -> bool:
        record["extra"].setdefault("user_id", "-")
        if token and token in record["message"]:
            record["message"] = record["message"].replace(token, "***")
        return True

    return mask


def setup_logger(app_settings: Settings, rotation: str = "10 MB", retention: str = "14 days") -> None:
    """Install console and optional file sinks for the coach service.

    Args:
        app_settings: Source of ``log_level``, ``log_file`` and the bot token to mask
        rotation: Size or interval after which the log file rotates
        retention: How long rotated files are kept
    """
    logger.remove()
    mask = _token_mask(app_settings.telegram_bot_token)

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=app_settings.log_level, colorize=True, filter=mask)

    if app_settings.log_file:
        log_path = Path(app_settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path,
            format=FILE_FORMAT,
            level=app_settings.log_level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            filter=mask,
            # Feedback text can show up in tracebacks
            diagnose=False,
        )

    logger.info(f"[LOGGER] level={app_settings.log_level} file={app_settings.log_file or '-'}")
