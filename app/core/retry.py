"""Retry-with-backoff wrapper and failure classification.

Every collaborator call (persistence, AI provider) goes through `with_retry`.
Raw exceptions are classified into the `AppError` taxonomy first, so retry
decisions are made by kind and callers only ever see classified errors.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable
from typing import TypeVar

import openai
from loguru import logger
from sqlalchemy import exc as sa_exc

from app.core.errors import (
    AIServiceUnavailableError,
    AppError,
    DatabaseOperationFailedError,
    DatabaseUnavailableError,
    InvalidInputError,
    UnexpectedError,
)

T = TypeVar("T")

DEFAULT_RETRYABLE: tuple[type[AppError], ...] = (
    DatabaseUnavailableError,
    DatabaseOperationFailedError,
    AIServiceUnavailableError,
)

_DATABASE_HINT = re.compile(r"database|mongodb|sqlite|postgres|connection", re.IGNORECASE)
_AI_HINT = re.compile(r"\bopenai\b|\bapi\b", re.IGNORECASE)

_SA_UNAVAILABLE = (sa_exc.OperationalError, sa_exc.DisconnectionError, sa_exc.InterfaceError, sa_exc.TimeoutError)
_OPENAI_UNAVAILABLE = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def classify(error: BaseException) -> AppError:
    """Map a raw collaborator failure to the error taxonomy.

    This is a best-effort boundary adapter: known exception families are mapped
    by type, anything else by conservative matching on the message text, and
    unrecognized failures become `UnexpectedError`.

    Args:
        error: Exception raised by a collaborator or by domain code

    Returns:
        Classified error. The original exception is attached as `__cause__`
        unless the input was already classified.
    """
    if isinstance(error, AppError):
        return error

    classified: AppError
    if isinstance(error, _SA_UNAVAILABLE):
        classified = DatabaseUnavailableError()
    elif isinstance(error, sa_exc.SQLAlchemyError):
        classified = DatabaseOperationFailedError()
    elif isinstance(error, _OPENAI_UNAVAILABLE):
        classified = AIServiceUnavailableError()
    elif isinstance(error, openai.APIError):
        # Auth / bad request: retrying cannot help
        classified = UnexpectedError(f"AI provider rejected the request: {type(error).__name__}")
    elif isinstance(error, ValueError):
        classified = InvalidInputError(str(error) or "Invalid input")
    else:
        text = str(error)
        if _DATABASE_HINT.search(text):
            classified = DatabaseUnavailableError()
        elif _AI_HINT.search(text):
            classified = AIServiceUnavailableError()
        else:
            classified = UnexpectedError()

    classified.__cause__ = error
    return classified


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    retryable: tuple[type[AppError], ...] = DEFAULT_RETRYABLE,
    operation_name: str = "operation",
) -> T:
    """Run an async operation, retrying classified retryable failures.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt
        max_attempts: Total number of attempts (>= 1)
        initial_delay: Seconds to sleep before the second attempt
        backoff_factor: Multiplier applied to the delay after each retry
        retryable: Error classes that may be retried
        operation_name: Name used in log lines

    Returns:
        Result of the first successful attempt

    Raises:
        AppError: The classified failure of the last attempt, or the first
            non-retryable failure
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    current_delay = initial_delay
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            error = classify(e)
            should_retry = isinstance(error, retryable)

            if not should_retry or attempt == max_attempts:
                logger.error(
                    f"[RETRY] {operation_name} failed after {attempt} attempt(s): "
                    f"{type(e).__name__}: {e} (kind={error.kind}, scope={error.scope})"
                )
                if error is e:
                    raise
                raise error from e

            logger.warning(
                f"[RETRY] {operation_name} attempt {attempt}/{max_attempts} failed: {type(e).__name__}: {e}. "
                f"Retrying in {current_delay:.2f}s"
            )
            await asyncio.sleep(current_delay)
            current_delay *= backoff_factor

    # Unreachable: the loop either returns or raises
    raise UnexpectedError(f"{operation_name} exhausted retries")
