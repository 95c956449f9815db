"""Error taxonomy shared by every service.

Errors are grouped by kind, not by concrete type. The kind decides whether a
failure is retried and which message the user sees; the concrete class only
carries the details needed for logging.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    SERVICE_UNAVAILABLE = "service_unavailable"
    OPERATION_FAILED = "operation_failed"
    VALIDATION = "validation"
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    QUOTA_EXCEEDED = "quota_exceeded"
    ILLEGAL_STATE = "illegal_state"
    UNEXPECTED = "unexpected"


class AppError(Exception):
    """Base class for all classified failures.

    Attributes:
        kind: Taxonomy kind of the failure
        scope: Where the failure originated (e.g. "ai", "database", "ai-plan")
        message: Human-readable description (not necessarily user-safe)
    """

    kind: ErrorKind = ErrorKind.UNEXPECTED
    scope: str | None = None

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind}, scope={self.scope}, message={self.message!r})"


# AI service errors


class AIServiceUnavailableError(AppError):
    kind = ErrorKind.SERVICE_UNAVAILABLE
    scope = "ai"

    def __init__(self, message: str = "AI service is currently unavailable"):
        super().__init__(message)


class AIOperationFailedError(AppError):
    """An AI call completed but its result could not be used."""

    kind = ErrorKind.OPERATION_FAILED
    scope = "ai"


class TranscriptionFailedError(AIOperationFailedError):
    scope = "ai-transcription"

    def __init__(self, message: str = "Failed to transcribe voice message"):
        super().__init__(message)


class WorkoutGenerationFailedError(AIOperationFailedError):
    scope = "ai-plan"

    def __init__(self, message: str = "Failed to generate workout plan"):
        super().__init__(message)


class FeedbackAnalysisFailedError(AIOperationFailedError):
    scope = "ai-feedback"

    def __init__(self, message: str = "Failed to analyze feedback"):
        super().__init__(message)


# Database errors


class DatabaseUnavailableError(AppError):
    kind = ErrorKind.SERVICE_UNAVAILABLE
    scope = "database"

    def __init__(self, message: str = "Database is currently unavailable"):
        super().__init__(message)


class DatabaseOperationFailedError(AppError):
    kind = ErrorKind.OPERATION_FAILED
    scope = "database"

    def __init__(self, message: str = "Database operation failed"):
        super().__init__(message)


# Validation errors (the only kinds whose detail reaches the user verbatim)


class FieldValidationError(AppError):
    kind = ErrorKind.VALIDATION

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class InvalidInputError(AppError):
    kind = ErrorKind.INVALID_INPUT


# Business logic errors


class UserNotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND
    scope = "user"

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class WorkoutNotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND
    scope = "workout"

    def __init__(self, workout_id: str):
        self.workout_id = workout_id
        super().__init__(f"Workout {workout_id} not found")


class SubscriptionLimitExceededError(AppError):
    kind = ErrorKind.QUOTA_EXCEEDED

    def __init__(self, limit: int | None = None):
        self.limit = limit
        super().__init__("Free monthly limit exceeded")


class InvalidStateTransitionError(AppError):
    kind = ErrorKind.ILLEGAL_STATE
    scope = "invalid-transition"

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid state transition from {from_state} to {to_state}")


class UnexpectedError(AppError):
    kind = ErrorKind.UNEXPECTED

    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message)


_GENERIC_MESSAGE = "Произошла непредвиденная ошибка. Попробуйте позже или обратитесь в поддержку."


def to_user_message(error: AppError) -> str:
    """Map a classified error to a localized, user-safe message.

    Validation and invalid-input errors pass their detail through verbatim;
    every other kind gets a fixed message so raw failure text never reaches
    the user.

    Args:
        error: Classified error

    Returns:
        Message to send to the user
    """
    match error:
        case AIServiceUnavailableError():
            return "Сервис генерации тренировок временно недоступен. Попробуйте позже."
        case TranscriptionFailedError():
            return "Не удалось распознать голосовое сообщение. Попробуйте отправить текстом."
        case WorkoutGenerationFailedError():
            return "Не удалось создать план тренировки. Попробуйте позже."
        case FeedbackAnalysisFailedError():
            return "Не удалось проанализировать отзыв. Попробуйте еще раз."
        case AIOperationFailedError():
            return "Сервис генерации тренировок вернул некорректный ответ. Попробуйте еще раз."
        case DatabaseUnavailableError():
            return "База данных временно недоступна. Попробуйте позже."
        case DatabaseOperationFailedError():
            return "Ошибка при сохранении данных. Попробуйте еще раз."
        case FieldValidationError() | InvalidInputError():
            return error.message
        case UserNotFoundError():
            return "Пользователь не найден. Используйте /start для начала работы."
        case WorkoutNotFoundError():
            return "Тренировка не найдена."
        case SubscriptionLimitExceededError():
            return "Достигнут месячный лимит бесплатных тренировок. Обновите подписку для продолжения."
        case InvalidStateTransitionError():
            return "Невозможно выполнить это действие в текущем состоянии."
        case _:
            return _GENERIC_MESSAGE
