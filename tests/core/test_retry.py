"""Tests for failure classification and retry-with-backoff."""

import httpx
import openai
import pytest
from sqlalchemy import exc as sa_exc

from app.coach.ai_service import AI_RETRYABLE
from app.core.errors import (
    AIOperationFailedError,
    AIServiceUnavailableError,
    DatabaseOperationFailedError,
    DatabaseUnavailableError,
    FieldValidationError,
    InvalidInputError,
    InvalidStateTransitionError,
    SubscriptionLimitExceededError,
    UnexpectedError,
    WorkoutGenerationFailedError,
    to_user_message,
)
from app.core.retry import classify, with_retry


class TestClassify:
    def test_classified_errors_pass_through(self):
        error = InvalidInputError("bad")
        assert classify(error) is error

    def test_sqlalchemy_operational_error_is_unavailable(self):
        raw = sa_exc.OperationalError("SELECT 1", {}, Exception("database is locked"))
        classified = classify(raw)
        assert isinstance(classified, DatabaseUnavailableError)
        assert classified.__cause__ is raw

    def test_other_sqlalchemy_error_is_operation_failed(self):
        raw = sa_exc.IntegrityError("INSERT", {}, Exception("duplicate key"))
        assert isinstance(classify(raw), DatabaseOperationFailedError)

    def test_openai_connection_error_is_unavailable(self):
        raw = openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
        assert isinstance(classify(raw), AIServiceUnavailableError)

    def test_value_error_is_invalid_input(self):
        classified = classify(ValueError("weight must be positive"))
        assert isinstance(classified, InvalidInputError)
        assert classified.message == "weight must be positive"

    def test_message_hints(self):
        assert isinstance(classify(RuntimeError("postgres connection reset")), DatabaseUnavailableError)
        assert isinstance(classify(RuntimeError("OpenAI API timed out")), AIServiceUnavailableError)

    def test_unknown_error_is_unexpected(self):
        assert isinstance(classify(RuntimeError("boom")), UnexpectedError)


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        attempts = 0

        async def operation():
            nonlocal attempts
            attempts += 1
            if attempts < 2:
                raise DatabaseUnavailableError()
            return "ok"

        assert await with_retry(operation, initial_delay=0) == "ok"
        assert attempts == 2

    @pytest.mark.asyncio
    async def test_retryable_failure_uses_all_attempts(self):
        attempts = 0

        async def operation():
            nonlocal attempts
            attempts += 1
            raise sa_exc.OperationalError("SELECT 1", {}, Exception("connection refused"))

        with pytest.raises(DatabaseUnavailableError):
            await with_retry(operation, max_attempts=3, initial_delay=0)
        assert attempts == 3

    @pytest.mark.asyncio
    async def test_non_retryable_failure_fails_fast(self):
        attempts = 0

        async def operation():
            nonlocal attempts
            attempts += 1
            raise InvalidInputError("bad input")

        with pytest.raises(InvalidInputError):
            await with_retry(operation, max_attempts=3, initial_delay=0)
        assert attempts == 1

    @pytest.mark.asyncio
    async def test_unusable_ai_reply_retried_only_with_ai_set(self):
        attempts = 0

        async def operation():
            nonlocal attempts
            attempts += 1
            raise WorkoutGenerationFailedError()

        with pytest.raises(WorkoutGenerationFailedError):
            await with_retry(operation, initial_delay=0)
        assert attempts == 1

        attempts = 0
        with pytest.raises(WorkoutGenerationFailedError):
            await with_retry(operation, initial_delay=0, retryable=AI_RETRYABLE)
        assert attempts == 3

    @pytest.mark.asyncio
    async def test_raw_exception_surfaces_classified(self):
        async def operation():
            raise RuntimeError("boom")

        with pytest.raises(UnexpectedError) as excinfo:
            await with_retry(operation, initial_delay=0)
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self):
        async def operation():
            return None

        with pytest.raises(ValueError):
            await with_retry(operation, max_attempts=0)


class TestUserMessages:
    def test_validation_detail_passes_through(self):
        error = FieldValidationError("body_weight", "Вес тела должен быть от 30 до 250 кг")
        assert to_user_message(error) == "Вес тела должен быть от 30 до 250 кг"

    def test_unexpected_detail_is_hidden(self):
        message = to_user_message(UnexpectedError("Traceback: secret internals"))
        assert "secret" not in message
        assert "непредвиденная ошибка" in message

    def test_fixed_messages_per_kind(self):
        assert "недоступен" in to_user_message(AIServiceUnavailableError())
        assert "лимит" in to_user_message(SubscriptionLimitExceededError(10))
        assert "текущем состоянии" in to_user_message(InvalidStateTransitionError("IDLE", "WORKOUT_IN_PROGRESS"))
        assert "некорректный ответ" in to_user_message(AIOperationFailedError("garbage"))
