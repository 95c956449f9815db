"""AI exchange: prompt, call, parse, with retries.

Every call is retried on provider unavailability and on unusable replies
(empty or unparseable), since a second sample from the model often succeeds.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

from app.coach.llm_client import Completion, CompletionClient, EmptyCompletionError
from app.coach.parsing import ResponseParseError, parse_actual_performance, parse_workout_plan
from app.coach.prompts import (
    SYSTEM_PROMPT_FEEDBACK_ANALYSIS,
    SYSTEM_PROMPT_WORKOUT_GENERATION,
    build_feedback_prompt,
    build_workout_prompt,
)
from app.config.settings import Settings
from app.core.errors import (
    AIOperationFailedError,
    AIServiceUnavailableError,
    AppError,
    FeedbackAnalysisFailedError,
    TranscriptionFailedError,
    WorkoutGenerationFailedError,
)
from app.core.retry import with_retry
from app.workouts.models import ActualPerformance, AILog, WorkoutContext, WorkoutPlan

T = TypeVar("T")

AI_RETRYABLE: tuple[type[AppError], ...] = (AIServiceUnavailableError, AIOperationFailedError)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class AIService:
    """Plan generation, feedback analysis and voice transcription."""

    def __init__(self, client: CompletionClient, settings: Settings):
        self._client = client
        self._settings = settings

    async def _retrying(self, operation: Callable[[], Awaitable[T]], operation_name: str) -> T:
        return await with_retry(
            operation,
            max_attempts=self._settings.ai_max_attempts,
            initial_delay=self._settings.retry_initial_delay_seconds,
            backoff_factor=self._settings.retry_backoff_factor,
            retryable=AI_RETRYABLE,
            operation_name=operation_name,
        )

    async def _complete(self, system: str, prompt: str, failure: type[AIOperationFailedError]) -> Completion:
        try:
            return await self._client.complete(system, prompt)
        except EmptyCompletionError as e:
            raise failure(str(e)) from e

    async def generate_workout_plan(self, context: WorkoutContext) -> WorkoutPlan:
        """Generate a plan for the given context.

        Raises:
            WorkoutGenerationFailedError: Replies stayed unusable after all attempts
            AIServiceUnavailableError: Provider stayed unreachable after all attempts
        """
        prompt = build_workout_prompt(context)

        async def attempt() -> WorkoutPlan:
            started = time.monotonic()
            completion = await self._complete(SYSTEM_PROMPT_WORKOUT_GENERATION, prompt, WorkoutGenerationFailedError)
            elapsed = _elapsed_ms(started)
            logger.info(
                f"[AI] Workout plan generated: tokens={completion.tokens_used}, "
                f"finish_reason={completion.finish_reason}, time={elapsed}ms"
            )
            logger.debug(f"[AI] Plan reply (raw): {completion.text}")

            ai_log = AILog(
                tokens_used=completion.tokens_used,
                model_version=completion.model,
                plan_generation_ms=elapsed,
                finish_reason=completion.finish_reason,
            )
            try:
                return parse_workout_plan(completion.text, ai_log)
            except ResponseParseError as e:
                raise WorkoutGenerationFailedError(f"Invalid workout plan format: {e}") from e

        return await self._retrying(attempt, "generate_workout_plan")

    async def analyze_feedback(self, feedback: str, plan: WorkoutPlan) -> ActualPerformance:
        """Structure free-form feedback against the original plan.

        Raises:
            FeedbackAnalysisFailedError: Replies stayed unusable after all attempts
            AIServiceUnavailableError: Provider stayed unreachable after all attempts
        """
        prompt = build_feedback_prompt(feedback, plan)

        async def attempt() -> ActualPerformance:
            started = time.monotonic()
            completion = await self._complete(SYSTEM_PROMPT_FEEDBACK_ANALYSIS, prompt, FeedbackAnalysisFailedError)
            elapsed = _elapsed_ms(started)
            logger.info(
                f"[AI] Feedback analyzed: tokens={completion.tokens_used}, "
                f"finish_reason={completion.finish_reason}, time={elapsed}ms"
            )
            logger.debug(f"[AI] Feedback reply (raw): {completion.text}")

            ai_log = AILog(
                tokens_used=completion.tokens_used,
                model_version=completion.model,
                feedback_analysis_ms=elapsed,
                finish_reason=completion.finish_reason,
            )
            try:
                return parse_actual_performance(completion.text, feedback, ai_log)
            except ResponseParseError as e:
                raise FeedbackAnalysisFailedError(f"Invalid actual performance format: {e}") from e

        return await self._retrying(attempt, "analyze_feedback")

    async def transcribe_voice(self, audio: bytes) -> str:
        """Transcribe a voice message in the configured language.

        Raises:
            TranscriptionFailedError: Provider returned no text after all attempts
        """

        async def attempt() -> str:
            text = await self._client.transcribe(audio, self._settings.transcription_language)
            if not text or not text.strip():
                raise TranscriptionFailedError("Transcription returned no text")
            logger.info(f"[AI] Voice transcribed: {len(audio)} bytes -> {len(text)} chars")
            return text.strip()

        return await self._retrying(attempt, "transcribe_voice")
