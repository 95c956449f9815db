"""Text-completion and speech-to-text client.

Thin wrapper over the OpenAI SDK. It does not parse or validate anything;
callers receive the raw reply text plus usage metadata.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from loguru import logger
from openai import AsyncOpenAI

from app.config.settings import Settings


@dataclass(frozen=True)
class Completion:
    text: str
    tokens_used: int
    finish_reason: str | None
    model: str


class CompletionClient(Protocol):
    async def complete(self, system: str, prompt: str) -> Completion: ...

    async def transcribe(self, audio: bytes, language: str) -> str: ...


class EmptyCompletionError(RuntimeError):
    """Provider returned a completion without content."""


class OpenAICompletionClient:
    """Chat completions and audio transcription through `AsyncOpenAI`."""

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None):
        if not settings.openai_api_key and client is None:
            logger.warning("[AI] OPENAI_API_KEY not set; AI calls will fail until it is configured")
        self._client = client or AsyncOpenAI(api_key=settings.openai_api_key or "missing")
        self._model = settings.openai_model
        self._transcription_model = settings.transcription_model

    async def complete(self, system: str, prompt: str) -> Completion:
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        )
        choice = response.choices[0]
        content = choice.message.content
        if not content:
            raise EmptyCompletionError("Empty response from AI")

        tokens = response.usage.total_tokens if response.usage else 0
        return Completion(
            text=content,
            tokens_used=tokens,
            finish_reason=choice.finish_reason,
            model=response.model or self._model,
        )

    async def transcribe(self, audio: bytes, language: str) -> str:
        response = await self._client.audio.transcriptions.create(
            model=self._transcription_model,
            file=("voice.ogg", audio),
            language=language,
        )
        return response.text

    async def close(self) -> None:
        await self._client.close()
