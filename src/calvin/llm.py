"""
Calvin — Language Model Client

Thin async wrapper over OpenAI chat completions with two entry points:
``complete()`` for a whole reply and ``stream()`` for token fragments.
SDK failures surface as LLMUnavailableError so the HTTP layer can map
them to 503.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Protocol

logger = logging.getLogger("calvin.llm")

DEFAULT_MODEL = "gpt-4-turbo-preview"


class LLMUnavailableError(Exception):
    """Raised when the language model cannot be reached or errors out."""


class ChatModel(Protocol):
    """What the assistant needs from a language model."""

    model: str

    async def complete(self, messages: list[dict[str, str]]) -> str: ...

    def stream(self, messages: list[dict[str, str]]) -> AsyncIterator[str]: ...


class OpenAIChatModel:
    """ChatModel backed by ``openai.AsyncOpenAI``.

    Usage:
        llm = OpenAIChatModel(api_key="sk-...")
        reply = await llm.complete([{"role": "user", "content": "Hi"}])
        async for fragment in llm.stream(messages):
            print(fragment, end="")
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = DEFAULT_MODEL,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        client: Any = None,
    ) -> None:
        self._api_key = api_key
        self._client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self._api_key or None)
        return self._client

    async def complete(self, messages: list[dict[str, str]]) -> str:
        """Return the full completion text ("" when the model returns nothing)."""
        try:
            completion = await self._get_client().chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                stream=False,
            )
        except Exception as e:
            logger.error(f"OpenAI completion failed: {e}")
            raise LLMUnavailableError("Failed to process message with AI") from e

        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""

    async def stream(self, messages: list[dict[str, str]]) -> AsyncIterator[str]:
        """Yield non-empty content fragments as the model produces them.

        Closing the generator early (client disconnect) closes the
        underlying HTTP stream.
        """
        try:
            response = await self._get_client().chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                stream=True,
            )
        except Exception as e:
            logger.error(f"OpenAI streaming failed: {e}")
            raise LLMUnavailableError("Failed to stream message with AI") from e

        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except Exception as e:
            logger.error(f"OpenAI stream interrupted: {e}")
            raise LLMUnavailableError("AI stream interrupted") from e
        finally:
            close = getattr(response, "close", None)
            if close is not None:
                await close()
