"""
Calvin — Calendar Assistant

One chat turn, two delivery modes:

    process_message() → ChatResponse     (single JSON reply)
    stream_message()  → StreamChunk ...  (context → content* → done)

Both assemble live calendar context, build the prompt and hand it to the
language model. The streaming path never raises to its consumer: any
failure after the stream has started becomes one final apology chunk.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from datetime import datetime, timezone
from typing import AsyncIterator, Sequence

from calvin.context import ContextAssembler, ContextPreferences
from calvin.integrations.calendar import GoogleCalendarClient
from calvin.llm import ChatModel
from calvin.models import (
    ChatCalendarContext,
    ChatMessage,
    ChatResponse,
    ChunkType,
    StreamChunk,
)
from calvin.suggestions import suggest_actions

logger = logging.getLogger("calvin.assistant")

CONTEXT_CHUNK_TEXT = "Fetching calendar context..."
EMPTY_REPLY_TEXT = "I apologize, but I encountered an error processing your message."
STREAM_ERROR_TEXT = (
    "I apologize, but I encountered an error processing your message. Please try again."
)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_message_id() -> str:
    """``msg_<epoch ms>_<9 base-36 chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"msg_{_now_ms()}_{suffix}"


class CalendarAssistant:
    """Answers chat messages grounded in the user's live calendar.

    Usage:
        assistant = CalendarAssistant(OpenAIChatModel(api_key=...))
        response = await assistant.process_message("What's on today?", client)
    """

    def __init__(self, llm: ChatModel, assembler: ContextAssembler | None = None) -> None:
        self.llm = llm
        self.assembler = assembler or ContextAssembler()

    async def _prepare(
        self,
        message: str,
        client: GoogleCalendarClient | None,
        history: Sequence[ChatMessage],
        include_calendar_context: bool,
        preferences: ContextPreferences | None,
        timestamp: str | None,
        now: datetime,
    ) -> tuple[ChatCalendarContext | None, list[dict[str, str]]]:
        context = None
        if include_calendar_context and client is not None:
            context = await self.assembler.build_context(client, now=now, preferences=preferences)

        tz = client.tz if client is not None else timezone.utc
        system_prompt = self.assembler.build_system_prompt(
            context, now=now, tz=tz, timestamp=timestamp,
        )
        return context, self.assembler.build_prompt(system_prompt, history, message)

    async def process_message(
        self,
        message: str,
        client: GoogleCalendarClient | None = None,
        history: Sequence[ChatMessage] = (),
        include_calendar_context: bool = True,
        preferences: ContextPreferences | None = None,
        timestamp: str | None = None,
        now: datetime | None = None,
    ) -> ChatResponse:
        """Produce a complete reply.

        Raises LLMUnavailableError when the model cannot be reached; calendar
        failures only degrade the context.
        """
        started = time.monotonic()
        now = now or datetime.now(timezone.utc)

        context, messages = await self._prepare(
            message, client, history, include_calendar_context, preferences, timestamp, now,
        )
        reply = await self.llm.complete(messages)
        if not reply:
            logger.warning("Model returned an empty completion")
            reply = EMPTY_REPLY_TEXT

        processing_time = int((time.monotonic() - started) * 1000)
        logger.info(f"Chat reply in {processing_time}ms ({len(history)} history turns)")

        return ChatResponse(
            id=new_message_id(),
            message=reply,
            timestamp=datetime.now(timezone.utc),
            processing_time=processing_time,
            model=self.llm.model,
            calendar_context=context,
            suggested_actions=suggest_actions(message),
            context_length=len(history),
        )

    async def stream_message(
        self,
        message: str,
        client: GoogleCalendarClient | None = None,
        history: Sequence[ChatMessage] = (),
        include_calendar_context: bool = True,
        preferences: ContextPreferences | None = None,
        timestamp: str | None = None,
        now: datetime | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Yield a context chunk (when calendar context is requested), the
        model's content fragments, then a done chunk.

        Every chunk of a successful stream shares one message id. On failure
        a single apology chunk with id ``error_<ms>`` ends the stream and no
        done chunk follows.
        """
        started = time.monotonic()
        now = now or datetime.now(timezone.utc)
        message_id = new_message_id()

        try:
            if include_calendar_context:
                yield StreamChunk(id=message_id, type=ChunkType.CONTEXT, content=CONTEXT_CHUNK_TEXT)

            _, messages = await self._prepare(
                message, client, history, include_calendar_context, preferences, timestamp, now,
            )

            fragments = self.llm.stream(messages)
            try:
                async for fragment in fragments:
                    yield StreamChunk(id=message_id, type=ChunkType.CONTENT, content=fragment)
            finally:
                aclose = getattr(fragments, "aclose", None)
                if aclose is not None:
                    await aclose()

            processing_time = int((time.monotonic() - started) * 1000)
            logger.info(f"Streamed reply {message_id} in {processing_time}ms")
            yield StreamChunk(
                id=message_id,
                type=ChunkType.DONE,
                metadata={"processingTime": processing_time, "model": self.llm.model},
            )
        except Exception as e:
            logger.error(f"Streaming reply failed: {e}")
            yield StreamChunk(id=f"error_{_now_ms()}", type=ChunkType.CONTENT, content=STREAM_ERROR_TEXT)
