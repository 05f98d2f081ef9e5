"""Chat routes for Calvin API."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from calvin.interfaces.api_models import ChatRequest
from calvin.llm import LLMUnavailableError

logger = logging.getLogger("calvin.api")


def register_chat_routes(app, server, verify_google_token) -> None:  # noqa: ANN001
    """Register single-reply and streaming chat routes."""

    # ── POST /api/chat/message ──

    @app.post("/api/chat/message")
    async def chat_message(
        body: ChatRequest, request: Request, token: str = Depends(verify_google_token),
    ) -> dict[str, Any]:
        server.admit(server.chat_limiter, request)
        tz = server.resolve_timezone(body.timeZone)
        client = server.calendar_client(token, tz)

        try:
            response = await server.assistant.process_message(
                body.message,
                client,
                history=body.history(),
                include_calendar_context=body.includeCalendarContext,
                preferences=body.preferences(),
                timestamp=body.timestamp,
            )
        except LLMUnavailableError as e:
            logger.error(f"Chat API model error: {e}")
            raise HTTPException(status_code=503, detail="AI service temporarily unavailable")
        except Exception as e:
            logger.error(f"Chat API error: {e}")
            raise HTTPException(status_code=500, detail="Failed to process chat message")

        return response.to_dict()

    # ── POST /api/chat/stream ──

    @app.post("/api/chat/stream")
    async def chat_stream(
        body: ChatRequest, request: Request, token: str = Depends(verify_google_token),
    ) -> StreamingResponse:
        """Streaming chat via Server-Sent Events.

        Emits a context chunk, one content chunk per model fragment and a
        done chunk, each framed as ``data: <json>\\n\\n``. Failures after the
        response has started arrive as a final apology chunk.
        """
        server.admit(server.chat_limiter, request)
        tz = server.resolve_timezone(body.timeZone)
        client = server.calendar_client(token, tz)

        async def event_generator() -> Any:
            chunks = server.assistant.stream_message(
                body.message,
                client,
                history=body.history(),
                include_calendar_context=body.includeCalendarContext,
                preferences=body.preferences(),
                timestamp=body.timestamp,
            )
            try:
                async for chunk in chunks:
                    yield chunk.to_sse()
            finally:
                await chunks.aclose()

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )
