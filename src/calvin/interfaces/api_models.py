"""Pydantic models for the Calvin REST API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from calvin.context import ContextPreferences
from calvin.models import ChatMessage, MessageRole

# ═══════════════════════════════════════════════════════════════════════════
# Core models
# ═══════════════════════════════════════════════════════════════════════════


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str


class ErrorResponse(BaseModel):
    error: str
    details: Any = None


# ═══════════════════════════════════════════════════════════════════════════
# Chat models
# ═══════════════════════════════════════════════════════════════════════════


class HistoryMessage(BaseModel):
    id: str
    role: MessageRole
    content: str
    timestamp: str = ""
    metadata: dict[str, Any] | None = None

    def to_chat_message(self) -> ChatMessage:
        return ChatMessage(
            id=self.id,
            role=self.role,
            content=self.content,
            timestamp=self.timestamp,
            metadata=self.metadata,
        )


class ContextPreferencesModel(BaseModel):
    includeToday: bool = True
    includeUpcoming: bool = True
    includeAnalytics: bool = True
    includeAvailability: bool = True
    maxEvents: int | None = Field(default=None, ge=1, le=50)

    def to_preferences(self) -> ContextPreferences:
        return ContextPreferences(
            include_today=self.includeToday,
            include_upcoming=self.includeUpcoming,
            include_analytics=self.includeAnalytics,
            include_availability=self.includeAvailability,
            max_events=self.maxEvents,
        )


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=2000)
    conversationId: str | None = None
    conversationHistory: list[HistoryMessage] = []
    includeCalendarContext: bool = True
    contextPreferences: ContextPreferencesModel | None = None
    timestamp: str | None = None
    timeZone: str | None = None

    def history(self) -> list[ChatMessage]:
        return [m.to_chat_message() for m in self.conversationHistory]

    def preferences(self) -> ContextPreferences | None:
        return self.contextPreferences.to_preferences() if self.contextPreferences else None
