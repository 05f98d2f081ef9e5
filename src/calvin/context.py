"""
Calvin — Conversation Context Assembler

Builds the calendar grounding for one assistant turn:

    1. build_context()       — concurrent fetches (yesterday, today, upcoming,
                                weekly analytics, today's availability)
    2. build_summary()       — deterministic text rendering of that context
    3. build_system_prompt() — persona instructions + current time + summary
    4. build_prompt()        — system message + recent history + new message

Nothing here is cached: every turn re-fetches live calendar data. A failed
fetch never fails the turn; the assistant answers without calendar
grounding instead.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Sequence

from calvin.availability import DEFAULT_WORKING_HOURS, generate_analytics, get_availability
from calvin.integrations.calendar import GoogleCalendarClient, event_start
from calvin.models import (
    CalendarEvent,
    ChatCalendarContext,
    ChatMessage,
    MessageRole,
)
from calvin.timewindow import WorkingHours, localize, tomorrow_window, yesterday_window

logger = logging.getLogger("calvin.context")

DEFAULT_UPCOMING_COUNT = 5
DEFAULT_HISTORY_WINDOW = 10
MAX_LISTED_FREE_SLOTS = 3

BASE_INSTRUCTIONS = """You are Calvin, an intelligent calendar assistant powered by real-time Google Calendar data. You help users understand their schedule, manage their time, and make informed decisions about their calendar.

Your capabilities include:
- Analyzing calendar patterns and meeting load
- Providing availability insights and scheduling recommendations
- Offering time management advice based on actual calendar data
- Answering questions about upcoming events and schedules
- Identifying meeting patterns and productivity insights

Respond in markdown, separating paragraphs with double newlines.

When presenting an individual calendar event, use this special block so the client renders it as an event card:
```event
{
  "summary": "Event Title",
  "start": "Start Time (e.g., 2:00 PM)",
  "end": "End Time (e.g., 3:00 PM)"
}
```

If you are asked to draft one or more emails:
- Draft each email separately
- Keep them concise
- Recommend meeting times based on the user's availability

Always give helpful, concise, and actionable answers grounded in the real-time calendar data provided."""

NO_CALENDAR_NOTE = "Note: Calendar data is not available for this request."


@dataclass
class ContextPreferences:
    """Which parts of the calendar context to gather for a turn."""

    include_today: bool = True
    include_upcoming: bool = True
    include_analytics: bool = True
    include_availability: bool = True
    max_events: int | None = None


# ═══════════════════════════════════════════════════════════════════════════
# Formatting helpers
# ═══════════════════════════════════════════════════════════════════════════


def format_clock(moment: datetime, tz: tzinfo) -> str:
    """``2:05 PM`` style wall-clock time in ``tz``."""
    local = localize(moment, tz)
    hour = local.hour % 12 or 12
    return f"{hour}:{local.minute:02d} {'AM' if local.hour < 12 else 'PM'}"


def format_time_range(event: CalendarEvent, tz: tzinfo) -> str:
    start, end = event.start.date_time, event.end.date_time
    if start is not None and end is not None:
        return f"{format_clock(start, tz)} - {format_clock(end, tz)}"
    if start is not None:
        return format_clock(start, tz)
    return "All day"


def _status(event: CalendarEvent, now: datetime) -> str:
    """[DONE] once the event's end (or start, if it has no end time) is past."""
    reference = event.end.date_time or event.start.date_time
    return "[DONE]" if reference is not None and reference < now else "[PENDING]"


def _location(event: CalendarEvent) -> str:
    return f" ({event.location})" if event.location else ""


def _short_date(event: CalendarEvent, tz: tzinfo) -> str:
    if event.start.date_time is not None:
        local = localize(event.start.date_time, tz)
        return f"{local:%b} {local.day}"
    if event.start.date is not None:
        return f"{event.start.date:%b} {event.start.date.day}"
    return "TBD"


# ═══════════════════════════════════════════════════════════════════════════
# Assembler
# ═══════════════════════════════════════════════════════════════════════════


class ContextAssembler:
    """Builds calendar context and prompts. Stateless between calls."""

    def __init__(
        self,
        working_hours: WorkingHours = DEFAULT_WORKING_HOURS,
        upcoming_count: int = DEFAULT_UPCOMING_COUNT,
        history_window: int = DEFAULT_HISTORY_WINDOW,
    ) -> None:
        self.working_hours = working_hours
        self.upcoming_count = upcoming_count
        self.history_window = history_window

    # ── 1. Context ──

    async def build_context(
        self,
        client: GoogleCalendarClient,
        now: datetime | None = None,
        preferences: ContextPreferences | None = None,
    ) -> ChatCalendarContext:
        """Fetch everything the summary needs, concurrently.

        Never raises: if any fetch fails the minimal context
        ``{eventsToday: [], upcomingEvents: [], lastUpdated: now}`` is
        returned. Fetches already in flight are left to finish.
        """
        now = now or datetime.now(timezone.utc)
        prefs = preferences or ContextPreferences()
        tz = client.tz

        async def _skipped() -> Any:
            return None

        yesterday = yesterday_window(now, tz)
        upcoming_count = self.upcoming_count
        if prefs.max_events is not None:
            upcoming_count = min(upcoming_count, prefs.max_events)

        try:
            events_yesterday, events_today, upcoming, analytics, availability = await asyncio.gather(
                client.get_events_in_range(yesterday.start, yesterday.end)
                if prefs.include_today else _skipped(),
                client.get_today_events(now=now) if prefs.include_today else _skipped(),
                client.get_upcoming_events(upcoming_count, now=now)
                if prefs.include_upcoming and upcoming_count > 0 else _skipped(),
                generate_analytics(client, working_hours=self.working_hours, now=now)
                if prefs.include_analytics else _skipped(),
                get_availability(client, localize(now, tz).date(), self.working_hours)
                if prefs.include_availability else _skipped(),
            )
        except Exception as e:
            logger.warning(f"Calendar context unavailable, answering without it: {e}")
            return ChatCalendarContext(events_today=[], upcoming_events=[], last_updated=now)

        if prefs.max_events is not None:
            events_yesterday = events_yesterday[:prefs.max_events] if events_yesterday else events_yesterday
            events_today = events_today[:prefs.max_events] if events_today else events_today

        return ChatCalendarContext(
            events_yesterday=events_yesterday,
            events_today=events_today or [],
            upcoming_events=upcoming or [],
            analytics=analytics,
            availability=availability,
            last_updated=now,
        )

    # ── 2. Summary ──

    def build_summary(
        self,
        context: ChatCalendarContext,
        now: datetime | None = None,
        tz: tzinfo = timezone.utc,
    ) -> str:
        """Render the context as prompt text. Empty sections are omitted."""
        now = now or datetime.now(timezone.utc)
        tomorrow = tomorrow_window(now, tz)
        summary = ""

        if context.events_yesterday:
            summary += f"YESTERDAY'S SCHEDULE ({len(context.events_yesterday)} events):\n"
            for event in context.events_yesterday:
                summary += f"- [DONE] {format_time_range(event, tz)}: {event.summary}{_location(event)}\n"
            summary += "\n"

        if context.events_today:
            summary += f"TODAY'S SCHEDULE ({len(context.events_today)} events):\n"
            for event in context.events_today:
                summary += (
                    f"- {_status(event, now)} {format_time_range(event, tz)}: "
                    f"{event.summary}{_location(event)}\n"
                )
            summary += "\n"

        tomorrow_events = [
            ev for ev in context.upcoming_events
            if (start := event_start(ev, tz)) is not None and tomorrow.contains(start)
        ]
        if tomorrow_events:
            summary += f"TOMORROW'S SCHEDULE ({len(tomorrow_events)} events):\n"
            for event in tomorrow_events:
                summary += f"- [PENDING] {format_time_range(event, tz)}: {event.summary}{_location(event)}\n"
            summary += "\n"

        later_events = [
            ev for ev in context.upcoming_events
            if (start := event_start(ev, tz)) is not None and start >= tomorrow.end
        ]
        if later_events:
            summary += "UPCOMING EVENTS (after tomorrow):\n"
            for event in later_events:
                summary += (
                    f"- {_status(event, now)} {_short_date(event, tz)} "
                    f"{format_time_range(event, tz)}: {event.summary}\n"
                )
            summary += "\n"

        if context.analytics:
            analytics = context.analytics
            summary += "WEEKLY SUMMARY:\n"
            summary += f"- Total meetings this week: {analytics.total_events}\n"
            summary += f"- Total meeting hours: {analytics.total_meeting_hours:.1f}h\n"
            summary += (
                f"- Today: {analytics.busy_hours_today:.1f}h busy, "
                f"{analytics.free_hours_today:.1f}h free\n\n"
            )

        if context.availability:
            availability = context.availability
            summary += "TODAY'S AVAILABILITY:\n"
            summary += f"- Free time: {availability.total_free_time / 60:.1f}h\n"
            summary += f"- Busy time: {availability.total_busy_time / 60:.1f}h\n"
            next_slots = [s for s in availability.free_slots if s.end > now][:MAX_LISTED_FREE_SLOTS]
            if next_slots:
                summary += "- Next free slots: " + ", ".join(
                    f"{format_clock(s.start, tz)}-{format_clock(s.end, tz)}" for s in next_slots
                ) + "\n"

        return summary

    # ── 3. System prompt ──

    def build_system_prompt(
        self,
        context: ChatCalendarContext | None,
        now: datetime | None = None,
        tz: tzinfo = timezone.utc,
        timestamp: str | None = None,
    ) -> str:
        """Persona instructions plus the live calendar summary, when there is one.

        ``timestamp`` is the client's own notion of "now"; without it the
        server clock is rendered in the viewer's zone.
        """
        now = now or datetime.now(timezone.utc)
        if not timestamp:
            local = localize(now, tz)
            timestamp = f"{local:%A, %B} {local.day}, {local.year} {format_clock(now, tz)}"

        prompt = f"The current time is {timestamp}.\n\n{BASE_INSTRUCTIONS}"

        if context is None or context.is_minimal:
            return prompt + "\n\n" + NO_CALENDAR_NOTE

        summary = self.build_summary(context, now=now, tz=tz)
        return (
            f"{prompt}\n\n"
            f"CURRENT CALENDAR CONTEXT ({context.last_updated.isoformat()}):\n"
            f"{summary}\n"
            "Use this real-time data to provide accurate, personalized responses "
            "about the user's schedule and availability."
        )

    # ── 4. Prompt ──

    def build_prompt(
        self,
        system_prompt: str,
        history: Sequence[ChatMessage],
        message: str,
    ) -> list[dict[str, str]]:
        """System message, the last ``history_window`` non-system turns, then ``message``.

        System-role history entries are dropped; the assembler owns the
        system message.
        """
        messages = [{"role": MessageRole.SYSTEM.value, "content": system_prompt}]
        turns = [m for m in history if m.role != MessageRole.SYSTEM]
        if self.history_window > 0:
            for turn in turns[-self.history_window:]:
                messages.append({"role": turn.role.value, "content": turn.content})
        messages.append({"role": MessageRole.USER.value, "content": message})
        return messages
