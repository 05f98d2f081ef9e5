"""
Tests for the conversation context assembler.

Tests cover:
    - build_context: concurrent fetches, preferences, degraded fallback
    - build_summary: section rendering, omission of empty sections, zones
    - build_system_prompt: timestamp, calendar block vs. unavailable note
    - build_prompt: history window and system-turn filtering
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest

from calvin.availability import compute_availability
from calvin.context import (
    NO_CALENDAR_NOTE,
    ContextAssembler,
    ContextPreferences,
    format_clock,
    format_time_range,
)
from calvin.integrations.calendar import CalendarFetchError
from calvin.models import CalendarAnalytics, ChatCalendarContext, ChatMessage, MessageRole

DAY = date(2026, 3, 18)
NOW = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def assembler() -> ContextAssembler:
    return ContextAssembler()


@pytest.fixture
def populated_service(calendar_service, make_item):
    calendar_service.items.extend([
        make_item("retro", at(9, day=date(2026, 3, 17)), at(10, day=date(2026, 3, 17)), summary="Retro"),
        make_item("standup", at(9), at(9, 30), summary="Standup"),
        make_item("review", at(14), at(15), summary="Design review", location="Room 4"),
        make_item("one-on-one", at(10, day=date(2026, 3, 19)), at(11, day=date(2026, 3, 19)), summary="1:1 with Ana"),
    ])
    return calendar_service


@pytest.fixture
def full_context(make_event) -> ChatCalendarContext:
    today = [
        make_event("standup", at(9), at(9, 30), summary="Standup"),
        make_event("review", at(14), at(15), summary="Design review", location="Room 4"),
    ]
    return ChatCalendarContext(
        events_yesterday=[
            make_event("retro", at(9, day=date(2026, 3, 17)), at(10, day=date(2026, 3, 17)),
                       summary="Retro", location="Room 1"),
        ],
        events_today=today,
        upcoming_events=[
            make_event("one-on-one", at(10, day=date(2026, 3, 19)), at(11, day=date(2026, 3, 19)),
                       summary="1:1 with Ana"),
            make_event("planning", at(15, day=date(2026, 3, 20)), at(16, day=date(2026, 3, 20)),
                       summary="Planning"),
            make_event("offsite", date(2026, 3, 21), summary="Offsite"),
        ],
        analytics=CalendarAnalytics(
            total_events=7,
            total_meeting_hours=5.5,
            average_meeting_length=47.1,
            busy_hours_today=1.5,
            free_hours_today=6.5,
        ),
        availability=compute_availability(DAY, today),
        last_updated=NOW,
    )


def history_of(count: int) -> list[ChatMessage]:
    roles = [MessageRole.USER, MessageRole.ASSISTANT]
    return [
        ChatMessage(id=f"m{i}", role=roles[i % 2], content=f"turn {i}")
        for i in range(count)
    ]


# ═══════════════════════════════════════════════════════════════════════════
# Formatting
# ═══════════════════════════════════════════════════════════════════════════


class TestFormatting:
    @pytest.mark.parametrize("moment,expected", [
        (at(0), "12:00 AM"),
        (at(9, 5), "9:05 AM"),
        (at(12), "12:00 PM"),
        (at(13, 30), "1:30 PM"),
        (at(23, 59), "11:59 PM"),
    ])
    def test_format_clock(self, moment, expected):
        assert format_clock(moment, timezone.utc) == expected

    def test_format_clock_in_viewer_zone(self):
        assert format_clock(at(14), ZoneInfo("America/New_York")) == "10:00 AM"

    def test_time_ranges(self, make_event):
        assert format_time_range(make_event("a", at(14), at(15)), timezone.utc) == "2:00 PM - 3:00 PM"
        assert format_time_range(make_event("b", DAY), timezone.utc) == "All day"


# ═══════════════════════════════════════════════════════════════════════════
# build_context
# ═══════════════════════════════════════════════════════════════════════════


class TestBuildContext:
    @pytest.mark.asyncio
    async def test_gathers_everything(self, assembler, calendar_client, populated_service):
        context = await assembler.build_context(calendar_client, now=NOW)
        assert [e.id for e in context.events_yesterday] == ["retro"]
        assert [e.id for e in context.events_today] == ["standup", "review"]
        assert [e.id for e in context.upcoming_events] == ["review", "one-on-one"]
        assert context.analytics.total_events == 4
        assert context.availability.total_busy_time == 90
        assert context.last_updated == NOW
        assert not context.is_minimal

    @pytest.mark.asyncio
    async def test_preferences_skip_fetches(self, assembler, calendar_client, populated_service):
        prefs = ContextPreferences(include_analytics=False, include_availability=False)
        context = await assembler.build_context(calendar_client, now=NOW, preferences=prefs)
        assert context.analytics is None
        assert context.availability is None
        # yesterday + today + upcoming
        assert populated_service.events.return_value.list.call_count == 3

    @pytest.mark.asyncio
    async def test_exclude_today(self, assembler, calendar_client, populated_service):
        prefs = ContextPreferences(include_today=False, include_analytics=False, include_availability=False)
        context = await assembler.build_context(calendar_client, now=NOW, preferences=prefs)
        assert context.events_yesterday is None
        assert context.events_today == []
        assert len(context.upcoming_events) == 2

    @pytest.mark.asyncio
    async def test_max_events_caps_lists(self, assembler, calendar_client, populated_service):
        prefs = ContextPreferences(max_events=1)
        context = await assembler.build_context(calendar_client, now=NOW, preferences=prefs)
        assert len(context.events_today) == 1
        assert len(context.upcoming_events) == 1

    @pytest.mark.asyncio
    async def test_failure_returns_minimal_context(self, assembler, calendar_client, calendar_service, caplog):
        calendar_service.error = Exception("backend unavailable")
        with caplog.at_level(logging.WARNING, logger="calvin.context"):
            context = await assembler.build_context(calendar_client, now=NOW)
        assert context.events_today == []
        assert context.upcoming_events == []
        assert context.last_updated == NOW
        assert context.analytics is None
        assert context.is_minimal
        assert "Calendar context unavailable" in caplog.text

    @pytest.mark.asyncio
    async def test_single_failing_fetch_degrades_whole_context(
        self, assembler, calendar_client, populated_service,
    ):
        calendar_client.get_upcoming_events = AsyncMock(side_effect=CalendarFetchError("upcoming failed"))
        context = await assembler.build_context(calendar_client, now=NOW)
        assert context.is_minimal
        assert context.to_dict() == {
            "eventsToday": [],
            "upcomingEvents": [],
            "lastUpdated": "2026-03-18T12:00:00+00:00",
        }


# ═══════════════════════════════════════════════════════════════════════════
# build_summary
# ═══════════════════════════════════════════════════════════════════════════


class TestBuildSummary:
    def test_full_summary(self, assembler, full_context):
        summary = assembler.build_summary(full_context, now=NOW, tz=timezone.utc)
        assert summary == "\n".join([
            "YESTERDAY'S SCHEDULE (1 events):",
            "- [DONE] 9:00 AM - 10:00 AM: Retro (Room 1)",
            "",
            "TODAY'S SCHEDULE (2 events):",
            "- [DONE] 9:00 AM - 9:30 AM: Standup",
            "- [PENDING] 2:00 PM - 3:00 PM: Design review (Room 4)",
            "",
            "TOMORROW'S SCHEDULE (1 events):",
            "- [PENDING] 10:00 AM - 11:00 AM: 1:1 with Ana",
            "",
            "UPCOMING EVENTS (after tomorrow):",
            "- [PENDING] Mar 20 3:00 PM - 4:00 PM: Planning",
            "- [PENDING] Mar 21 All day: Offsite",
            "",
            "WEEKLY SUMMARY:",
            "- Total meetings this week: 7",
            "- Total meeting hours: 5.5h",
            "- Today: 1.5h busy, 6.5h free",
            "",
            "TODAY'S AVAILABILITY:",
            "- Free time: 6.5h",
            "- Busy time: 1.5h",
            "- Next free slots: 9:30 AM-2:00 PM, 3:00 PM-5:00 PM",
        ]) + "\n"

    def test_empty_sections_are_omitted(self, assembler, make_event):
        context = ChatCalendarContext(
            events_today=[make_event("standup", at(9), at(9, 30), summary="Standup")],
            upcoming_events=[],
            last_updated=NOW,
        )
        summary = assembler.build_summary(context, now=NOW, tz=timezone.utc)
        assert summary.startswith("TODAY'S SCHEDULE (1 events):")
        for heading in ("YESTERDAY", "TOMORROW", "UPCOMING EVENTS", "WEEKLY SUMMARY", "AVAILABILITY"):
            assert heading not in summary

    def test_in_progress_event_is_pending(self, assembler, make_event):
        context = ChatCalendarContext(
            events_today=[make_event("call", at(11, 30), at(12, 30), summary="Call")],
            upcoming_events=[],
            last_updated=NOW,
        )
        assert "- [PENDING] 11:30 AM - 12:30 PM: Call" in assembler.build_summary(context, now=NOW)

    def test_past_free_slots_not_listed(self, assembler, make_event):
        availability = compute_availability(DAY, [make_event("a", at(10), at(11))])
        context = ChatCalendarContext(
            events_today=[], upcoming_events=[], availability=availability, last_updated=NOW,
        )
        late = at(16)
        summary = assembler.build_summary(context, now=late)
        assert "- Next free slots: 11:00 AM-5:00 PM" in summary
        assert "9:00 AM-10:00 AM" not in summary

    def test_free_slots_capped_at_three(self, assembler, make_event):
        events = [make_event(str(h), at(h), at(h, 30)) for h in (10, 11, 12, 13, 14)]
        availability = compute_availability(DAY, events)
        context = ChatCalendarContext(
            events_today=[], upcoming_events=[], availability=availability, last_updated=NOW,
        )
        line = next(
            ln for ln in assembler.build_summary(context, now=at(8)).splitlines()
            if ln.startswith("- Next free slots")
        )
        assert line.count(", ") == 2

    def test_rendered_in_viewer_zone(self, assembler, make_event):
        context = ChatCalendarContext(
            events_today=[make_event("a", at(14), at(15), summary="Sync")],
            upcoming_events=[],
            last_updated=NOW,
        )
        summary = assembler.build_summary(context, now=NOW, tz=ZoneInfo("America/New_York"))
        assert "10:00 AM - 11:00 AM: Sync" in summary


# ═══════════════════════════════════════════════════════════════════════════
# build_system_prompt
# ═══════════════════════════════════════════════════════════════════════════


class TestBuildSystemPrompt:
    def test_client_timestamp(self, assembler):
        prompt = assembler.build_system_prompt(None, now=NOW, timestamp="2026-03-18T13:00:00+01:00")
        assert prompt.startswith("The current time is 2026-03-18T13:00:00+01:00.")

    def test_server_time_when_no_timestamp(self, assembler):
        prompt = assembler.build_system_prompt(None, now=NOW)
        assert prompt.startswith("The current time is Wednesday, March 18, 2026 12:00 PM.")

    def test_persona_and_event_block(self, assembler):
        prompt = assembler.build_system_prompt(None, now=NOW)
        assert "You are Calvin" in prompt
        assert "```event" in prompt
        assert "double newlines" in prompt

    def test_no_context_note(self, assembler):
        prompt = assembler.build_system_prompt(None, now=NOW)
        assert prompt.endswith(NO_CALENDAR_NOTE)
        assert "CURRENT CALENDAR CONTEXT" not in prompt

    def test_minimal_context_gets_note(self, assembler):
        minimal = ChatCalendarContext(events_today=[], upcoming_events=[], last_updated=NOW)
        assert assembler.build_system_prompt(minimal, now=NOW).endswith(NO_CALENDAR_NOTE)

    def test_calendar_block(self, assembler, full_context):
        prompt = assembler.build_system_prompt(full_context, now=NOW)
        summary = assembler.build_summary(full_context, now=NOW)
        assert f"CURRENT CALENDAR CONTEXT (2026-03-18T12:00:00+00:00):\n{summary}" in prompt
        assert prompt.endswith("about the user's schedule and availability.")
        assert NO_CALENDAR_NOTE not in prompt


# ═══════════════════════════════════════════════════════════════════════════
# build_prompt
# ═══════════════════════════════════════════════════════════════════════════


class TestBuildPrompt:
    def test_last_ten_turns_plus_new_message(self, assembler):
        messages = assembler.build_prompt("SYSTEM", history_of(15), "What's next?")
        assert len(messages) == 12
        assert messages[0] == {"role": "system", "content": "SYSTEM"}
        assert [m["content"] for m in messages[1:11]] == [f"turn {i}" for i in range(5, 15)]
        assert messages[-1] == {"role": "user", "content": "What's next?"}

    def test_short_history_kept_whole(self, assembler):
        messages = assembler.build_prompt("SYSTEM", history_of(3), "hi")
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user", "user"]

    def test_system_turns_dropped_before_windowing(self, assembler):
        history = history_of(10) + [ChatMessage(id="s", role=MessageRole.SYSTEM, content="ignore me")]
        messages = assembler.build_prompt("SYSTEM", history, "hi")
        assert len(messages) == 12
        assert all(m["content"] != "ignore me" for m in messages)
        assert messages[1]["content"] == "turn 0"

    def test_zero_window(self):
        messages = ContextAssembler(history_window=0).build_prompt("SYSTEM", history_of(5), "hi")
        assert len(messages) == 2
