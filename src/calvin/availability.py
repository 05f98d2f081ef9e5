"""
Calvin — Availability & Analytics Engine

Turns canonical calendar events into:
    - a free/busy partition of one working-hours day (compute_availability)
    - meeting-load analytics over a window (compute_analytics)

Both are pure functions of their inputs. The async helpers at the bottom
compose them with GoogleCalendarClient queries.

Busy coverage is merged (overlapping or touching events become one slot)
and clipped to the working window, so free + busy always equals the
window length exactly.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone, tzinfo

from calvin.integrations.calendar import GoogleCalendarClient
from calvin.models import (
    AttendeeStat,
    AvailabilitySlot,
    CalendarAnalytics,
    CalendarAvailability,
    CalendarEvent,
    MeetingTypes,
)
from calvin.timewindow import WorkingHours, localize, week_window

logger = logging.getLogger("calvin.availability")

DEFAULT_WORKING_HOURS = WorkingHours()
TOP_ATTENDEES_LIMIT = 10
ANALYTICS_UPCOMING_COUNT = 5


# ═══════════════════════════════════════════════════════════════════════════
# Free/busy partition
# ═══════════════════════════════════════════════════════════════════════════


def compute_availability(
    day: date,
    events: list[CalendarEvent],
    working_hours: WorkingHours = DEFAULT_WORKING_HOURS,
    tz: tzinfo = timezone.utc,
) -> CalendarAvailability:
    """Partition the working-hours window of ``day`` into free and busy slots.

    All-day events are ignored. Timed events are clipped to the window;
    events entirely outside it contribute nothing. A single sweep with a
    monotonic cursor emits the free gaps, and overlapping events extend
    the current busy slot instead of being counted twice.

    Zero-length events become zero-length busy slots (unless already
    covered) and never split a free slot.
    """
    # UTC bounds: slot durations must be elapsed time across DST shifts
    window = working_hours.window(day, tz).in_utc()

    intervals: list[tuple[datetime, datetime]] = []
    instants: list[datetime] = []
    for event in events:
        if not event.is_timed:
            continue
        start = event.start.date_time.astimezone(timezone.utc)  # type: ignore[union-attr]
        end = event.end.date_time.astimezone(timezone.utc)  # type: ignore[union-attr]
        if end == start:
            if window.start <= start <= window.end:  # type: ignore[operator]
                instants.append(start)  # type: ignore[arg-type]
            continue
        clipped_start = max(start, window.start)  # type: ignore[type-var]
        clipped_end = min(end, window.end)  # type: ignore[type-var]
        if clipped_end > clipped_start:
            intervals.append((clipped_start, clipped_end))

    intervals.sort()

    free_slots: list[AvailabilitySlot] = []
    busy_slots: list[AvailabilitySlot] = []
    cursor = window.start

    for start, end in intervals:
        if cursor < start:
            free_slots.append(AvailabilitySlot(cursor, min(start, window.end)))
        if busy_slots and start <= busy_slots[-1].end:
            busy_slots[-1].end = max(busy_slots[-1].end, end)
        else:
            busy_slots.append(AvailabilitySlot(start, end))
        cursor = max(cursor, end)

    if cursor < window.end:
        free_slots.append(AvailabilitySlot(cursor, window.end))

    for instant in instants:
        if not any(slot.start <= instant <= slot.end for slot in busy_slots):
            busy_slots.append(AvailabilitySlot(instant, instant))
    busy_slots.sort(key=lambda slot: (slot.start, slot.end))

    return CalendarAvailability(
        date=day,
        free_slots=free_slots,
        busy_slots=busy_slots,
        working_hours=working_hours,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Analytics
# ═══════════════════════════════════════════════════════════════════════════


def compute_analytics(
    events: list[CalendarEvent],
    todays_busy_minutes: float,
    working_hours: WorkingHours = DEFAULT_WORKING_HOURS,
    upcoming_events: list[CalendarEvent] | None = None,
    tz: tzinfo | None = None,
) -> CalendarAnalytics:
    """Aggregate meeting load over ``events``.

    Durations and per-day buckets only count timed events; all-day events
    still count toward ``total_events``, attendees and meeting types.
    Days are bucketed in ``tz`` when given, otherwise in the offset the
    start instant was stored with.
    """
    total_minutes = 0.0
    meetings_by_day: dict[str, int] = {}
    attendee_counts: dict[tuple[str, str], int] = {}
    meeting_types = MeetingTypes()

    for event in events:
        if event.is_timed:
            total_minutes += event.duration_minutes or 0.0
            start = event.start.date_time
            if tz is not None:
                start = localize(start, tz)  # type: ignore[arg-type]
            day_key = start.date().isoformat()  # type: ignore[union-attr]
            meetings_by_day[day_key] = meetings_by_day.get(day_key, 0) + 1

        # email + display name, so one display name shared by two addresses stays two people
        for attendee in event.attendees:
            key = (attendee.email, attendee.display_name or attendee.email)
            attendee_counts[key] = attendee_counts.get(key, 0) + 1

        if event.is_virtual:
            meeting_types.virtual += 1
        elif event.location:
            meeting_types.in_person += 1
        else:
            meeting_types.unknown += 1

    # sorted() is stable: equal counts keep first-seen order
    ranked = sorted(attendee_counts.items(), key=lambda item: item[1], reverse=True)
    top_attendees = [
        AttendeeStat(
            email=email,
            display_name=name if name != email else None,
            meeting_count=count,
        )
        for (email, name), count in ranked[:TOP_ATTENDEES_LIMIT]
    ]

    total_events = len(events)
    busy_hours_today = todays_busy_minutes / 60

    return CalendarAnalytics(
        total_events=total_events,
        total_meeting_hours=total_minutes / 60,
        average_meeting_length=total_minutes / total_events if total_events else 0.0,
        busy_hours_today=busy_hours_today,
        free_hours_today=max(0.0, working_hours.hours - busy_hours_today),
        upcoming_events=list(upcoming_events or []),
        meetings_by_day=meetings_by_day,
        top_attendees=top_attendees,
        meeting_types=meeting_types,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Gateway compositions
# ═══════════════════════════════════════════════════════════════════════════


async def get_availability(
    client: GoogleCalendarClient,
    day: date,
    working_hours: WorkingHours = DEFAULT_WORKING_HOURS,
) -> CalendarAvailability:
    """Fetch the working-hours window of ``day`` and partition it."""
    window = working_hours.window(day, client.tz)
    events = await client.get_events_in_range(window.start, window.end)
    return compute_availability(day, events, working_hours, client.tz)


async def generate_analytics(
    client: GoogleCalendarClient,
    start: datetime | None = None,
    end: datetime | None = None,
    working_hours: WorkingHours = DEFAULT_WORKING_HOURS,
    now: datetime | None = None,
    upcoming_count: int = ANALYTICS_UPCOMING_COUNT,
) -> CalendarAnalytics:
    """Analytics for ``[start, end)``, defaulting to the current week.

    The window's events, today's working-hours availability and the next
    few upcoming events are fetched concurrently.
    """
    now = now or datetime.now(timezone.utc)
    if start is None or end is None:
        week = week_window(now, client.tz)
        start, end = week.start, week.end

    today = localize(now, client.tz).date()
    events, todays_availability, upcoming = await asyncio.gather(
        client.get_events_in_range(start, end),
        get_availability(client, today, working_hours),
        client.get_upcoming_events(upcoming_count, now=now),
    )
    logger.debug(f"Analytics over {len(events)} events from {start.isoformat()} to {end.isoformat()}")

    return compute_analytics(
        events,
        todays_availability.total_busy_time,
        working_hours=working_hours,
        upcoming_events=upcoming,
        tz=client.tz,
    )
