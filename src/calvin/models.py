"""
Calvin — Data Models

Value objects that flow through Calvin: canonical calendar events, derived
availability and analytics, and the chat request/response records.

None of these are persisted server-side. ``to_dict()`` renders the camelCase
wire format the web client consumes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from calvin.timewindow import WorkingHours

# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ResponseStatus(str, Enum):
    """Attendee RSVP state, as reported by the provider."""
    NEEDS_ACTION = "needsAction"
    DECLINED = "declined"
    TENTATIVE = "tentative"
    ACCEPTED = "accepted"


class EventStatus(str, Enum):
    CONFIRMED = "confirmed"
    TENTATIVE = "tentative"
    CANCELLED = "cancelled"


class ActionType(str, Enum):
    """Category of a suggested follow-up action."""
    CALENDAR_QUERY = "calendar_query"
    SCHEDULING = "scheduling"
    ANALYTICS = "analytics"
    AVAILABILITY = "availability"


class ChunkType(str, Enum):
    """Server-sent event chunk kinds."""
    CONTEXT = "context"
    CONTENT = "content"
    DONE = "done"


def _prune(data: dict[str, Any]) -> dict[str, Any]:
    """Drop unset optional fields from a wire dict."""
    return {k: v for k, v in data.items() if v is not None}


def _elapsed_minutes(start: datetime, end: datetime) -> float:
    # astimezone: two datetimes sharing a ZoneInfo subtract as wall clock across DST
    return (end.astimezone(timezone.utc) - start.astimezone(timezone.utc)).total_seconds() / 60


# ═══════════════════════════════════════════════════════════════════════════
# Calendar events
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class EventTime:
    """One endpoint of an event: a precise instant or an all-day date."""

    date_time: datetime | None = None
    date: date | None = None
    time_zone: str | None = None

    @property
    def is_precise(self) -> bool:
        return self.date_time is not None

    @property
    def is_set(self) -> bool:
        return self.date_time is not None or self.date is not None

    def to_dict(self) -> dict[str, Any]:
        return _prune({
            "dateTime": self.date_time.isoformat() if self.date_time else None,
            "date": self.date.isoformat() if self.date else None,
            "timeZone": self.time_zone,
        })


@dataclass
class Person:
    email: str
    display_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _prune({"email": self.email, "displayName": self.display_name})


@dataclass
class Attendee:
    email: str
    display_name: str | None = None
    response_status: ResponseStatus | None = None

    def to_dict(self) -> dict[str, Any]:
        return _prune({
            "email": self.email,
            "displayName": self.display_name,
            "responseStatus": self.response_status.value if self.response_status else None,
        })


@dataclass
class CalendarEvent:
    """Canonical calendar entry, normalized from the provider's event shape."""

    id: str
    summary: str
    start: EventTime
    end: EventTime
    description: str | None = None
    location: str | None = None
    attendees: list[Attendee] = field(default_factory=list)
    creator: Person | None = None
    organizer: Person | None = None
    status: EventStatus | None = None
    recurring: bool = False
    recurring_event_id: str | None = None
    hangout_link: str | None = None
    conference_data: dict[str, Any] | None = None

    @property
    def is_timed(self) -> bool:
        """Both endpoints carry a precise instant."""
        return self.start.is_precise and self.end.is_precise

    @property
    def is_all_day(self) -> bool:
        return not self.start.is_precise and self.start.date is not None

    @property
    def is_virtual(self) -> bool:
        return bool(self.hangout_link) or self.conference_data is not None

    @property
    def duration_minutes(self) -> float | None:
        """Length in minutes, or None for all-day events."""
        if not self.is_timed:
            return None
        return _elapsed_minutes(self.start.date_time, self.end.date_time)  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, Any]:
        return _prune({
            "id": self.id,
            "summary": self.summary,
            "description": self.description,
            "start": self.start.to_dict(),
            "end": self.end.to_dict(),
            "location": self.location,
            "attendees": [a.to_dict() for a in self.attendees] if self.attendees else None,
            "creator": self.creator.to_dict() if self.creator else None,
            "organizer": self.organizer.to_dict() if self.organizer else None,
            "status": self.status.value if self.status else None,
            "recurring": self.recurring,
            "recurringEventId": self.recurring_event_id,
            "hangoutLink": self.hangout_link,
            "conferenceData": self.conference_data,
        })


# ═══════════════════════════════════════════════════════════════════════════
# Availability & analytics
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class AvailabilitySlot:
    start: datetime
    end: datetime

    @property
    def duration(self) -> float:
        """Exact length in minutes (fractional minutes allowed)."""
        return _elapsed_minutes(self.start, self.end)

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "duration": self.duration,
        }


@dataclass
class CalendarAvailability:
    date: date
    free_slots: list[AvailabilitySlot]
    busy_slots: list[AvailabilitySlot]
    working_hours: WorkingHours

    @property
    def total_free_time(self) -> float:
        return sum(slot.duration for slot in self.free_slots)

    @property
    def total_busy_time(self) -> float:
        return sum(slot.duration for slot in self.busy_slots)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "freeSlots": [s.to_dict() for s in self.free_slots],
            "busySlots": [s.to_dict() for s in self.busy_slots],
            "totalFreeTime": self.total_free_time,
            "totalBusyTime": self.total_busy_time,
            "workingHours": self.working_hours.to_dict(),
        }


@dataclass
class AttendeeStat:
    email: str
    display_name: str | None
    meeting_count: int

    def to_dict(self) -> dict[str, Any]:
        return _prune({
            "email": self.email,
            "displayName": self.display_name,
            "meetingCount": self.meeting_count,
        })


@dataclass
class MeetingTypes:
    in_person: int = 0
    virtual: int = 0
    unknown: int = 0

    @property
    def total(self) -> int:
        return self.in_person + self.virtual + self.unknown

    def to_dict(self) -> dict[str, int]:
        return {"inPerson": self.in_person, "virtual": self.virtual, "unknown": self.unknown}


@dataclass
class CalendarAnalytics:
    total_events: int
    total_meeting_hours: float
    average_meeting_length: float
    busy_hours_today: float
    free_hours_today: float
    upcoming_events: list[CalendarEvent] = field(default_factory=list)
    meetings_by_day: dict[str, int] = field(default_factory=dict)
    top_attendees: list[AttendeeStat] = field(default_factory=list)
    meeting_types: MeetingTypes = field(default_factory=MeetingTypes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalEvents": self.total_events,
            "totalMeetingHours": self.total_meeting_hours,
            "averageMeetingLength": self.average_meeting_length,
            "busyHoursToday": self.busy_hours_today,
            "freeHoursToday": self.free_hours_today,
            "upcomingEvents": [e.to_dict() for e in self.upcoming_events],
            "meetingsByDay": dict(self.meetings_by_day),
            "topAttendees": [a.to_dict() for a in self.top_attendees],
            "meetingTypes": self.meeting_types.to_dict(),
        }


# ═══════════════════════════════════════════════════════════════════════════
# Chat
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class ChatMessage:
    """One turn of client-held conversation history."""

    id: str
    role: MessageRole
    content: str
    timestamp: str = ""
    metadata: dict[str, Any] | None = None


@dataclass
class SuggestedAction:
    id: str
    type: ActionType
    label: str
    action: str
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _prune({
            "id": self.id,
            "type": self.type.value,
            "label": self.label,
            "description": self.description,
            "action": self.action,
        })


@dataclass
class ChatCalendarContext:
    """Live calendar data gathered for a single assistant turn."""

    events_today: list[CalendarEvent]
    upcoming_events: list[CalendarEvent]
    last_updated: datetime
    events_yesterday: list[CalendarEvent] | None = None
    analytics: CalendarAnalytics | None = None
    availability: CalendarAvailability | None = None

    @property
    def is_minimal(self) -> bool:
        """True for the degraded context returned when fetching failed."""
        return (
            self.events_yesterday is None
            and self.analytics is None
            and self.availability is None
            and not self.events_today
            and not self.upcoming_events
        )

    def to_dict(self) -> dict[str, Any]:
        return _prune({
            "eventsYesterday": (
                [e.to_dict() for e in self.events_yesterday]
                if self.events_yesterday is not None else None
            ),
            "eventsToday": [e.to_dict() for e in self.events_today],
            "upcomingEvents": [e.to_dict() for e in self.upcoming_events],
            "analytics": self.analytics.to_dict() if self.analytics else None,
            "availability": self.availability.to_dict() if self.availability else None,
            "lastUpdated": self.last_updated.isoformat(),
        })


@dataclass
class ChatResponse:
    id: str
    message: str
    timestamp: datetime
    processing_time: int
    model: str
    calendar_context: ChatCalendarContext | None = None
    suggested_actions: list[SuggestedAction] = field(default_factory=list)
    context_length: int = 0

    def to_dict(self) -> dict[str, Any]:
        return _prune({
            "id": self.id,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "calendarContext": self.calendar_context.to_dict() if self.calendar_context else None,
            "suggestedActions": [a.to_dict() for a in self.suggested_actions],
            "processingTime": self.processing_time,
            "metadata": {"model": self.model, "contextLength": self.context_length},
        })


@dataclass
class StreamChunk:
    id: str
    type: ChunkType
    content: str | None = None
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return _prune({
            "id": self.id,
            "type": self.type.value,
            "content": self.content,
            "metadata": self.metadata,
        })

    def to_sse(self) -> str:
        """Frame the chunk as one server-sent event."""
        return f"data: {json.dumps(self.to_dict())}\n\n"
