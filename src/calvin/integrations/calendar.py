"""
Calvin — Google Calendar Integration

Async-friendly Google Calendar client built on google-api-python-client.
Fetches events for an arbitrary window with a caller-supplied OAuth access
token and normalizes the provider's event shape into CalendarEvent records.

Architecture:
    GoogleCalendarClient (this file)
    └── one instance per request, bound to the caller's access token and zone
    └── returns CalendarEvent dataclasses, ascending by start
    └── consumed by calvin.availability and calvin.context
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Callable

from calvin.integrations import _is_auth_error
from calvin.models import (
    Attendee,
    CalendarEvent,
    EventStatus,
    EventTime,
    Person,
    ResponseStatus,
)
from calvin.timewindow import (
    InvalidTimezoneError,
    resolve_timezone,
    start_of_day,
    today_window,
    week_window,
)

logger = logging.getLogger("calvin.integrations.calendar")

DEFAULT_MAX_RESULTS = 250
NO_TITLE = "No title"

# Upcoming queries over-fetch so that events already in progress at "now"
# (returned by the provider because they end after timeMin) can be dropped
# without starving the requested count.
UPCOMING_OVERFETCH = 3


class CalendarAuthError(Exception):
    """Raised when the calendar credential is expired or invalid."""


class CalendarFetchError(Exception):
    """Raised for any non-credential calendar fetch failure."""


AuthErrorHook = Callable[[Exception], Any]


class GoogleCalendarClient:
    """Google Calendar API client — fetches and normalizes events.

    Usage:
        client = GoogleCalendarClient(access_token, tz=ZoneInfo("Europe/Rome"))
        events = await client.get_today_events()
        for event in events:
            print(event.summary, event.start.date_time, event.duration_minutes)

    ``on_auth_error`` is called (and awaited if it returns an awaitable)
    before CalendarAuthError propagates, so the caller can trigger sign-out.
    """

    def __init__(
        self,
        access_token: str,
        tz: tzinfo = timezone.utc,
        on_auth_error: AuthErrorHook | None = None,
        service: Any = None,
    ) -> None:
        self._access_token = access_token
        self.tz = tz
        self._on_auth_error = on_auth_error
        self._service = service

    # ── Service ──

    def _build_service(self) -> Any:
        """A Calendar service for the calling thread.

        httplib2 transports are not thread-safe and the queries of one turn
        run concurrently in the executor, so every call builds its own.
        Discovery is static, so building costs no request. An injected
        ``service`` is returned as-is and is the caller's to share.
        """
        if self._service is not None:
            return self._service

        from google.oauth2.credentials import Credentials
        from googleapiclient.discovery import build

        creds = Credentials(token=self._access_token)
        return build("calendar", "v3", credentials=creds, cache_discovery=False)

    # ── Fetch Events ──

    async def fetch_events(
        self,
        time_min: datetime | None = None,
        time_max: datetime | None = None,
        max_results: int = DEFAULT_MAX_RESULTS,
        now: datetime | None = None,
    ) -> list[CalendarEvent]:
        """Fetch events from the primary calendar.

        Args:
            time_min: Window start; defaults to ``now``.
            time_max: Optional window end.
            max_results: Page size, 1..250.
            now: Reference instant, defaults to the current time.

        Returns:
            CalendarEvent list ordered ascending by start time.

        Raises:
            CalendarAuthError: the access token was rejected.
            CalendarFetchError: any other failure.
        """
        if not 1 <= max_results <= DEFAULT_MAX_RESULTS:
            raise ValueError(f"max_results must be between 1 and {DEFAULT_MAX_RESULTS}")

        start = time_min or now or datetime.now(timezone.utc)
        params: dict[str, Any] = {
            "calendarId": "primary",
            "timeMin": start.isoformat(),
            "maxResults": max_results,
            "singleEvents": True,
            "orderBy": "startTime",
        }
        if time_max is not None:
            params["timeMax"] = time_max.isoformat()

        def _sync_list() -> list[dict[str, Any]]:
            result = self._build_service().events().list(**params).execute()
            return result.get("items", []) or []

        loop = asyncio.get_running_loop()
        try:
            items = await loop.run_in_executor(None, _sync_list)
        except Exception as e:
            if _is_auth_error(e):
                logger.warning(f"Calendar credential rejected: {e}")
                await self._notify_auth_error(e)
                raise CalendarAuthError(f"Auth error: {e}") from e
            logger.error(f"Failed to fetch calendar events: {e}")
            raise CalendarFetchError("Failed to fetch calendar events") from e

        events = [ev for ev in (parse_event(item) for item in items) if ev is not None]
        events.sort(key=lambda ev: event_start(ev, self.tz) or start)
        logger.info(f"Fetched {len(events)} calendar events")
        return events

    async def get_events_in_range(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        return await self.fetch_events(time_min=start, time_max=end)

    async def get_today_events(self, now: datetime | None = None) -> list[CalendarEvent]:
        """All events for the viewer's current calendar day."""
        window = today_window(now or datetime.now(timezone.utc), self.tz)
        return await self.get_events_in_range(window.start, window.end)

    async def get_week_events(self, now: datetime | None = None) -> list[CalendarEvent]:
        window = week_window(now or datetime.now(timezone.utc), self.tz)
        return await self.get_events_in_range(window.start, window.end)

    async def get_upcoming_events(
        self,
        count: int = 10,
        now: datetime | None = None,
    ) -> list[CalendarEvent]:
        """The next ``count`` events starting at or after ``now``.

        The provider returns events that *end* after timeMin, so the start
        filter is applied here before truncating.
        """
        now = now or datetime.now(timezone.utc)
        page = min(DEFAULT_MAX_RESULTS, max(count, count * UPCOMING_OVERFETCH))
        events = await self.fetch_events(time_min=now, max_results=page, now=now)
        upcoming = [ev for ev in events if (event_start(ev, self.tz) or now) >= now]
        return upcoming[:count]

    # ── Internal ──

    async def _notify_auth_error(self, error: Exception) -> None:
        if self._on_auth_error is None:
            return
        try:
            result = self._on_auth_error(error)
            if inspect.isawaitable(result):
                await result
        except Exception as hook_error:
            logger.warning(f"Auth error hook failed: {hook_error}")


# ═══════════════════════════════════════════════════════════════════════════
# Parsing Helpers (module-level for testability)
# ═══════════════════════════════════════════════════════════════════════════


def event_start(event: CalendarEvent, tz: tzinfo) -> datetime | None:
    """Start instant of an event; all-day events start at midnight in ``tz``."""
    if event.start.date_time is not None:
        return event.start.date_time
    if event.start.date is not None:
        return start_of_day(event.start.date, tz)
    return None


def parse_event(event_data: dict[str, Any]) -> CalendarEvent | None:
    """Parse a Google Calendar API event into a CalendarEvent.

    Returns None for items without an id or without a usable start/end,
    so malformed events never reach the analytics engine.
    """
    event_id = event_data.get("id")
    if not event_id:
        return None

    try:
        start = _parse_event_time(event_data.get("start") or {})
        end = _parse_event_time(event_data.get("end") or {})
    except ValueError as e:
        logger.warning(f"Event {event_id} has an unparseable start/end: {e}")
        return None

    if not start.is_set or not end.is_set:
        logger.warning(f"Event {event_id} has no start/end time")
        return None

    attendees = []
    for att in event_data.get("attendees") or []:
        email = att.get("email")
        if not email:
            continue
        attendees.append(Attendee(
            email=email,
            display_name=att.get("displayName") or None,
            response_status=_enum_or_none(ResponseStatus, att.get("responseStatus")),
        ))

    recurring_event_id = event_data.get("recurringEventId") or None

    return CalendarEvent(
        id=event_id,
        summary=event_data.get("summary") or NO_TITLE,
        description=event_data.get("description") or None,
        start=start,
        end=end,
        location=event_data.get("location") or None,
        attendees=attendees,
        creator=_parse_person(event_data.get("creator")),
        organizer=_parse_person(event_data.get("organizer")),
        status=_enum_or_none(EventStatus, event_data.get("status")),
        recurring=bool(recurring_event_id),
        recurring_event_id=recurring_event_id,
        hangout_link=event_data.get("hangoutLink") or None,
        conference_data=_parse_conference(event_data.get("conferenceData")),
    )


def _parse_event_time(time_data: dict[str, Any]) -> EventTime:
    """Parse a Google Calendar time object.

    Google Calendar returns either:
    - {"dateTime": "2026-02-15T10:00:00+01:00", "timeZone": "Europe/Rome"} for timed events
    - {"date": "2026-02-15"} for all-day events
    """
    time_zone = time_data.get("timeZone") or None
    raw_dt = time_data.get("dateTime")
    if raw_dt:
        parsed = datetime.fromisoformat(_normalize_iso(raw_dt))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=_zone_or_utc(time_zone))
        return EventTime(date_time=parsed, time_zone=time_zone)
    raw_date = time_data.get("date")
    if raw_date:
        return EventTime(date=date.fromisoformat(raw_date), time_zone=time_zone)
    return EventTime(time_zone=time_zone)


def _normalize_iso(value: str) -> str:
    # fromisoformat before 3.11 rejects the "Z" suffix
    return value[:-1] + "+00:00" if value.endswith("Z") else value


def _zone_or_utc(name: str | None) -> tzinfo:
    try:
        return resolve_timezone(name)
    except InvalidTimezoneError:
        return timezone.utc


def _parse_person(data: dict[str, Any] | None) -> Person | None:
    if not data or not data.get("email"):
        return None
    return Person(email=data["email"], display_name=data.get("displayName") or None)


def _parse_conference(data: dict[str, Any] | None) -> dict[str, Any] | None:
    if data is None:
        return None
    conference: dict[str, Any] = {}
    solution_name = (data.get("conferenceSolution") or {}).get("name")
    if solution_name:
        conference["conferenceSolution"] = {"name": solution_name}
    entry_points = data.get("entryPoints")
    if entry_points:
        conference["entryPoints"] = [
            {
                "entryPointType": ep.get("entryPointType", ""),
                "uri": ep.get("uri", ""),
                **({"label": ep["label"]} if ep.get("label") else {}),
            }
            for ep in entry_points
        ]
    return conference


def _enum_or_none(enum_cls: Any, value: Any) -> Any:
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        return None

