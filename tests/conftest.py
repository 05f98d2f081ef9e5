"""
Shared fixtures for Calvin tests.

The Google Calendar service is always mocked: ``calendar_service`` answers
``events().list(**params).execute()`` from an in-memory item list, honouring
timeMin / timeMax / maxResults the way the real API does (an event is
returned when it ends after timeMin and starts before timeMax).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable
from unittest.mock import MagicMock

import pytest

from calvin.integrations.calendar import GoogleCalendarClient, event_start, parse_event
from calvin.models import CalendarEvent
from calvin.timewindow import start_of_day


# ═══════════════════════════════════════════════════════════════════════════
# Event builders
# ═══════════════════════════════════════════════════════════════════════════


def _item(
    event_id: str,
    start: datetime | date,
    end: datetime | date | None = None,
    summary: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    if isinstance(start, datetime):
        end = end or start + timedelta(hours=1)
        start_data = {"dateTime": start.isoformat()}
        end_data = {"dateTime": end.isoformat()}  # type: ignore[union-attr]
    else:
        end = end or start + timedelta(days=1)
        start_data = {"date": start.isoformat()}
        end_data = {"date": end.isoformat()}
    item: dict[str, Any] = {"id": event_id, "start": start_data, "end": end_data}
    if summary is not None:
        item["summary"] = summary
    item.update(extra)
    return item


@pytest.fixture
def make_item() -> Callable[..., dict[str, Any]]:
    """Build a Google Calendar API event item (timed when given datetimes, all-day for dates)."""
    return _item


@pytest.fixture
def make_event() -> Callable[..., CalendarEvent]:
    """Build a normalized CalendarEvent through the real parser."""

    def _make(*args: Any, **kwargs: Any) -> CalendarEvent:
        event = parse_event(_item(*args, **kwargs))
        assert event is not None
        return event

    return _make


# ═══════════════════════════════════════════════════════════════════════════
# Mocked Google service
# ═══════════════════════════════════════════════════════════════════════════


def _bounds(item: dict[str, Any]) -> tuple[datetime, datetime]:
    event = parse_event(item)
    assert event is not None
    start = event_start(event, timezone.utc)
    end = event.end.date_time or start_of_day(event.end.date, timezone.utc)  # type: ignore[arg-type]
    return start, end  # type: ignore[return-value]


@pytest.fixture
def calendar_service() -> MagicMock:
    """Mocked Calendar v3 service. Append API items to ``service.items``.

    Set ``service.error`` to an exception to make every list call fail.
    """
    service = MagicMock()
    service.items = []
    service.error = None

    def _list(**params: Any) -> MagicMock:
        request = MagicMock()
        if service.error is not None:
            request.execute.side_effect = service.error
            return request
        time_min = datetime.fromisoformat(params["timeMin"])
        time_max = datetime.fromisoformat(params["timeMax"]) if "timeMax" in params else None
        selected = []
        for item in service.items:
            start, end = _bounds(item)
            if end > time_min and (time_max is None or start < time_max):
                selected.append(item)
        selected.sort(key=lambda i: _bounds(i)[0])
        request.execute.return_value = {"items": selected[: params["maxResults"]]}
        return request

    service.events.return_value.list.side_effect = _list
    return service


@pytest.fixture
def calendar_client(calendar_service: MagicMock) -> GoogleCalendarClient:
    return GoogleCalendarClient("test-token", tz=timezone.utc, service=calendar_service)


# ═══════════════════════════════════════════════════════════════════════════
# Fake language model
# ═══════════════════════════════════════════════════════════════════════════


class FakeChatModel:
    """ChatModel double that records prompts and replays canned output."""

    def __init__(
        self,
        reply: str = "Here is your schedule.",
        fragments: list[str] | None = None,
        error: Exception | None = None,
        stream_error: Exception | None = None,
    ) -> None:
        self.model = "fake-model"
        self.reply = reply
        self.fragments = fragments if fragments is not None else ["Here ", "is ", "your day."]
        self.error = error
        self.stream_error = stream_error
        self.calls: list[list[dict[str, str]]] = []
        self.stream_closed = False

    async def complete(self, messages: list[dict[str, str]]) -> str:
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return self.reply

    async def stream(self, messages: list[dict[str, str]]) -> AsyncIterator[str]:
        self.calls.append(messages)
        try:
            if self.error is not None:
                raise self.error
            for fragment in self.fragments:
                yield fragment
            if self.stream_error is not None:
                raise self.stream_error
        finally:
            self.stream_closed = True


@pytest.fixture
def fake_model() -> FakeChatModel:
    return FakeChatModel()


@pytest.fixture
def make_model() -> type[FakeChatModel]:
    return FakeChatModel
