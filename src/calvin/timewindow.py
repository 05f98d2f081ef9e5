"""
Calvin — Time Windows

Pure date-range helpers used by the calendar gateway, the availability
engine and the context assembler.

Every helper takes an explicit reference instant (``now``) and the viewing
user's zone, so day boundaries are always computed in that zone and tests
can pin the clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class InvalidTimezoneError(ValueError):
    """Raised when a timezone name cannot be resolved."""


def resolve_timezone(name: str | None, default: str = "UTC") -> tzinfo:
    """Turn an IANA zone name into a tzinfo, falling back to ``default``."""
    key = (name or default or "UTC").strip()
    if key.upper() in ("UTC", "Z"):
        return timezone.utc
    try:
        return ZoneInfo(key)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidTimezoneError(f"Unknown timezone: {key}") from e


def localize(moment: datetime, tz: tzinfo) -> datetime:
    """Express ``moment`` in ``tz``. Naive values are read as wall clock in ``tz``."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone(tz)


def start_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


# ═══════════════════════════════════════════════════════════════════════════
# Windows
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval ``[start, end)`` between two aware instants."""

    start: datetime
    end: datetime

    @property
    def minutes(self) -> float:
        """Elapsed minutes. Same-zone aware datetimes subtract as wall clock, so compare in UTC."""
        return (self.end.astimezone(timezone.utc) - self.start.astimezone(timezone.utc)).total_seconds() / 60

    def in_utc(self) -> TimeWindow:
        return TimeWindow(self.start.astimezone(timezone.utc), self.end.astimezone(timezone.utc))

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def day_window(day: date, tz: tzinfo) -> TimeWindow:
    start = start_of_day(day, tz)
    return TimeWindow(start, start_of_day(day + timedelta(days=1), tz))


def today_window(now: datetime, tz: tzinfo) -> TimeWindow:
    return day_window(localize(now, tz).date(), tz)


def yesterday_window(now: datetime, tz: tzinfo) -> TimeWindow:
    """Previous day 00:00 up to today 00:00."""
    return day_window(localize(now, tz).date() - timedelta(days=1), tz)


def tomorrow_window(now: datetime, tz: tzinfo) -> TimeWindow:
    """Tomorrow 00:00 up to the day after tomorrow 00:00."""
    return day_window(localize(now, tz).date() + timedelta(days=1), tz)


def week_window(now: datetime, tz: tzinfo) -> TimeWindow:
    """The calendar week containing ``now``, Sunday 00:00 through Saturday 24:00."""
    today = localize(now, tz).date()
    sunday = today - timedelta(days=(today.weekday() + 1) % 7)
    return TimeWindow(start_of_day(sunday, tz), start_of_day(sunday + timedelta(days=7), tz))


def month_window(now: datetime, tz: tzinfo) -> TimeWindow:
    first = localize(now, tz).date().replace(day=1)
    following = (first + timedelta(days=32)).replace(day=1)
    return TimeWindow(start_of_day(first, tz), start_of_day(following, tz))


# ═══════════════════════════════════════════════════════════════════════════
# Working hours
# ═══════════════════════════════════════════════════════════════════════════


def _parse_clock(value: str | time) -> time:
    if isinstance(value, time):
        return value
    try:
        hours, minutes = str(value).strip().split(":", 1)
        return time(int(hours), int(minutes))
    except ValueError as e:
        raise ValueError(f"Invalid clock time {value!r}, expected HH:MM") from e


@dataclass(frozen=True)
class WorkingHours:
    """The daily working window used for availability and the nominal workday.

    One instance drives both the free/busy partition and the
    ``freeHoursToday`` analytics figure.
    """

    start: time = time(9, 0)
    end: time = time(17, 0)

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError(f"Working hours end {self.end} must be after start {self.start}")

    @classmethod
    def parse(cls, start: str | time = "09:00", end: str | time = "17:00") -> WorkingHours:
        return cls(_parse_clock(start), _parse_clock(end))

    def window(self, day: date, tz: tzinfo) -> TimeWindow:
        return TimeWindow(
            datetime.combine(day, self.start, tzinfo=tz),
            datetime.combine(day, self.end, tzinfo=tz),
        )

    @property
    def minutes(self) -> float:
        return float(
            (self.end.hour * 60 + self.end.minute)
            - (self.start.hour * 60 + self.start.minute)
        )

    @property
    def hours(self) -> float:
        return self.minutes / 60

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start.strftime("%H:%M"), "end": self.end.strftime("%H:%M")}
