"""Calendar data routes for Calvin API."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Literal

from fastapi import Depends, HTTPException, Query, Request

from calvin.availability import generate_analytics, get_availability
from calvin.integrations.calendar import CalendarAuthError
from calvin.interfaces.api_server import AUTH_EXPIRED_MESSAGE
from calvin.timewindow import localize, month_window, today_window, week_window

logger = logging.getLogger("calvin.api")

MAX_AVAILABILITY_DAYS = 31


def register_calendar_routes(app, server, verify_google_token) -> None:  # noqa: ANN001
    """Register event listing, availability and analytics routes."""

    def _generated_at() -> str:
        return datetime.now(timezone.utc).isoformat()

    # ── GET /api/calendar/events ──

    @app.get("/api/calendar/events")
    async def calendar_events(
        request: Request,
        timeMin: datetime | None = Query(None),
        timeMax: datetime | None = Query(None),
        maxResults: int = Query(50, ge=1, le=250),
        preset: Literal["today", "week", "upcoming"] | None = Query(None),
        count: int = Query(10, ge=1, le=250),
        timeZone: str | None = Query(None),
        token: str = Depends(verify_google_token),
    ) -> dict[str, Any]:
        server.admit(server.calendar_limiter, request)
        tz = server.resolve_timezone(timeZone)
        client = server.calendar_client(token, tz)

        try:
            if preset == "today":
                events = await client.get_today_events()
            elif preset == "week":
                events = await client.get_week_events()
            elif preset == "upcoming":
                events = await client.get_upcoming_events(count)
            else:
                events = await client.fetch_events(
                    time_min=localize(timeMin, tz) if timeMin else None,
                    time_max=localize(timeMax, tz) if timeMax else None,
                    max_results=maxResults,
                )
        except CalendarAuthError:
            raise HTTPException(status_code=401, detail=AUTH_EXPIRED_MESSAGE)
        except Exception as e:
            logger.error(f"Calendar events API error: {e}")
            raise HTTPException(status_code=500, detail="Failed to fetch calendar events")

        return {
            "events": [ev.to_dict() for ev in events],
            "count": len(events),
            "fetched_at": _generated_at(),
        }

    # ── GET /api/calendar/availability ──

    @app.get("/api/calendar/availability")
    async def calendar_availability(
        request: Request,
        day: date | None = Query(None, alias="date"),
        days: int = Query(1, ge=1, le=MAX_AVAILABILITY_DAYS),
        timeZone: str | None = Query(None),
        token: str = Depends(verify_google_token),
    ) -> dict[str, Any]:
        server.admit(server.calendar_limiter, request)
        tz = server.resolve_timezone(timeZone)
        client = server.calendar_client(token, tz)
        first_day = day or localize(datetime.now(timezone.utc), tz).date()

        try:
            availabilities = await asyncio.gather(*(
                get_availability(client, first_day + timedelta(days=i), server.working_hours)
                for i in range(days)
            ))
        except CalendarAuthError:
            raise HTTPException(status_code=401, detail=AUTH_EXPIRED_MESSAGE)
        except Exception as e:
            logger.error(f"Calendar availability API error: {e}")
            raise HTTPException(status_code=500, detail="Failed to fetch calendar availability")

        if days == 1:
            return {**availabilities[0].to_dict(), "generated_at": _generated_at()}

        return {
            "availabilities": [a.to_dict() for a in availabilities],
            "summary": {
                "totalDays": days,
                "averageFreeTime": sum(a.total_free_time for a in availabilities) / days,
                "averageBusyTime": sum(a.total_busy_time for a in availabilities) / days,
            },
            "generated_at": _generated_at(),
        }

    # ── GET /api/calendar/analytics ──

    @app.get("/api/calendar/analytics")
    async def calendar_analytics(
        request: Request,
        startDate: datetime | None = Query(None),
        endDate: datetime | None = Query(None),
        preset: Literal["today", "week", "month"] | None = Query(None),
        timeZone: str | None = Query(None),
        token: str = Depends(verify_google_token),
    ) -> dict[str, Any]:
        server.admit(server.calendar_limiter, request)
        tz = server.resolve_timezone(timeZone)
        client = server.calendar_client(token, tz)
        now = datetime.now(timezone.utc)

        if startDate and endDate:
            start, end = localize(startDate, tz), localize(endDate, tz)
            if end <= start:
                raise HTTPException(status_code=400, detail="endDate must be after startDate")
        elif preset:
            window = {"today": today_window, "week": week_window, "month": month_window}[preset](now, tz)
            start, end = window.start, window.end
        else:
            start = end = None

        try:
            analytics = await generate_analytics(
                client, start, end, working_hours=server.working_hours, now=now,
            )
        except CalendarAuthError:
            raise HTTPException(status_code=401, detail=AUTH_EXPIRED_MESSAGE)
        except Exception as e:
            logger.error(f"Calendar analytics API error: {e}")
            raise HTTPException(status_code=500, detail="Failed to generate calendar analytics")

        period: Any = "default_week"
        if start is not None and end is not None:
            period = {"start": start.isoformat(), "end": end.isoformat()}

        return {**analytics.to_dict(), "period": period, "generated_at": _generated_at()}
