"""
Calvin — Entry Point

Usage:
    calvin api                         # Start REST API server
    calvin today                       # Today's events
    calvin upcoming --count 5          # Next events
    calvin availability --days 3       # Free/busy within working hours
    calvin analytics --preset week     # Meeting-load analytics
    calvin --version                   # Show version

Calendar commands read the Google access token from --token or the
GOOGLE_ACCESS_TOKEN environment variable.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from datetime import date, datetime, timedelta, timezone

from calvin import __version__


def main() -> None:
    """Main entry point for Calvin CLI."""
    parser = argparse.ArgumentParser(
        prog="calvin",
        description="Calvin — your calendar, in conversation.",
    )
    parser.add_argument("--version", action="version", version=f"calvin {__version__}")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def _calendar_parser(name: str, help_text: str) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--token", type=str, default="", help="Google OAuth access token")
        sub.add_argument("--tz", type=str, default="", help="IANA time zone (default: config)")
        return sub

    # calvin api
    sub_api = subparsers.add_parser("api", help="Start REST API server")
    sub_api.add_argument("--host", type=str, default=None, help="Host to bind")
    sub_api.add_argument("--port", type=int, default=None, help="Port to listen on")

    # calvin today
    _calendar_parser("today", "Show today's calendar events")

    # calvin upcoming
    sub_upcoming = _calendar_parser("upcoming", "Show upcoming calendar events")
    sub_upcoming.add_argument("--count", type=int, default=10, help="Number of events")

    # calvin availability
    sub_avail = _calendar_parser("availability", "Show free/busy time within working hours")
    sub_avail.add_argument("--date", type=date.fromisoformat, default=None, help="First day (YYYY-MM-DD)")
    sub_avail.add_argument("--days", type=int, default=1, help="Number of days")

    # calvin analytics
    sub_analytics = _calendar_parser("analytics", "Show meeting analytics")
    sub_analytics.add_argument(
        "--preset", choices=["today", "week", "month"], default="week", help="Analytics window",
    )

    args = parser.parse_args()

    from calvin.config import CalvinConfig

    config = CalvinConfig()
    level = logging.DEBUG if args.verbose else getattr(logging, config.log_level, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s [%(name)s] %(levelname)s: %(message)s")

    if args.command == "api":
        _cmd_api(args, config)
    elif args.command == "today":
        asyncio.run(_cmd_today(args, config))
    elif args.command == "upcoming":
        asyncio.run(_cmd_upcoming(args, config))
    elif args.command == "availability":
        asyncio.run(_cmd_availability(args, config))
    elif args.command == "analytics":
        asyncio.run(_cmd_analytics(args, config))
    else:
        parser.print_help()


def _client(args: argparse.Namespace, config):  # noqa: ANN001, ANN202
    """GoogleCalendarClient for the CLI, or exit with a hint."""
    from rich.console import Console

    from calvin.integrations.calendar import GoogleCalendarClient
    from calvin.timewindow import InvalidTimezoneError, resolve_timezone

    console = Console()
    token = args.token or os.environ.get("GOOGLE_ACCESS_TOKEN", "")
    if not token:
        console.print("\n[bold red]⚠ No Google access token.[/]")
        console.print("Pass [bold cyan]--token[/] or set [dim]GOOGLE_ACCESS_TOKEN[/].\n")
        sys.exit(1)

    try:
        tz = resolve_timezone(args.tz or None, default=config.timezone_name)
    except InvalidTimezoneError as e:
        console.print(f"\n[bold red]Error:[/] {e}\n")
        sys.exit(1)

    return GoogleCalendarClient(access_token=token, tz=tz)


def _print_events(title: str, events: list, tz) -> None:  # noqa: ANN001
    from rich.console import Console
    from rich.table import Table

    from calvin.context import format_time_range

    console = Console()
    if not events:
        console.print("\n[dim]No events. 🎉[/]\n")
        return

    table = Table(title=f"{title} ({len(events)} events)")
    table.add_column("Date", style="bold", width=12)
    table.add_column("Time", width=20)
    table.add_column("Title", max_width=40)
    table.add_column("Attendees", width=10)
    table.add_column("Location", max_width=20, style="dim")

    for event in events:
        if event.start.date_time is not None:
            day = event.start.date_time.astimezone(tz).date().isoformat()
        else:
            day = event.start.date.isoformat() if event.start.date else ""
        table.add_row(
            day,
            format_time_range(event, tz),
            event.summary,
            str(len(event.attendees)) if event.attendees else "solo",
            (event.location or "")[:20],
        )

    console.print()
    console.print(table)
    console.print()


async def _cmd_today(args: argparse.Namespace, config) -> None:  # noqa: ANN001
    """Show today's calendar events."""
    from calvin.integrations.calendar import CalendarAuthError, CalendarFetchError

    client = _client(args, config)
    try:
        events = await client.get_today_events()
    except (CalendarAuthError, CalendarFetchError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    _print_events("Today's Calendar", events, client.tz)


async def _cmd_upcoming(args: argparse.Namespace, config) -> None:  # noqa: ANN001
    """Show upcoming calendar events."""
    from calvin.integrations.calendar import CalendarAuthError, CalendarFetchError

    client = _client(args, config)
    try:
        events = await client.get_upcoming_events(args.count)
    except (CalendarAuthError, CalendarFetchError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    _print_events("Upcoming", events, client.tz)


async def _cmd_availability(args: argparse.Namespace, config) -> None:  # noqa: ANN001
    """Show free and busy slots for one or more days."""
    from rich.console import Console
    from rich.table import Table

    from calvin.availability import get_availability
    from calvin.context import format_clock
    from calvin.integrations.calendar import CalendarAuthError, CalendarFetchError

    console = Console()
    client = _client(args, config)
    first_day = args.date or datetime.now(timezone.utc).astimezone(client.tz).date()

    try:
        availabilities = await asyncio.gather(*(
            get_availability(client, first_day + timedelta(days=i), config.working_hours)
            for i in range(max(1, args.days))
        ))
    except (CalendarAuthError, CalendarFetchError) as e:
        console.print(f"\n[bold red]Error:[/] {e}\n")
        sys.exit(1)

    for availability in availabilities:
        table = Table(
            title=(
                f"{availability.date.isoformat()} — "
                f"{availability.total_free_time / 60:.1f}h free, "
                f"{availability.total_busy_time / 60:.1f}h busy"
            ),
        )
        table.add_column("Status", style="bold", width=6)
        table.add_column("From", width=10)
        table.add_column("To", width=10)
        table.add_column("Minutes", width=8)

        slots = [("free", s) for s in availability.free_slots] + [("busy", s) for s in availability.busy_slots]
        for status, slot in sorted(slots, key=lambda item: item[1].start):
            table.add_row(
                f"[green]{status}[/]" if status == "free" else f"[red]{status}[/]",
                format_clock(slot.start, client.tz),
                format_clock(slot.end, client.tz),
                f"{slot.duration:.0f}",
            )
        console.print()
        console.print(table)
    console.print()


async def _cmd_analytics(args: argparse.Namespace, config) -> None:  # noqa: ANN001
    """Show meeting analytics for a preset window."""
    from rich.console import Console
    from rich.table import Table

    from calvin.availability import generate_analytics
    from calvin.integrations.calendar import CalendarAuthError, CalendarFetchError
    from calvin.timewindow import month_window, today_window, week_window

    console = Console()
    client = _client(args, config)
    now = datetime.now(timezone.utc)
    window = {"today": today_window, "week": week_window, "month": month_window}[args.preset](now, client.tz)

    try:
        analytics = await generate_analytics(
            client, window.start, window.end, working_hours=config.working_hours, now=now,
        )
    except (CalendarAuthError, CalendarFetchError) as e:
        console.print(f"\n[bold red]Error:[/] {e}\n")
        sys.exit(1)

    table = Table(title=f"Meeting analytics — {args.preset}")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Events", str(analytics.total_events))
    table.add_row("Meeting hours", f"{analytics.total_meeting_hours:.1f}h")
    table.add_row("Average length", f"{analytics.average_meeting_length:.0f}min")
    table.add_row("Busy today", f"{analytics.busy_hours_today:.1f}h")
    table.add_row("Free today", f"{analytics.free_hours_today:.1f}h")
    types = analytics.meeting_types
    table.add_row("In person / virtual / unknown", f"{types.in_person} / {types.virtual} / {types.unknown}")
    for day, count in sorted(analytics.meetings_by_day.items()):
        table.add_row(f"  {day}", str(count))

    console.print()
    console.print(table)

    if analytics.top_attendees:
        people = Table(title="Top attendees")
        people.add_column("Attendee")
        people.add_column("Meetings", width=8)
        for stat in analytics.top_attendees:
            people.add_row(stat.display_name or stat.email, str(stat.meeting_count))
        console.print(people)
    console.print()


def _cmd_api(args: argparse.Namespace, config) -> None:  # noqa: ANN001
    """Start REST API server."""
    import uvicorn

    from calvin.interfaces.api_server import create_api_server

    host = args.host or config.api_host
    port = args.port or config.api_port

    server = create_api_server(config)
    print(f"\nCalvin API starting on http://{host}:{port}")
    print("Press Ctrl+C to stop.\n")
    uvicorn.run(server.app, host=host, port=port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
