"""
Calvin — Suggested Follow-up Actions

Keyword classifier over the user's message. Each matching category adds
one canned suggestion, in category order; no match falls back to two
generic suggestions. Deterministic: the same text always yields the same
list.
"""

from __future__ import annotations

from calvin.models import ActionType, SuggestedAction

MAX_SUGGESTIONS = 4

# (keywords, suggestion) in check order
_CATEGORIES: list[tuple[tuple[str, ...], SuggestedAction]] = [
    (
        ("free", "available", "schedule"),
        SuggestedAction(
            id="check-availability",
            type=ActionType.AVAILABILITY,
            label="Check detailed availability",
            description="View your free time slots for scheduling",
            action="What are my available time slots for the rest of the week?",
        ),
    ),
    (
        ("meeting", "busy", "analytics"),
        SuggestedAction(
            id="meeting-analytics",
            type=ActionType.ANALYTICS,
            label="Meeting analytics",
            description="Get insights on your meeting patterns",
            action="Show me my meeting analytics and patterns",
        ),
    ),
    (
        ("today", "schedule"),
        SuggestedAction(
            id="todays-schedule",
            type=ActionType.CALENDAR_QUERY,
            label="Today's schedule",
            description="View your complete schedule for today",
            action="What does my schedule look like today?",
        ),
    ),
    (
        ("tomorrow", "next", "upcoming"),
        SuggestedAction(
            id="upcoming-events",
            type=ActionType.CALENDAR_QUERY,
            label="Upcoming events",
            description="See your next scheduled events",
            action="What are my upcoming events?",
        ),
    ),
]

_FALLBACK: list[SuggestedAction] = [
    SuggestedAction(
        id="schedule-overview",
        type=ActionType.CALENDAR_QUERY,
        label="Schedule overview",
        action="Give me an overview of my schedule",
    ),
    SuggestedAction(
        id="find-meeting-time",
        type=ActionType.SCHEDULING,
        label="Find meeting time",
        action="When would be a good time for a 1-hour meeting this week?",
    ),
]


def suggest_actions(message: str) -> list[SuggestedAction]:
    """Suggested follow-ups for ``message``, at most MAX_SUGGESTIONS."""
    text = message.lower()
    actions = [
        _copy(suggestion)
        for keywords, suggestion in _CATEGORIES
        if any(keyword in text for keyword in keywords)
    ]
    if not actions:
        actions = [_copy(s) for s in _FALLBACK]
    return actions[:MAX_SUGGESTIONS]


def _copy(action: SuggestedAction) -> SuggestedAction:
    return SuggestedAction(
        id=action.id,
        type=action.type,
        label=action.label,
        action=action.action,
        description=action.description,
    )
