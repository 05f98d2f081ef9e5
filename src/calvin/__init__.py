"""Calvin — Calendar-Aware Conversational Assistant.

Answers questions about a user's Google Calendar, grounded in live calendar
data fetched on every turn.

Packages:
    calvin.integrations  — Google Calendar client and event normalization
    calvin.interfaces    — FastAPI server and routes
"""

__version__ = "0.1.0"
__description__ = "Calendar-aware conversational assistant over Google Calendar."
