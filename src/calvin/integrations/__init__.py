"""Calvin integrations — external service connectors.

Available integrations:
    calendar    — GoogleCalendarClient for fetching and normalizing events
"""


AUTH_ERROR_INDICATORS = (
    "invalid_grant",
    "invalid authentication credentials",
    "expected oauth 2 access token",
    "authentication credential",
    "token expired",
    "token has been expired",
    "invalid credentials",
    "unauthorized",
)


def _is_auth_error(error: Exception) -> bool:
    """Check if a provider error is authentication-related.

    Matches HTTP 401 responses from google-api-python-client as well as the
    known credential error substrings.
    """
    resp = getattr(error, "resp", None)
    if getattr(resp, "status", None) in (401, "401"):
        return True
    if getattr(error, "status_code", None) == 401:
        return True
    error_str = str(error).lower()
    return any(indicator in error_str for indicator in AUTH_ERROR_INDICATORS)


from calvin.integrations.calendar import (  # noqa: E402
    CalendarAuthError,
    CalendarFetchError,
    GoogleCalendarClient,
)

__all__ = [
    "GoogleCalendarClient",
    "CalendarAuthError",
    "CalendarFetchError",
    "_is_auth_error",
]
