"""Calvin interfaces — REST API."""

from calvin.interfaces.api_server import (
    CalvinAPIServer,
    create_api_server,
)

__all__ = [
    "CalvinAPIServer",
    "create_api_server",
]
