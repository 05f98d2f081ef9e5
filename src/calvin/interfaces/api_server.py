"""
Calvin — REST API Server

FastAPI server exposing the calendar engine and the assistant over HTTP.

Endpoints:
    GET  /api/health                 — Liveness + version (no auth)
    GET  /api/calendar/events        — Events for a window or preset
    GET  /api/calendar/availability  — Free/busy for one or more days
    GET  /api/calendar/analytics     — Meeting-load analytics
    POST /api/chat/message           — Single JSON reply
    POST /api/chat/stream            — Streaming reply (SSE)

Auth: ``Authorization: Bearer <Google OAuth access token>``. The token is
used for that request's calendar calls and never stored. Admission limits
are keyed by the ``X-User-Email`` header.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import tzinfo
from typing import Any, Callable

from fastapi import FastAPI, HTTPException, Request, Security
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.exceptions import HTTPException as StarletteHTTPException

from calvin import __version__
from calvin.assistant import CalendarAssistant
from calvin.config import CalvinConfig
from calvin.context import ContextAssembler
from calvin.integrations.calendar import GoogleCalendarClient
from calvin.interfaces.api_models import ErrorResponse, HealthResponse
from calvin.llm import ChatModel, OpenAIChatModel
from calvin.rate_limiter import InMemoryRateLimiter, RateLimiter
from calvin.timewindow import InvalidTimezoneError, WorkingHours, resolve_timezone

logger = logging.getLogger("calvin.api")

UNAUTHORIZED_MESSAGE = "Unauthorized - Please sign in with Google"
AUTH_EXPIRED_MESSAGE = "Authentication expired - Please sign in again"
ANONYMOUS_KEY = "anonymous"
LIMITER_SWEEP_SECONDS = 300

ClientFactory = Callable[[str, tzinfo], GoogleCalendarClient]


def _default_client_factory(access_token: str, tz: tzinfo) -> GoogleCalendarClient:
    return GoogleCalendarClient(access_token=access_token, tz=tz)


# ═══════════════════════════════════════════════════════════════════════════
# API Server
# ═══════════════════════════════════════════════════════════════════════════


class CalvinAPIServer:
    """FastAPI-based REST API server for Calvin.

    Usage:
        server = CalvinAPIServer(config=CalvinConfig())
        app = server.app
        # Then run with uvicorn: uvicorn app:app --host 127.0.0.1 --port 8000

    Or for testing:
        from fastapi.testclient import TestClient
        client = TestClient(server.app)
        response = client.get("/api/health")
    """

    def __init__(
        self,
        config: CalvinConfig | None = None,
        llm: ChatModel | None = None,
        chat_limiter: RateLimiter | None = None,
        calendar_limiter: RateLimiter | None = None,
        client_factory: ClientFactory | None = None,
        version: str = __version__,
    ) -> None:
        self._config = config or CalvinConfig()
        self._version = version
        self._client_factory = client_factory or _default_client_factory

        self._llm = llm or OpenAIChatModel(
            api_key=self._config.openai_api_key,
            model=self._config.model,
            temperature=self._config.temperature,
            max_tokens=self._config.max_tokens,
        )
        self.assistant = CalendarAssistant(
            self._llm,
            ContextAssembler(
                working_hours=self._config.working_hours,
                upcoming_count=self._config.upcoming_count,
                history_window=self._config.history_window,
            ),
        )
        self.chat_limiter = chat_limiter or InMemoryRateLimiter(
            self._config.chat_rate_limit, self._config.chat_rate_window,
        )
        self.calendar_limiter = calendar_limiter or InMemoryRateLimiter(
            self._config.calendar_rate_limit, self._config.calendar_rate_window,
        )

        self.app = FastAPI(
            title="Calvin API",
            version=version,
            description="Calvin REST API — calendar-aware assistant",
        )
        self._register_error_handlers()
        self._register_routes()

    # ── Per-request helpers ──

    @property
    def working_hours(self) -> WorkingHours:
        return self._config.working_hours

    def resolve_timezone(self, name: str | None) -> tzinfo:
        """Viewer zone from the request, falling back to the configured default."""
        try:
            return resolve_timezone(name, default=self._config.timezone_name)
        except InvalidTimezoneError as e:
            raise HTTPException(status_code=400, detail=str(e))

    def calendar_client(self, access_token: str, tz: tzinfo) -> GoogleCalendarClient:
        return self._client_factory(access_token, tz)

    @staticmethod
    def admit(limiter: RateLimiter, request: Request) -> None:
        """Consume one request from ``limiter`` or raise 429 with Retry-After."""
        key = request.headers.get("X-User-Email") or ANONYMOUS_KEY
        result = limiter.check_and_consume(key)
        if result.allowed:
            return
        retry_after = result.retry_after
        raise HTTPException(
            status_code=429,
            detail={
                "error": "Rate limit exceeded",
                "details": {
                    "retryAfter": retry_after,
                    "message": f"Too many requests. Try again in {retry_after} seconds.",
                },
            },
            headers={"Retry-After": str(retry_after)},
        )

    async def sweep_limiters(self) -> None:
        """Periodically drop expired admission windows."""
        while True:
            await asyncio.sleep(LIMITER_SWEEP_SECONDS)
            for limiter in (self.chat_limiter, self.calendar_limiter):
                cleanup = getattr(limiter, "cleanup", None)
                if cleanup is not None:
                    cleanup()

    # ── Wiring ──

    def _register_error_handlers(self) -> None:
        app = self.app

        @app.exception_handler(StarletteHTTPException)
        async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
            if isinstance(exc.detail, dict):
                content = exc.detail
            else:
                content = ErrorResponse(error=str(exc.detail)).model_dump(exclude_none=True)
            return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

        @app.exception_handler(RequestValidationError)
        async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
            return JSONResponse(
                status_code=400,
                content=ErrorResponse(
                    error="Invalid request format", details=jsonable_encoder(exc.errors()),
                ).model_dump(),
            )

    def _register_routes(self) -> None:
        """Register all API routes."""
        from calvin.interfaces.routes.calendar import register_calendar_routes
        from calvin.interfaces.routes.chat import register_chat_routes

        app = self.app
        bearer = HTTPBearer(auto_error=False)

        async def verify_google_token(
            credentials: HTTPAuthorizationCredentials | None = Security(bearer),
        ) -> str:
            if credentials is None or not credentials.credentials:
                raise HTTPException(status_code=401, detail=UNAUTHORIZED_MESSAGE)
            return credentials.credentials

        # ── GET /api/health ──

        @app.get("/api/health", response_model=HealthResponse)
        async def health() -> HealthResponse:
            return HealthResponse(status="ok", version=self._version)

        register_calendar_routes(app, self, verify_google_token)
        register_chat_routes(app, self, verify_google_token)


def create_api_server(config: CalvinConfig | None = None, version: str = __version__) -> CalvinAPIServer:
    """Factory used by the CLI ``calvin api`` command.

    Wires the OpenAI model and in-memory admission limiters from config and
    starts the limiter sweep with the app.
    """
    config = config or CalvinConfig()
    if not config.has_api_key():
        logger.warning("OPENAI_API_KEY not set — chat endpoints will return 503")

    server = CalvinAPIServer(config=config, version=version)
    sweep: dict[str, Any] = {}

    @server.app.on_event("startup")
    async def _start_limiter_sweep() -> None:
        sweep["task"] = asyncio.create_task(server.sweep_limiters())
        logger.info("Rate limiter sweep started")

    @server.app.on_event("shutdown")
    async def _stop_limiter_sweep() -> None:
        task = sweep.get("task")
        if task is not None:
            task.cancel()

    return server
