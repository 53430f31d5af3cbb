"""API middleware: CORS, request logging, API-key check and error handling.

Provides helper functions and middleware classes to configure cross-origin
resource sharing, structured request logging (via structlog), the API-key
gate, and conversion of ``SongStreamError`` subclasses (and FastAPI's own
HTTP errors) into the JSON error envelope.

# ─── MIDDLEWARE EXECUTION ORDER ───────────────────────────────────────
#
# Starlette middleware is a stack (last added, first executed):
#
#   In main.py:
#     app.add_middleware(ApiKeyMiddleware, ...)        # innermost
#     app.add_middleware(ErrorHandlingMiddleware, ...)
#     app.add_middleware(RequestLoggingMiddleware)     # outermost
#
#   Request flow:
#     Client → RequestLogging → ErrorHandling → ApiKey → route handler
#
# So an AuthenticationError raised by ApiKeyMiddleware is turned into a
# 401 envelope by ErrorHandlingMiddleware, and RequestLoggingMiddleware
# logs the final status code.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time
from collections.abc import Iterable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from src.api.schemas import ErrorResponse
from src.utils.errors import (
    AuthenticationError,
    MetadataError,
    NotAvailableError,
    PipelineFailedError,
    ReadTimeoutError,
    SongStreamError,
)
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# First match wins, so subclasses go before their bases.
_STATUS_BY_ERROR: tuple[tuple[type[SongStreamError], int], ...] = (
    (NotAvailableError, 404),
    (AuthenticationError, 401),
    (ReadTimeoutError, 504),
    (PipelineFailedError, 502),
    (MetadataError, 502),
)


def status_for(exc: SongStreamError) -> int:
    """HTTP status code an application error is reported with."""
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def error_envelope(
    message: str,
    status_code: int,
    *,
    error_type: str | None = None,
) -> JSONResponse:
    body = ErrorResponse(message=message, error=error_type)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware to the FastAPI application.

    Parameters
    ----------
    app:
        The FastAPI application instance.
    allowed_origins:
        Explicit list of allowed origins.  Defaults to ``["*"]`` for
        development; override with specific origins in production.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "Content-Length"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration.

    For streaming responses the duration covers the time to the response
    headers, not the whole transfer; stream sessions log their own end.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# API key
# ---------------------------------------------------------------------------


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """Require ``?key=<api_key>`` on every route except the exempt ones.

    An empty *api_key* disables the check entirely.
    """

    def __init__(
        self,
        app: ASGIApp,
        api_key: str = "",
        exempt_paths: Iterable[str] = (),
    ) -> None:
        super().__init__(app)
        self._api_key = api_key
        self._exempt = frozenset(exempt_paths)

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if self._api_key and request.url.path not in self._exempt:
            if request.query_params.get("key") != self._api_key:
                raise AuthenticationError("Invalid api key")
        return await call_next(request)


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch ``SongStreamError`` subclasses and return the error envelope.

    Stack traces and provider names are logged server-side only.  The
    exception class name reaches the client only when *expose_error_type*
    is set (development).
    """

    def __init__(self, app: ASGIApp, expose_error_type: bool = False) -> None:
        super().__init__(app)
        self._expose_error_type = expose_error_type

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except SongStreamError as exc:
            status_code = status_for(exc)
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status_code,
            )
            return error_envelope(
                exc.message,
                status_code,
                error_type=type(exc).__name__ if self._expose_error_type else None,
            )


def install_exception_handlers(app: FastAPI) -> None:
    """Render FastAPI's own errors (404, 405, validation) as the envelope."""

    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = "Not Found" if exc.status_code == 404 else str(exc.detail)
        return error_envelope(message, exc.status_code)

    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "query")
        message = f"Invalid parameter '{location}'" if location else "Bad Request"
        return error_envelope(message, 400)

    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
