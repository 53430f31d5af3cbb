"""songstream API layer: routes, schemas and middleware."""

from src.api.middleware import (
    ApiKeyMiddleware,
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
    install_exception_handlers,
)
from src.api.routes import router
from src.api.schemas import (
    ApiResponse,
    CacheStatsResponse,
    CacheStatusResponse,
    ErrorResponse,
    HealthResponse,
    PredownloadResponse,
    SearchResponse,
    WhitelistResponse,
)

__all__ = [
    "ApiKeyMiddleware",
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "install_exception_handlers",
    "router",
    "ApiResponse",
    "CacheStatsResponse",
    "CacheStatusResponse",
    "ErrorResponse",
    "HealthResponse",
    "PredownloadResponse",
    "SearchResponse",
    "WhitelistResponse",
]
