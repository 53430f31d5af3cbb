"""songstream FastAPI application entry point.

Wires together the audio cache, its providers and the routes via
dependency injection.  Loads configuration from ``.env`` and
``config/config.yaml`` and configures structured logging.

The cache components themselves are built in ``src/wiring.py``, which the
CLI shares.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    ApiKeyMiddleware,
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
    install_exception_handlers,
)
from src.api.routes import APP_VERSION
from src.api.routes import router as api_router
from src.config.loader import load_config
from src.config.settings import Settings
from src.pipeline.coordinator import AcquisitionCoordinator
from src.pipeline.eviction import EvictionSweeper
from src.providers.cache.memory_cache import MemoryCacheProvider
from src.providers.metadata.youtube_data_provider import YouTubeDataProvider
from src.utils.logging import configure_logging, get_logger
from src.wiring import build_cache, build_http_client

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)

# Routes reachable without ?key=
_PUBLIC_PATHS = ("/api/v1/status", "/api/v1/health")


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def _build_all(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    # -- Shared resources --
    http_client = build_http_client()

    components = build_cache(app_settings, http_client)

    # -- Metadata search (results memoised to save API quota) --
    search_cache = MemoryCacheProvider(ttl=app_settings.search_cache_ttl_seconds)
    metadata_provider = YouTubeDataProvider(
        http_client,
        api_key=app_settings.youtube_api_key,
        stream_url_base=app_settings.public_base_url,
        cache=search_cache,
        search_ttl=app_settings.search_cache_ttl_seconds,
    )
    if not app_settings.youtube_api_key:
        _logger.warning("youtube_api_key_missing", msg="Search requests will be rejected upstream.")

    components.update(
        {
            "http_client": http_client,
            "search_cache": search_cache,
            "metadata_provider": metadata_provider,
            "live_whitelist": set(),
        }
    )
    return components


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    app_settings: Settings = application.state.settings
    app_settings.validate_runtime()

    components = _build_all(app_settings)
    for key, value in components.items():
        setattr(application.state, key, value)

    sweeper: EvictionSweeper = components["sweeper"]
    sweeper.start()

    _logger.info(
        "app_startup",
        version=APP_VERSION,
        environment=app_settings.app_env,
        cache_dir=app_settings.cache_dir,
        cache_ttl_seconds=app_settings.cache_ttl_seconds,
        auth_enabled=bool(app_settings.api_key),
    )

    yield

    # -- Shutdown: stop background work, then close the shared client --
    coordinator: AcquisitionCoordinator = components["coordinator"]
    await coordinator.aclose()
    await sweeper.stop()
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="pipelines cancelled, HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Build and configure the FastAPI application."""
    app_settings = app_settings or settings
    application = FastAPI(
        title="songstream API",
        version=APP_VERSION,
        description=(
            "Search YouTube and stream songs as MP3.  Each song is downloaded "
            "and transcoded once; every listener shares that one download, "
            "even while it is still in progress."
        ),
        lifespan=_lifespan,
    )
    application.state.settings = app_settings

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(
        ApiKeyMiddleware, api_key=app_settings.api_key, exempt_paths=_PUBLIC_PATHS
    )
    application.add_middleware(
        ErrorHandlingMiddleware, expose_error_type=app_settings.is_development
    )
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=config.get("cors", {}).get("allow_origins"))
    install_exception_handlers(application)

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
