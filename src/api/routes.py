"""FastAPI API routes for songstream.

Provides REST endpoints for YouTube search, cache pre-warming, cache status
and MP3 streaming.  Service dependencies are resolved from ``app.state``
via FastAPI's ``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                              Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/status                        GET     Liveness envelope
# /api/v1/health                        GET     Version, environment, cache stats
# /api/v1/music/search                  GET     YouTube search (?q=&maxResults=)
# /api/v1/music/predownload/{id}        POST    Start caching a song, don't wait
# /api/v1/music/status/{id}             GET     Cache state of one song
# /api/v1/music/stream/{id}             GET     Cached MP3 stream (growing or complete)
# /api/v1/music/whitelist/{id}          POST    Allow an id on the live route
# /api/v1/music/live/{id}               GET     Uncached fetch → transcode → client
#
# DEPENDENCY INJECTION PATTERN:
# Each route declares its dependencies as type-annotated params.  FastAPI
# resolves them via Depends() helpers that read from app.state (populated
# at startup in main.py's _build_all).
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import re
from contextlib import aclosing
from typing import Annotated, AsyncIterator

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

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
from src.config.settings import Settings
from src.interfaces.metadata_provider import IMetadataProvider
from src.interfaces.source_fetcher import ISourceFetcher
from src.interfaces.transcoder import ITranscoder
from src.pipeline.coordinator import AcquisitionCoordinator, artifact_name_for
from src.pipeline.eviction import EvictionSweeper
from src.pipeline.stream_server import StreamServer
from src.utils.errors import SongStreamError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

APP_VERSION = "0.1.0"

# All routes in this file are prefixed with /api/v1.
router = APIRouter(prefix="/api/v1")

# YouTube video ids: 11 characters of the URL-safe base64 alphabet.
VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")

_AUDIO_MEDIA_TYPE = "audio/mpeg"


# ---------------------------------------------------------------------------
# Dependency helpers
# ---------------------------------------------------------------------------


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _get_coordinator(request: Request) -> AcquisitionCoordinator:
    return request.app.state.coordinator


def _get_stream_server(request: Request) -> StreamServer:
    return request.app.state.stream_server


def _get_metadata_provider(request: Request) -> IMetadataProvider:
    return request.app.state.metadata_provider


def _get_live_whitelist(request: Request) -> set[str]:
    return request.app.state.live_whitelist


def _valid_video_id(video_id: str) -> str:
    """Path-parameter validator shared by every ``/music/{video_id}`` route."""
    if not VIDEO_ID_PATTERN.match(video_id):
        raise HTTPException(status_code=400, detail="Invalid parameter 'videoId' provided")
    return video_id


SettingsDep = Annotated[Settings, Depends(_get_settings)]
CoordinatorDep = Annotated[AcquisitionCoordinator, Depends(_get_coordinator)]
StreamServerDep = Annotated[StreamServer, Depends(_get_stream_server)]
MetadataDep = Annotated[IMetadataProvider, Depends(_get_metadata_provider)]
WhitelistDep = Annotated[set[str], Depends(_get_live_whitelist)]
VideoIdDep = Annotated[str, Depends(_valid_video_id)]


# ---------------------------------------------------------------------------
# Streaming helpers
# ---------------------------------------------------------------------------


def _audio_headers(video_id: str, content_length: int | None = None) -> dict[str, str]:
    headers = {
        "Content-Disposition": f'inline; filename="{artifact_name_for(video_id)}"',
        "Accept-Ranges": "none",
        "Cache-Control": "no-cache",
    }
    if content_length is not None:
        headers["Content-Length"] = str(content_length)
    return headers


async def _primed(chunks: AsyncIterator[bytes], video_id: str) -> AsyncIterator[bytes]:
    """Pull the first chunk now, so early failures still get an error status.

    Once the response headers are out, a failure is logged and re-raised so
    the server drops the connection instead of ending the body cleanly.
    """
    iterator = aiter(chunks)
    try:
        first = await anext(iterator)
    except StopAsyncIteration:
        first = b""
    except BaseException:
        await iterator.aclose()
        raise

    async def body() -> AsyncIterator[bytes]:
        async with aclosing(iterator):
            if first:
                yield first
            try:
                async for chunk in iterator:
                    yield chunk
            except SongStreamError as exc:
                _logger.warning(
                    "stream_aborted",
                    video_id=video_id,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                raise

    return body()


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@router.get("/status", response_model=ApiResponse, summary="Liveness check")
async def status() -> ApiResponse:
    return ApiResponse()


@router.get("/health", response_model=ApiResponse, summary="Application health check")
async def health_check(
    request: Request,
    settings: SettingsDep,
    coordinator: CoordinatorDep,
) -> ApiResponse:
    """Return version, environment and audio cache counters."""
    sweeper: EvictionSweeper | None = getattr(request.app.state, "sweeper", None)
    cache = CacheStatsResponse(
        **coordinator.stats(),
        sweeper_running=sweeper.is_running if sweeper is not None else False,
    )
    health = HealthResponse(
        status="healthy",
        version=APP_VERSION,
        environment=settings.app_env,
        cache=cache,
    )
    return ApiResponse(data=health.model_dump())


# ---------------------------------------------------------------------------
# Music endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/music/search",
    response_model=ApiResponse,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    summary="Search YouTube for songs",
)
async def search(
    settings: SettingsDep,
    metadata: MetadataDep,
    q: str | None = None,
    max_results: Annotated[int | None, Query(alias="maxResults", ge=1, le=50)] = None,
) -> ApiResponse:
    if not q or not q.strip():
        raise HTTPException(status_code=400, detail="Required parameter 'q' missing")

    videos = await metadata.search(q.strip(), max_results or settings.search_max_results)
    payload = SearchResponse(query=q.strip(), results=videos)
    return ApiResponse(message="Retrieved search result", data=payload.model_dump())


@router.post(
    "/music/predownload/{video_id}",
    response_model=ApiResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Start caching a song without streaming it",
)
async def predownload(video_id: VideoIdDep, coordinator: CoordinatorDep) -> ApiResponse:
    handle = await coordinator.acquire(video_id)
    message = (
        "The requested song is now being downloaded"
        if handle.started
        else "The requested song is already in cache"
    )
    payload = PredownloadResponse(
        video_id=video_id, started=handle.started, state=handle.state.value
    )
    return ApiResponse(message=message, data=payload.model_dump())


@router.get(
    "/music/status/{video_id}",
    response_model=ApiResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Cache state of one song",
)
async def cache_status(video_id: VideoIdDep, coordinator: CoordinatorDep) -> ApiResponse:
    entry = coordinator.get_entry(video_id)
    payload = CacheStatusResponse(
        video_id=video_id,
        known=coordinator.is_known(video_id),
        ready=coordinator.is_ready(video_id),
        state=entry.state.value if entry is not None else None,
        bytes_written=entry.sink.bytes_written if entry is not None and entry.sink else 0,
        active_readers=entry.active_readers if entry is not None else 0,
    )
    return ApiResponse(data=payload.model_dump())


@router.get(
    "/music/stream/{video_id}",
    response_class=StreamingResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
    summary="Stream a song as MP3 through the cache",
)
async def stream(
    video_id: VideoIdDep,
    coordinator: CoordinatorDep,
    stream_server: StreamServerDep,
) -> StreamingResponse:
    """Acquire the song (joining any running download) and stream it.

    Listening starts as soon as the first transcoded bytes exist; the
    file keeps growing underneath the client until the download ends.
    """
    handle = await coordinator.acquire(video_id)
    session = await stream_server.open(video_id)
    _logger.info(
        "stream_requested",
        video_id=video_id,
        state=handle.state.value,
        started=handle.started,
    )
    body = await _primed(session, video_id)
    return StreamingResponse(
        body,
        media_type=_AUDIO_MEDIA_TYPE,
        headers=_audio_headers(video_id, session.content_length),
    )


@router.post(
    "/music/whitelist/{video_id}",
    response_model=ApiResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Allow a song on the live (uncached) route",
)
async def whitelist(video_id: VideoIdDep, allowed: WhitelistDep) -> ApiResponse:
    allowed.add(video_id)
    payload = WhitelistResponse(video_id=video_id, whitelisted=len(allowed))
    return ApiResponse(message="Video whitelisted", data=payload.model_dump())


@router.get(
    "/music/live/{video_id}",
    response_class=StreamingResponse,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    summary="Stream a whitelisted song straight from the source, uncached",
)
async def live(
    video_id: VideoIdDep,
    request: Request,
    allowed: WhitelistDep,
) -> StreamingResponse:
    if video_id not in allowed:
        raise HTTPException(status_code=400, detail="Invalid request")

    fetcher: ISourceFetcher = request.app.state.fetcher
    transcoder: ITranscoder = request.app.state.transcoder
    body = await _primed(transcoder.transform(fetcher.fetch(video_id)), video_id)
    return StreamingResponse(
        body,
        media_type=transcoder.content_type(),
        headers=_audio_headers(video_id),
    )
