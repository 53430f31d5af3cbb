"""Pydantic response schemas for the songstream API.

Every non-streaming endpoint answers with the same JSON envelope::

    {"success": true,  "message": "...", "data": {...}}
    {"success": false, "message": "...", "error": "NotAvailableError"}

``error`` (the exception class name) is only filled in development.
The ``data`` payloads are the models below; FastAPI renders them in the
OpenAPI docs at ``/docs``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from src.models.video import Video


class ApiResponse(BaseModel):
    """Success envelope shared by every JSON endpoint."""

    success: bool = True
    message: str = ""
    data: Any = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Failure envelope returned by the error middleware and handlers."""

    success: bool = False
    message: str
    error: str | None = Field(default=None, description="Exception class name (development only)")


class CacheStatsResponse(BaseModel):
    """Audio cache counters reported by the health endpoint."""

    entries: int = 0
    states: dict[str, int] = Field(default_factory=dict)
    pipelines_started: int = 0
    pipelines_failed: int = 0
    pipelines_running: int = 0
    sweeper_running: bool = False


class HealthResponse(BaseModel):
    """Payload of ``GET /api/v1/health``."""

    status: str
    version: str
    environment: str
    cache: CacheStatsResponse


class SearchResponse(BaseModel):
    """Payload of ``GET /api/v1/music/search``."""

    query: str
    results: list[Video] = Field(default_factory=list)


class PredownloadResponse(BaseModel):
    """Payload of ``POST /api/v1/music/predownload/{video_id}``."""

    video_id: str
    started: bool
    state: str


class CacheStatusResponse(BaseModel):
    """Payload of ``GET /api/v1/music/status/{video_id}``."""

    video_id: str
    known: bool
    ready: bool
    state: str | None = None
    bytes_written: int = Field(default=0, ge=0)
    active_readers: int = Field(default=0, ge=0)


class WhitelistResponse(BaseModel):
    """Payload of ``POST /api/v1/music/whitelist/{video_id}``."""

    video_id: str
    whitelisted: int = Field(description="Number of ids currently allowed on the live route")
