"""Catalog models returned by the metadata search.

Pydantic v2 models with frozen config.  ``Video`` is what the search
endpoint returns; its ``stream_url`` points at this service's own cached
stream route so a client can play a result directly.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Thumbnail(BaseModel):
    """One thumbnail rendition of a video (``default``, ``medium``, ``high``)."""

    model_config = ConfigDict(frozen=True)

    type: str
    url: str
    width: int | None = None
    height: int | None = None


class Video(BaseModel):
    """A search result from the YouTube catalog."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    artist: str = ""
    # Seconds; 0 when the duration lookup failed.
    duration: float = Field(default=0.0, ge=0.0)
    thumbnails: list[Thumbnail] = Field(default_factory=list)
    stream_url: str = ""
