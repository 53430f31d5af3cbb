"""YouTube Data API v3 provider implementing IMetadataProvider.

Search goes through ``/youtube/v3/search``; the search payload carries no
durations, so each hit is followed by a ``/youtube/v3/videos`` lookup
(``part=contentDetails``), run concurrently through ``throttled_gather``.
Search pages are memoised in the injected ICacheProvider because every
search call costs 100 quota units.

Existence checks use the keyless oEmbed endpoint: 200 means the video is
public and embeddable.
"""

from __future__ import annotations

import html
import re
from typing import Any

import httpx

from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.metadata_provider import IMetadataProvider
from src.models.video import Thumbnail, Video
from src.utils.concurrency import throttled_gather
from src.utils.errors import MetadataError
from src.utils.logging import get_logger

_API_BASE = "https://www.googleapis.com/youtube/v3"
_OEMBED_URL = "https://www.youtube.com/oembed"
_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
_DEFAULT_MAX_RESULTS = 21
_DEFAULT_SEARCH_TTL = 900

# PnDTnHnMnS; YouTube never sends years or months for videos.
_ISO_DURATION = re.compile(
    r"^P(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$"
)


def parse_iso8601_duration(value: str | None) -> float:
    """Convert an ISO-8601 duration such as ``PT4M13S`` to seconds.

    Returns ``0.0`` for missing values and for ``P0D`` (live streams).
    Raises ``ValueError`` for anything that is not a duration.
    """
    if not value:
        return 0.0
    match = _ISO_DURATION.match(value)
    if match is None or value in ("P", "PT"):
        raise ValueError(f"not an ISO-8601 duration: {value!r}")
    parts = {name: float(amount) for name, amount in match.groupdict().items() if amount}
    return (
        parts.get("days", 0.0) * 86400
        + parts.get("hours", 0.0) * 3600
        + parts.get("minutes", 0.0) * 60
        + parts.get("seconds", 0.0)
    )


class YouTubeDataProvider(IMetadataProvider):
    """Metadata provider backed by the YouTube Data API v3.

    Parameters
    ----------
    http_client:
        Shared ``httpx.AsyncClient``, injected for testability.
    api_key:
        YouTube Data API key.
    stream_url_base:
        Public base URL of this service; each result's ``stream_url`` is
        ``{stream_url_base}/api/v1/music/stream/{id}``.
    cache:
        Optional cache for search pages.
    search_ttl:
        Seconds a cached search page stays valid.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        stream_url_base: str = "",
        cache: ICacheProvider | None = None,
        search_ttl: int = _DEFAULT_SEARCH_TTL,
    ) -> None:
        self._http = http_client
        self._api_key = api_key
        self._stream_url_base = stream_url_base.rstrip("/")
        self._cache = cache
        self._search_ttl = search_ttl
        self._logger = get_logger(__name__)

    def get_provider_name(self) -> str:
        return "youtube_data"

    # -- Private helpers -------------------------------------------------------

    async def _get_json(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._http.get(
                f"{_API_BASE}/{endpoint}", params={**params, "key": self._api_key}
            )
        except httpx.HTTPError as exc:
            raise MetadataError(
                f"request to {endpoint} failed: {exc}", provider_name=self.get_provider_name()
            ) from exc

        if response.status_code >= 400:
            # 403 is almost always an exhausted daily quota.
            raise MetadataError(
                f"{endpoint} returned HTTP {response.status_code} "
                "(this is probably due to exceeded quota on YouTube API)",
                provider_name=self.get_provider_name(),
            )
        try:
            return response.json()
        except ValueError as exc:
            raise MetadataError(
                f"{endpoint} returned invalid JSON", provider_name=self.get_provider_name()
            ) from exc

    def stream_url_for(self, video_id: str) -> str:
        return f"{self._stream_url_base}/api/v1/music/stream/{video_id}"

    @staticmethod
    def _thumbnails(snippet: dict[str, Any]) -> list[Thumbnail]:
        return [
            Thumbnail(
                type=kind,
                url=data.get("url", ""),
                width=data.get("width"),
                height=data.get("height"),
            )
            for kind, data in (snippet.get("thumbnails") or {}).items()
            if isinstance(data, dict)
        ]

    async def _cached_search(self, cache_key: str) -> list[Video] | None:
        if self._cache is None:
            return None
        try:
            cached = await self._cache.get(cache_key)
        except Exception as exc:
            self._logger.debug("search_cache_read_failed", key=cache_key, error=str(exc))
            return None
        if cached is None:
            return None
        return [Video.model_validate(item) for item in cached]

    async def _store_search(self, cache_key: str, videos: list[Video]) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set(
                cache_key, [v.model_dump() for v in videos], ttl=self._search_ttl
            )
        except Exception as exc:
            self._logger.debug("search_cache_write_failed", key=cache_key, error=str(exc))

    # -- IMetadataProvider implementation --------------------------------------

    async def search(self, query: str, max_results: int = _DEFAULT_MAX_RESULTS) -> list[Video]:
        cache_key = f"yt_search:{max_results}:{query.strip().lower()}"
        cached = await self._cached_search(cache_key)
        if cached is not None:
            self._logger.debug("youtube_search_cache_hit", query=query)
            return cached

        body = await self._get_json(
            "search",
            {"part": "snippet", "type": "video", "q": query, "maxResults": max_results},
        )

        hits: list[tuple[str, dict[str, Any]]] = []
        for item in body.get("items") or []:
            video_id = (item.get("id") or {}).get("videoId")
            if video_id:
                hits.append((video_id, item.get("snippet") or {}))

        durations = await throttled_gather([self.get_duration(vid) for vid, _ in hits])

        videos: list[Video] = []
        for (video_id, snippet), duration in zip(hits, durations):
            if isinstance(duration, BaseException):
                self._logger.warning(
                    "youtube_duration_failed", video_id=video_id, error=str(duration)
                )
                duration = 0.0
            videos.append(
                Video(
                    id=video_id,
                    title=html.unescape(snippet.get("title", "")),
                    artist=html.unescape(snippet.get("channelTitle", "")),
                    duration=duration,
                    thumbnails=self._thumbnails(snippet),
                    stream_url=self.stream_url_for(video_id),
                )
            )

        await self._store_search(cache_key, videos)
        self._logger.info("youtube_search_complete", query=query, results=len(videos))
        return videos

    async def get_duration(self, video_id: str) -> float:
        body = await self._get_json("videos", {"part": "contentDetails", "id": video_id})
        items = body.get("items") or []
        if not items:
            raise MetadataError(
                f"video {video_id} not found", provider_name=self.get_provider_name()
            )
        raw = (items[0].get("contentDetails") or {}).get("duration")
        try:
            return parse_iso8601_duration(raw)
        except ValueError as exc:
            raise MetadataError(str(exc), provider_name=self.get_provider_name()) from exc

    async def video_exists(self, video_id: str) -> bool:
        params = {"format": "json", "url": _WATCH_URL.format(video_id=video_id)}
        try:
            response = await self._http.get(_OEMBED_URL, params=params)
        except httpx.HTTPError as exc:
            raise MetadataError(
                f"error checking whether video exists: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return response.status_code == 200
