"""yt-dlp source fetcher implementing ISourceFetcher.

yt-dlp resolves a YouTube video id to a direct audio URL (no download);
the bytes are then streamed with the shared ``httpx.AsyncClient`` so the
first chunks reach the transcoder while the rest is still in flight.
Extraction is blocking, so it runs in a worker thread.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

import httpx
import yt_dlp
from yt_dlp.utils import DownloadError

from src.interfaces.source_fetcher import ISourceFetcher
from src.utils.errors import FetchError
from src.utils.logging import get_logger

_WATCH_URL = "https://www.youtube.com/watch?v={key}"
_DEFAULT_FORMAT = "bestaudio/best"


class YtDlpSourceFetcher(ISourceFetcher):
    """Fetch the best available audio stream for a YouTube video id.

    The ``httpx.AsyncClient`` is injected for testability and shared with
    the rest of the application.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        chunk_size: int = 64 * 1024,
        format_selector: str = _DEFAULT_FORMAT,
    ) -> None:
        self._http = http_client
        self._chunk_size = chunk_size
        self._format = format_selector
        self._logger = get_logger(__name__)

    def get_provider_name(self) -> str:
        return "yt-dlp"

    # -- Sync helpers (executed via asyncio.to_thread) -------------------------

    def _extract_sync(self, key: str) -> dict[str, Any]:
        """Resolve *key* to yt-dlp's info dict without downloading."""
        ydl_opts = {
            "format": self._format,
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
        }
        try:
            with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                info = ydl.extract_info(_WATCH_URL.format(key=key), download=False)
        except DownloadError as exc:
            raise FetchError(
                f"could not resolve {key}: {exc}", provider_name=self.get_provider_name()
            ) from exc
        if not info:
            raise FetchError(f"no info extracted for {key}", provider_name=self.get_provider_name())
        return info

    @staticmethod
    def _pick_stream_url(info: dict[str, Any]) -> str | None:
        """Selected format URL, else the highest-bitrate audio-only format."""
        url = info.get("url")
        if url:
            return url
        audio_formats = [
            f for f in info.get("formats") or []
            if f.get("url") and f.get("acodec") != "none" and f.get("vcodec") in ("none", None)
        ]
        if not audio_formats:
            return None
        audio_formats.sort(key=lambda f: f.get("abr") or 0, reverse=True)
        return audio_formats[0]["url"]

    # -- ISourceFetcher implementation -----------------------------------------

    async def fetch(self, key: str) -> AsyncIterator[bytes]:
        info = await asyncio.to_thread(self._extract_sync, key)
        stream_url = self._pick_stream_url(info)
        if not stream_url:
            raise FetchError(
                f"no audio stream found for {key}", provider_name=self.get_provider_name()
            )

        headers = dict(info.get("http_headers") or {})
        self._logger.info(
            "source_resolved",
            key=key,
            title=info.get("title", ""),
            acodec=info.get("acodec", ""),
            abr=info.get("abr"),
        )

        received = 0
        try:
            async with self._http.stream(
                "GET", stream_url, headers=headers, follow_redirects=True
            ) as response:
                if response.status_code >= 400:
                    raise FetchError(
                        f"upstream returned HTTP {response.status_code} for {key}",
                        provider_name=self.get_provider_name(),
                    )
                async for chunk in response.aiter_bytes(chunk_size=self._chunk_size):
                    received += len(chunk)
                    yield chunk
        except httpx.HTTPError as exc:
            raise FetchError(
                f"download of {key} broke after {received} bytes: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        self._logger.debug("source_downloaded", key=key, bytes=received)
