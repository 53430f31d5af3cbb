"""Unit tests for the YouTube Data API metadata provider."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.providers.cache.memory_cache import MemoryCacheProvider
from src.providers.metadata.youtube_data_provider import (
    YouTubeDataProvider,
    parse_iso8601_duration,
)
from src.utils.errors import MetadataError
from tests.conftest import OTHER_VIDEO_ID, VIDEO_ID


def _response(status_code: int = 200, payload: Any = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    return response


SEARCH_PAYLOAD = {
    "items": [
        {
            "id": {"kind": "youtube#video", "videoId": VIDEO_ID},
            "snippet": {
                "title": "Rick Astley - Never Gonna Give You Up (Official Music Video)",
                "channelTitle": "Rick Astley",
                "thumbnails": {
                    "default": {"url": "https://i.ytimg.com/vi/a/default.jpg", "width": 120, "height": 90},
                    "high": {"url": "https://i.ytimg.com/vi/a/hqdefault.jpg", "width": 480, "height": 360},
                },
            },
        },
        {
            "id": {"kind": "youtube#video", "videoId": OTHER_VIDEO_ID},
            "snippet": {"title": "PSY - GANGNAM STYLE(&#44053;&#45224;&#49828;&#53440;&#51068;)", "channelTitle": "officialpsy"},
        },
        {"id": {"kind": "youtube#channel", "channelId": "UCxyz"}, "snippet": {"title": "a channel"}},
    ]
}

DURATIONS = {VIDEO_ID: "PT3M33S", OTHER_VIDEO_ID: "PT4M13S"}


def _router(durations: dict[str, str] = DURATIONS, search_status: int = 200):
    async def get(url: str, params: dict[str, Any] | None = None) -> MagicMock:
        params = params or {}
        if url.endswith("/search"):
            return _response(search_status, SEARCH_PAYLOAD)
        if url.endswith("/videos"):
            video_id = params["id"]
            if video_id not in durations:
                return _response(200, {"items": []})
            return _response(200, {"items": [{"contentDetails": {"duration": durations[video_id]}}]})
        raise AssertionError(f"unexpected url {url}")

    return get


class TestParseIsoDuration:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("PT4M13S", 253.0),
            ("PT1H", 3600.0),
            ("PT1H2M3S", 3723.0),
            ("P1DT1S", 86401.0),
            ("PT45S", 45.0),
            ("P0D", 0.0),
            (None, 0.0),
            ("", 0.0),
        ],
    )
    def test_valid_durations(self, value: str | None, expected: float) -> None:
        assert parse_iso8601_duration(value) == expected

    @pytest.mark.parametrize("value", ["4:13", "PT", "P", "PTxS", "1H"])
    def test_invalid_durations(self, value: str) -> None:
        with pytest.raises(ValueError):
            parse_iso8601_duration(value)


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_builds_videos(self) -> None:
        client = AsyncMock()
        client.get = AsyncMock(side_effect=_router())
        provider = YouTubeDataProvider(client, api_key="k", stream_url_base="http://localhost:3000/")

        videos = await provider.search("rick astley", max_results=3)

        assert [v.id for v in videos] == [VIDEO_ID, OTHER_VIDEO_ID]
        first = videos[0]
        assert first.artist == "Rick Astley"
        assert first.duration == 213.0
        assert first.stream_url == f"http://localhost:3000/api/v1/music/stream/{VIDEO_ID}"
        assert {t.type for t in first.thumbnails} == {"default", "high"}
        assert videos[1].title == "PSY - GANGNAM STYLE(강남스타일)"

        search_call = client.get.call_args_list[0]
        assert search_call.kwargs["params"]["key"] == "k"
        assert search_call.kwargs["params"]["maxResults"] == 3
        assert search_call.kwargs["params"]["type"] == "video"

    @pytest.mark.asyncio
    async def test_failed_duration_lookup_becomes_zero(self) -> None:
        client = AsyncMock()
        client.get = AsyncMock(side_effect=_router(durations={VIDEO_ID: "PT3M33S"}))
        provider = YouTubeDataProvider(client, api_key="k")

        videos = await provider.search("q")

        assert [v.duration for v in videos] == [213.0, 0.0]

    @pytest.mark.asyncio
    async def test_quota_error_raises_metadata_error(self) -> None:
        client = AsyncMock()
        client.get = AsyncMock(side_effect=_router(search_status=403))
        provider = YouTubeDataProvider(client, api_key="k")

        with pytest.raises(MetadataError, match="quota"):
            await provider.search("q")

    @pytest.mark.asyncio
    async def test_network_error_raises_metadata_error(self) -> None:
        client = AsyncMock()
        client.get = AsyncMock(side_effect=httpx.ConnectError("refused"))
        provider = YouTubeDataProvider(client, api_key="k")

        with pytest.raises(MetadataError):
            await provider.search("q")

    @pytest.mark.asyncio
    async def test_search_pages_are_cached(self) -> None:
        client = AsyncMock()
        client.get = AsyncMock(side_effect=_router())
        provider = YouTubeDataProvider(client, api_key="k", cache=MemoryCacheProvider())

        first = await provider.search("Rick Astley")
        calls_after_first = client.get.call_count
        second = await provider.search("rick astley ")

        assert second == first
        assert client.get.call_count == calls_after_first


class TestLookups:
    @pytest.mark.asyncio
    async def test_get_duration_unknown_video(self) -> None:
        client = AsyncMock()
        client.get = AsyncMock(return_value=_response(200, {"items": []}))
        provider = YouTubeDataProvider(client, api_key="k")

        with pytest.raises(MetadataError, match="not found"):
            await provider.get_duration(VIDEO_ID)

    @pytest.mark.asyncio
    async def test_video_exists_true_on_200(self) -> None:
        client = AsyncMock()
        client.get = AsyncMock(return_value=_response(200))
        provider = YouTubeDataProvider(client, api_key="k")

        assert await provider.video_exists(VIDEO_ID) is True
        params = client.get.call_args.kwargs["params"]
        assert params["url"] == f"https://www.youtube.com/watch?v={VIDEO_ID}"

    @pytest.mark.asyncio
    async def test_video_exists_false_otherwise(self) -> None:
        client = AsyncMock()
        client.get = AsyncMock(return_value=_response(404))
        provider = YouTubeDataProvider(client, api_key="k")

        assert await provider.video_exists(VIDEO_ID) is False

    @pytest.mark.asyncio
    async def test_video_exists_network_error(self) -> None:
        client = AsyncMock()
        client.get = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        provider = YouTubeDataProvider(client, api_key="k")

        with pytest.raises(MetadataError):
            await provider.video_exists(VIDEO_ID)

    def test_provider_name(self) -> None:
        assert YouTubeDataProvider(AsyncMock(), api_key="k").get_provider_name() == "youtube_data"
