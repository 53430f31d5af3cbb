"""Integration tests for FastAPI API endpoints using TestClient.

The cache core is real (index, coordinator, stream server, file store in a
temp dir); only the YouTube fetcher and ffmpeg are replaced by fakes.
"""

from __future__ import annotations

import hashlib
import time
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.api.middleware import (
    ApiKeyMiddleware,
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
    install_exception_handlers,
)
from src.api.routes import router as api_router
from src.config.settings import Settings
from src.interfaces.metadata_provider import IMetadataProvider
from src.models.video import Video
from src.pipeline.cache_index import CacheIndex
from src.pipeline.coordinator import AcquisitionCoordinator
from src.pipeline.eviction import EvictionSweeper
from src.pipeline.stream_server import StreamServer
from src.providers.storage.file_store import FileArtifactStore
from src.utils.errors import FetchError, MetadataError
from tests.conftest import OTHER_VIDEO_ID, VIDEO_ID, FakeFetcher, PassthroughTranscoder

EXPECTED = b"".join(b"chunk-%d|" % i for i in range(5))
PREFIX = "/api/v1"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _create_test_app(
    cache_dir: Path,
    *,
    api_key: str = "",
    fetcher: FakeFetcher | None = None,
    metadata: IMetadataProvider | None = None,
) -> FastAPI:
    """Create a FastAPI app wired to a real cache core and fake providers."""
    settings = Settings(_env_file=None, api_key=api_key, app_env="development")
    app = FastAPI()
    app.add_middleware(ApiKeyMiddleware, api_key=api_key, exempt_paths=(f"{PREFIX}/status",))
    app.add_middleware(ErrorHandlingMiddleware, expose_error_type=True)
    app.add_middleware(RequestLoggingMiddleware)
    configure_cors(app, allowed_origins=["*"])
    install_exception_handlers(app)
    app.include_router(api_router)

    store = FileArtifactStore(cache_dir)
    index = CacheIndex()
    fetcher = fetcher or FakeFetcher()
    transcoder = PassthroughTranscoder()
    app.state.settings = settings
    app.state.fetcher = fetcher
    app.state.transcoder = transcoder
    app.state.coordinator = AcquisitionCoordinator(
        index, store, fetcher, transcoder, poll_interval=0.01, read_timeout=2.0, chunk_size=4
    )
    app.state.stream_server = StreamServer(index, store, chunk_size=4)
    app.state.sweeper = EvictionSweeper(index, store)
    app.state.metadata_provider = metadata or MagicMock(spec=IMetadataProvider)
    app.state.live_whitelist = set()
    return app


def _wait_ready(client: TestClient, video_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        data = client.get(f"{PREFIX}/music/status/{video_id}").json()["data"]
        if data["ready"]:
            return data
        time.sleep(0.01)
    raise AssertionError(f"{video_id} never became ready")


@pytest.fixture()
def client(cache_dir: Path):
    with TestClient(_create_test_app(cache_dir)) as test_client:
        yield test_client


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


class TestSystemEndpoints:
    def test_status(self, client: TestClient) -> None:
        response = client.get(f"{PREFIX}/status")
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "", "data": {}}

    def test_health_reports_cache(self, client: TestClient) -> None:
        response = client.get(f"{PREFIX}/health")
        data = response.json()["data"]
        assert data["status"] == "healthy"
        assert data["environment"] == "development"
        assert data["cache"]["entries"] == 0
        assert data["cache"]["sweeper_running"] is False

    def test_unknown_route(self, client: TestClient) -> None:
        response = client.get(f"{PREFIX}/nothing-here")
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Not Found"}


# ---------------------------------------------------------------------------
# Cache endpoints
# ---------------------------------------------------------------------------


class TestPredownloadAndStatus:
    def test_predownload_messages(self, client: TestClient) -> None:
        first = client.post(f"{PREFIX}/music/predownload/{VIDEO_ID}")
        assert first.status_code == 200
        assert first.json()["message"] == "The requested song is now being downloaded"
        assert first.json()["data"]["started"] is True

        status = _wait_ready(client, VIDEO_ID)
        assert status["state"] == "READY"
        assert status["bytes_written"] == len(EXPECTED)

        again = client.post(f"{PREFIX}/music/predownload/{VIDEO_ID}")
        assert again.json()["message"] == "The requested song is already in cache"
        assert again.json()["data"] == {"video_id": VIDEO_ID, "started": False, "state": "READY"}

    def test_status_of_unknown_song(self, client: TestClient) -> None:
        data = client.get(f"{PREFIX}/music/status/{VIDEO_ID}").json()["data"]
        assert data["known"] is False
        assert data["state"] is None

    @pytest.mark.parametrize("bad_id", ["short", "dQw4w9WgXcQQ", "dQw4w9WgX.Q"])
    def test_invalid_video_id(self, client: TestClient, bad_id: str) -> None:
        response = client.post(f"{PREFIX}/music/predownload/{bad_id}")
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid parameter 'videoId' provided"


class TestStream:
    def test_stream_starts_pipeline_and_returns_audio(self, client: TestClient) -> None:
        response = client.get(f"{PREFIX}/music/stream/{VIDEO_ID}")

        assert response.status_code == 200
        assert response.content == EXPECTED
        assert response.headers["content-type"] == "audio/mpeg"
        artifact = hashlib.md5(VIDEO_ID.encode()).hexdigest() + ".mp3"
        assert artifact in response.headers["content-disposition"]

    def test_stream_of_cached_song_has_length(self, client: TestClient) -> None:
        client.post(f"{PREFIX}/music/predownload/{VIDEO_ID}")
        _wait_ready(client, VIDEO_ID)

        response = client.get(f"{PREFIX}/music/stream/{VIDEO_ID}")

        assert response.content == EXPECTED
        assert response.headers["content-length"] == str(len(EXPECTED))

    def test_upstream_failure_maps_to_502(self, cache_dir: Path) -> None:
        app = _create_test_app(cache_dir, fetcher=FakeFetcher(fail_keys={OTHER_VIDEO_ID: 0}))
        with TestClient(app) as client:
            response = client.get(f"{PREFIX}/music/stream/{OTHER_VIDEO_ID}")
            status = client.get(f"{PREFIX}/music/status/{OTHER_VIDEO_ID}").json()["data"]

        assert response.status_code == 502
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "FetchError"
        assert "went away" in body["message"]
        assert status["known"] is False

    def test_failure_after_first_bytes_breaks_the_response(self, cache_dir: Path) -> None:
        fetcher = FakeFetcher(fail_keys={OTHER_VIDEO_ID: 3}, delay=0.05)
        app = _create_test_app(cache_dir, fetcher=fetcher)

        with TestClient(app) as client:
            with pytest.raises(Exception) as exc_info:
                client.get(f"{PREFIX}/music/stream/{OTHER_VIDEO_ID}")
            status = client.get(f"{PREFIX}/music/status/{OTHER_VIDEO_ID}").json()["data"]

        assert _find_error(exc_info.value, FetchError) is not None
        assert status["known"] is False


def _find_error(exc: BaseException, error_type: type[BaseException]) -> BaseException | None:
    """Locate *error_type* in *exc*, looking inside exception groups."""
    if isinstance(exc, error_type):
        return exc
    for inner in getattr(exc, "exceptions", ()):
        found = _find_error(inner, error_type)
        if found is not None:
            return found
    return None


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class TestSearch:
    def _app_with_results(self, cache_dir: Path, **search_kwargs) -> tuple[FastAPI, MagicMock]:
        metadata = MagicMock(spec=IMetadataProvider)
        metadata.search = AsyncMock(**search_kwargs)
        return _create_test_app(cache_dir, metadata=metadata), metadata

    def test_search_returns_videos(self, cache_dir: Path) -> None:
        video = Video(id=VIDEO_ID, title="Never Gonna Give You Up", artist="Rick Astley", duration=213)
        app, metadata = self._app_with_results(cache_dir, return_value=[video])
        with TestClient(app) as client:
            response = client.get(f"{PREFIX}/music/search", params={"q": "rick", "maxResults": 5})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Retrieved search result"
        assert body["data"]["results"][0]["id"] == VIDEO_ID
        metadata.search.assert_awaited_once_with("rick", 5)

    def test_search_uses_default_page_size(self, cache_dir: Path) -> None:
        app, metadata = self._app_with_results(cache_dir, return_value=[])
        with TestClient(app) as client:
            client.get(f"{PREFIX}/music/search", params={"q": "rick"})
        metadata.search.assert_awaited_once_with("rick", 21)

    def test_missing_query(self, client: TestClient) -> None:
        response = client.get(f"{PREFIX}/music/search")
        assert response.status_code == 400
        assert response.json()["message"] == "Required parameter 'q' missing"

    def test_page_size_out_of_range(self, client: TestClient) -> None:
        response = client.get(f"{PREFIX}/music/search", params={"q": "rick", "maxResults": 500})
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid parameter 'maxResults'"

    def test_metadata_failure_maps_to_502(self, cache_dir: Path) -> None:
        app, _ = self._app_with_results(cache_dir, side_effect=MetadataError("quota exceeded"))
        with TestClient(app) as client:
            response = client.get(f"{PREFIX}/music/search", params={"q": "rick"})
        assert response.status_code == 502
        assert response.json()["message"] == "quota exceeded"


# ---------------------------------------------------------------------------
# Live route
# ---------------------------------------------------------------------------


class TestLive:
    def test_live_requires_whitelist(self, client: TestClient) -> None:
        response = client.get(f"{PREFIX}/music/live/{VIDEO_ID}")
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid request"

    def test_whitelisted_song_streams_uncached(self, client: TestClient) -> None:
        allowed = client.post(f"{PREFIX}/music/whitelist/{VIDEO_ID}")
        assert allowed.json()["message"] == "Video whitelisted"
        assert allowed.json()["data"]["whitelisted"] == 1

        response = client.get(f"{PREFIX}/music/live/{VIDEO_ID}")

        assert response.status_code == 200
        assert response.content == EXPECTED
        status = client.get(f"{PREFIX}/music/status/{VIDEO_ID}").json()["data"]
        assert status["known"] is False


# ---------------------------------------------------------------------------
# API key
# ---------------------------------------------------------------------------


class TestApiKey:
    @pytest.fixture()
    def secured(self, cache_dir: Path):
        with TestClient(_create_test_app(cache_dir, api_key="s3cret")) as test_client:
            yield test_client

    def test_missing_key_rejected(self, secured: TestClient) -> None:
        response = secured.get(f"{PREFIX}/music/status/{VIDEO_ID}")
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid api key"

    def test_wrong_key_rejected(self, secured: TestClient) -> None:
        response = secured.get(f"{PREFIX}/music/status/{VIDEO_ID}", params={"key": "nope"})
        assert response.status_code == 401

    def test_correct_key_accepted(self, secured: TestClient) -> None:
        response = secured.get(f"{PREFIX}/music/status/{VIDEO_ID}", params={"key": "s3cret"})
        assert response.status_code == 200

    def test_status_is_public(self, secured: TestClient) -> None:
        assert secured.get(f"{PREFIX}/status").status_code == 200
