"""Construction of the audio cache core and its providers.

Shared by ``src/main.py`` (web server) and ``src/cli/cache.py`` (one-shot
commands).  Importing this module has no side effects: no settings are
read and logging is left as the caller configured it.
"""

from __future__ import annotations

from typing import Any

import httpx

from src.config.settings import Settings
from src.pipeline.cache_index import CacheIndex
from src.pipeline.coordinator import ARTIFACT_SUFFIX, AcquisitionCoordinator
from src.pipeline.eviction import EvictionSweeper
from src.pipeline.stream_server import StreamServer
from src.providers.fetcher.ytdlp_fetcher import YtDlpSourceFetcher
from src.providers.storage.file_store import FileArtifactStore
from src.providers.transcoder.ffmpeg_transcoder import FFmpegTranscoder
from src.utils.logging import get_logger


def build_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0))


def build_cache(app_settings: Settings, http_client: httpx.AsyncClient) -> dict[str, Any]:
    """Construct the audio cache core and the providers it drives.

    The one ``CacheIndex`` built here is shared by the coordinator, the
    stream server and the sweeper.
    """
    store = FileArtifactStore(app_settings.cache_dir, suffix=ARTIFACT_SUFFIX)
    index = CacheIndex()

    fetcher = YtDlpSourceFetcher(http_client, chunk_size=app_settings.stream_chunk_size)
    transcoder = FFmpegTranscoder(
        ffmpeg_path=app_settings.ffmpeg_path,
        bitrate=app_settings.audio_bitrate,
        chunk_size=app_settings.stream_chunk_size,
    )

    coordinator = AcquisitionCoordinator(
        index,
        store,
        fetcher,
        transcoder,
        poll_interval=app_settings.stream_poll_interval,
        read_timeout=app_settings.stream_read_timeout,
        chunk_size=app_settings.stream_chunk_size,
    )
    stream_server = StreamServer(index, store, chunk_size=app_settings.stream_chunk_size)
    sweeper = EvictionSweeper(
        index,
        store,
        ttl_seconds=app_settings.cache_ttl_seconds,
        interval_seconds=app_settings.sweep_interval_seconds,
    )

    if not transcoder.is_available():
        get_logger(__name__).warning("ffmpeg_not_found", ffmpeg_path=app_settings.ffmpeg_path)

    return {
        "index": index,
        "store": store,
        "fetcher": fetcher,
        "transcoder": transcoder,
        "coordinator": coordinator,
        "stream_server": stream_server,
        "sweeper": sweeper,
    }
