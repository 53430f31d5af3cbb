"""Shared pytest fixtures for the songstream test suite."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Callable

import pytest

from src.interfaces.source_fetcher import ISourceFetcher
from src.interfaces.transcoder import ITranscoder
from src.pipeline.cache_index import CacheIndex
from src.pipeline.coordinator import AcquisitionCoordinator
from src.pipeline.stream_server import StreamServer
from src.providers.storage.file_store import FileArtifactStore
from src.utils.errors import FetchError, TransformError

# Real-looking 11-character video ids.
VIDEO_ID = "dQw4w9WgXcQ"
OTHER_VIDEO_ID = "9bZkp7q19f0"


# ---------------------------------------------------------------------------
# Fake providers
# ---------------------------------------------------------------------------


class FakeFetcher(ISourceFetcher):
    """Scriptable source: yields ``chunks`` for every key.

    ``gate`` (when set) blocks after the first chunk until the test opens
    it, which keeps an entry in WRITING for as long as a test needs.
    ``fail_keys`` maps a key to the number of chunks delivered before a
    ``FetchError``.
    """

    def __init__(
        self,
        chunks: list[bytes] | None = None,
        *,
        delay: float = 0.0,
        gate: asyncio.Event | None = None,
        fail_keys: dict[str, int] | None = None,
    ) -> None:
        self.chunks = chunks if chunks is not None else [b"chunk-%d|" % i for i in range(5)]
        self.delay = delay
        self.gate = gate
        self.fail_keys = dict(fail_keys or {})
        self.calls: list[str] = []

    def get_provider_name(self) -> str:
        return "fake-fetcher"

    async def fetch(self, key: str) -> AsyncIterator[bytes]:
        self.calls.append(key)
        fail_after = self.fail_keys.get(key)
        for i, chunk in enumerate(self.chunks):
            if fail_after is not None and i >= fail_after:
                raise FetchError(f"source for {key} went away", provider_name="fake-fetcher")
            if i == 1 and self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            yield chunk
        if fail_after is not None and fail_after >= len(self.chunks):
            raise FetchError(f"source for {key} went away", provider_name="fake-fetcher")


class PassthroughTranscoder(ITranscoder):
    """Re-emits its input unchanged; optionally fails after N chunks."""

    def __init__(self, fail_after: int | None = None) -> None:
        self.fail_after = fail_after
        self.calls = 0

    def get_provider_name(self) -> str:
        return "passthrough"

    async def transform(self, source: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        self.calls += 1
        emitted = 0
        async for chunk in source:
            if self.fail_after is not None and emitted >= self.fail_after:
                raise TransformError("encoder crashed", provider_name="passthrough")
            emitted += 1
            yield chunk


# ---------------------------------------------------------------------------
# Cache component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache" / "mp3"


@pytest.fixture
def store(cache_dir: Path) -> FileArtifactStore:
    return FileArtifactStore(cache_dir)


@pytest.fixture
def index() -> CacheIndex:
    return CacheIndex()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def transcoder() -> PassthroughTranscoder:
    return PassthroughTranscoder()


@pytest.fixture
def make_coordinator(
    index: CacheIndex, store: FileArtifactStore
) -> Callable[..., AcquisitionCoordinator]:
    """Factory building a coordinator with fast sink timings."""

    def _make(
        fetcher: ISourceFetcher,
        transcoder: ITranscoder | None = None,
        *,
        read_timeout: float = 2.0,
    ) -> AcquisitionCoordinator:
        return AcquisitionCoordinator(
            index,
            store,
            fetcher,
            transcoder or PassthroughTranscoder(),
            poll_interval=0.01,
            read_timeout=read_timeout,
            chunk_size=4,
        )

    return _make


@pytest.fixture
def stream_server(index: CacheIndex, store: FileArtifactStore) -> StreamServer:
    return StreamServer(index, store, chunk_size=4)


async def collect(chunks: AsyncIterator[bytes]) -> bytes:
    """Concatenate everything an async byte iterator yields."""
    out = bytearray()
    async for chunk in chunks:
        out.extend(chunk)
    return bytes(out)
