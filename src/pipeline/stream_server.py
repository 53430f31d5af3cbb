"""Streams cached audio to clients, finished or still growing.

The stream server never starts a download; it only attaches readers to
entries that ``AcquisitionCoordinator.acquire`` already created.

    entry READY          ─→ plain sequential read of the artifact
    entry PENDING/WRITING ─→ follow the entry's GrowingSink
    entry FAILED/absent  ─→ NotAvailableError, immediately

Each :class:`StreamSession` is independent.  Closing one (for example
because the HTTP client went away) closes only its own file handle; the
pipeline task and other sessions keep going.
"""

from __future__ import annotations

from contextlib import aclosing
from typing import AsyncIterator, Awaitable, Callable

import structlog

from src.interfaces.artifact_store import IArtifactStore
from src.models.cache import CacheEntry, CacheState
from src.pipeline.cache_index import CacheIndex
from src.pipeline.growing_sink import DEFAULT_CHUNK_SIZE
from src.utils.errors import NotAvailableError
from src.utils.logging import get_logger

ByteSink = Callable[[bytes], Awaitable[None]]


class StreamSession:
    """One client's read of one cache entry.

    Iterate it (``async for chunk in session``) exactly once.  The entry's
    ``active_readers`` count includes this session from the first chunk
    request until iteration ends or :meth:`aclose` is called.
    """

    def __init__(
        self,
        entry: CacheEntry,
        source: Callable[[], AsyncIterator[bytes]],
        content_length: int | None,
        logger: structlog.BoundLogger,
    ) -> None:
        self._entry = entry
        self._source = source
        self._content_length = content_length
        self._logger = logger
        self._bytes_sent = 0
        self._gen = self._iterate()

    @property
    def key(self) -> str:
        return self._entry.key

    @property
    def entry(self) -> CacheEntry:
        return self._entry

    @property
    def content_length(self) -> int | None:
        """Total size when the artifact was already complete at open time."""
        return self._content_length

    @property
    def bytes_sent(self) -> int:
        return self._bytes_sent

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._gen

    async def aclose(self) -> None:
        await self._gen.aclose()

    async def _iterate(self) -> AsyncIterator[bytes]:
        self._entry.active_readers += 1
        completed = False
        try:
            async with aclosing(self._source()) as chunks:
                async for chunk in chunks:
                    self._bytes_sent += len(chunk)
                    yield chunk
            completed = True
        finally:
            self._entry.active_readers -= 1
            self._logger.debug(
                "stream_session_closed",
                key=self._entry.key,
                bytes_sent=self._bytes_sent,
                completed=completed,
            )


class StreamServer:
    """Attach readers to cache entries.

    Parameters
    ----------
    index:
        The shared cache index.
    store:
        Artifact store the entries' files live in.
    chunk_size:
        Chunk size for sequential reads of finished artifacts.
    """

    def __init__(
        self,
        index: CacheIndex,
        store: IArtifactStore,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._index = index
        self._store = store
        self._chunk_size = chunk_size
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def open(self, key: str, offset: int = 0) -> StreamSession:
        """Open a session for *key* without reading anything yet.

        Raises
        ------
        NotAvailableError
            If *key* has no entry or its entry has failed.
        """
        entry = self._index.get(key)
        if entry is None or entry.state is CacheState.FAILED:
            raise NotAvailableError(f"no cached audio for {key!r}; acquire it first")

        if entry.state is CacheState.READY:
            try:
                size = await self._store.size(entry.artifact_name)
            except FileNotFoundError as exc:
                raise NotAvailableError(f"cached audio for {key!r} is gone") from exc
            if offset < 0 or offset > size:
                raise ValueError(f"offset {offset} outside artifact size {size}")

            def source() -> AsyncIterator[bytes]:
                return self._read_complete(entry, offset)

            self._logger.debug("stream_session_opened", key=key, mode="complete", size=size)
            return StreamSession(entry, source, size - offset, self._logger)

        sink = entry.sink
        if sink is None:
            raise NotAvailableError(f"cached audio for {key!r} has no writer")

        def follow() -> AsyncIterator[bytes]:
            return sink.read_chunks(offset)

        self._logger.debug(
            "stream_session_opened",
            key=key,
            mode="growing",
            bytes_written=sink.bytes_written,
        )
        return StreamSession(entry, follow, None, self._logger)

    async def stream(self, key: str, sink: ByteSink) -> int:
        """Copy the audio for *key* into *sink*; return the byte count.

        Raises whatever the session raises: ``NotAvailableError``,
        ``ReadTimeoutError`` or the pipeline's ``PipelineFailedError``.
        """
        session = await self.open(key)
        try:
            async for chunk in session:
                await sink(chunk)
        finally:
            await session.aclose()
        return session.bytes_sent

    async def _read_complete(self, entry: CacheEntry, offset: int) -> AsyncIterator[bytes]:
        try:
            async with self._store.open_read(entry.artifact_name) as handle:
                if offset:
                    await handle.seek(offset)
                while chunk := await handle.read(self._chunk_size):
                    yield chunk
        except FileNotFoundError as exc:
            raise NotAvailableError(f"cached audio for {entry.key!r} is gone") from exc
