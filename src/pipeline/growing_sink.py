"""Append-only artifact that can be read while it is still being written.

One :class:`GrowingSink` belongs to one cache entry.  The pipeline is its
only writer; any number of stream sessions read it concurrently, each
through its own file handle.

# ─── HOW READERS FOLLOW THE WRITER ────────────────────────────────────
#
#   writer:  append(chunk) ─→ write + flush ─→ bytes_written += n ─→ pulse
#   reader:  read up to bytes_written ─→ at the end? wait for a pulse
#            (or the poll interval) ─→ re-check
#
# ``bytes_written`` only advances after the flush, so a reader bounded by
# it can never see bytes that are not yet in the file.  The growth pulse
# is an asyncio.Event that is set and then replaced on every append and
# on termination; readers also re-check every ``poll_interval`` seconds
# so a missed pulse costs at most one interval.  A reader that sees no
# growth for ``read_timeout`` seconds gives up with ReadTimeoutError.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from typing import Any, AsyncIterator

import structlog

from src.interfaces.artifact_store import IArtifactStore
from src.utils.errors import (
    InvalidStateTransition,
    NotAvailableError,
    PipelineFailedError,
    ReadTimeoutError,
)
from src.utils.logging import get_logger

DEFAULT_POLL_INTERVAL = 0.1
DEFAULT_READ_TIMEOUT = 10.0
DEFAULT_CHUNK_SIZE = 64 * 1024


class GrowingSink:
    """Single-writer, multi-reader growing file.

    Parameters
    ----------
    store:
        Artifact store holding the backing file.
    artifact_name:
        Name of the backing file inside *store*.
    poll_interval:
        Upper bound, in seconds, on how long a waiting reader sleeps before
        re-checking for growth.
    read_timeout:
        Seconds without growth after which a reader raises
        :class:`ReadTimeoutError`.
    chunk_size:
        Maximum size of each chunk handed to readers.
    """

    def __init__(
        self,
        store: IArtifactStore,
        artifact_name: str,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._store = store
        self._name = artifact_name
        self._poll_interval = poll_interval
        self._read_timeout = read_timeout
        self._chunk_size = chunk_size

        self._bytes_written = 0
        self._terminated = False
        self._error: PipelineFailedError | None = None
        self._growth = asyncio.Event()

        self._writer_stack: AsyncExitStack | None = None
        self._file: Any = None
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def artifact_name(self) -> str:
        return self._name

    @property
    def bytes_written(self) -> int:
        return self._bytes_written

    @property
    def terminated(self) -> bool:
        return self._terminated

    @property
    def error(self) -> PipelineFailedError | None:
        return self._error

    @property
    def succeeded(self) -> bool:
        return self._terminated and self._error is None

    def _pulse(self) -> None:
        self._growth.set()
        self._growth = asyncio.Event()

    # ------------------------------------------------------------------
    # Writer side (pipeline only)
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Create the (empty) backing file and open it for appending."""
        if self._writer_stack is not None or self._terminated:
            raise InvalidStateTransition(f"sink {self._name} already opened")
        await self._store.create(self._name)
        stack = AsyncExitStack()
        self._file = await stack.enter_async_context(self._store.open_append(self._name))
        self._writer_stack = stack

    async def append(self, chunk: bytes) -> None:
        """Append *chunk* and make it visible to readers."""
        if self._terminated:
            raise InvalidStateTransition(f"sink {self._name} is already terminated")
        if self._file is None:
            raise InvalidStateTransition(f"sink {self._name} is not open")
        if not chunk:
            return
        await self._file.write(chunk)
        await self._file.flush()
        self._bytes_written += len(chunk)
        self._pulse()

    async def finish(self) -> None:
        """Terminate successfully; readers drain the rest and stop."""
        if self._terminated:
            raise InvalidStateTransition(f"sink {self._name} is already terminated")
        await self._close_writer()
        self._terminated = True
        self._pulse()

    async def fail(self, error: PipelineFailedError) -> None:
        """Terminate with *error*; every attached reader raises it."""
        if self._terminated:
            return
        self._error = error
        self._terminated = True
        self._pulse()
        try:
            await self._close_writer()
        except OSError as exc:
            self._logger.warning("sink_close_failed", artifact=self._name, error=str(exc))

    async def _close_writer(self) -> None:
        stack, self._writer_stack, self._file = self._writer_stack, None, None
        if stack is not None:
            await stack.aclose()

    # ------------------------------------------------------------------
    # Reader side
    # ------------------------------------------------------------------

    async def read_chunks(self, offset: int = 0) -> AsyncIterator[bytes]:
        """Yield the artifact from *offset*, following the writer.

        Ends when the sink terminated successfully and everything written
        has been delivered.  Raises the pipeline error on failure, or
        :class:`ReadTimeoutError` if the writer stalls.
        """
        if offset < 0 or offset > self._bytes_written:
            raise ValueError(
                f"offset {offset} outside written range 0..{self._bytes_written}"
            )

        loop = asyncio.get_running_loop()
        position = offset
        last_growth = loop.time()

        async with AsyncExitStack() as stack:
            handle: Any = None
            while True:
                if self._error is not None:
                    raise self._error

                available = self._bytes_written - position
                if available > 0:
                    if handle is None:
                        # Opened lazily: the file may not exist until the
                        # writer's first append.
                        try:
                            handle = await stack.enter_async_context(
                                self._store.open_read(self._name)
                            )
                        except FileNotFoundError as exc:
                            raise NotAvailableError(
                                f"artifact {self._name} is gone while being written"
                            ) from exc
                        await handle.seek(position)
                    data = await handle.read(min(available, self._chunk_size))
                    if data:
                        position += len(data)
                        yield data
                        last_growth = loop.time()
                        continue
                elif self._terminated:
                    return

                if loop.time() - last_growth >= self._read_timeout:
                    raise ReadTimeoutError(
                        f"no new data for {self._name} within {self._read_timeout:.1f}s "
                        f"(read {position} of {self._bytes_written} bytes)"
                    )

                growth = self._growth
                try:
                    await asyncio.wait_for(growth.wait(), self._poll_interval)
                except asyncio.TimeoutError:
                    pass
