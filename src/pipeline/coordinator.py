"""Single-flight acquisition of cached audio.

``acquire(key)`` makes sure that at most one fetch → transcode → persist
pipeline runs per key at a time, and hands every caller a handle to the
same :class:`CacheEntry`.  It never waits for the pipeline itself: the
pipeline runs as a background task and publishes its end state through
the entry's completion signal and growing sink.

# ─── WHAT acquire() DOES ──────────────────────────────────────────────
#
#   no entry / FAILED entry ─→ register new entry (PENDING) under the
#                              index lock ─→ WRITING ─→ spawn pipeline task
#   WRITING / READY entry   ─→ return a handle to it, nothing started
#
# Registration happens inside CacheIndex.get_or_create (locked), and
# exactly one caller gets ``created=True``.  That caller moves the entry
# to WRITING and spawns the task with no await in between, so no other
# coroutine can observe the entry half-initialised.
#
# ─── HOW A PIPELINE ENDS ──────────────────────────────────────────────
#
#   success ─→ sink.finish() ─→ entry READY (completion signal fires)
#   failure ─→ under the index lock: entry dropped ─→ sink.fail()
#              unblocks readers ─→ artifact deleted ─→ entry FAILED
#              (signal fires).  Nobody woken by the failure can still
#              find the failed generation in the index.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import hashlib
import time
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any

import structlog

from src.interfaces.artifact_store import IArtifactStore
from src.interfaces.source_fetcher import ISourceFetcher
from src.interfaces.transcoder import ITranscoder
from src.models.cache import CacheEntry, CacheState, PipelineOutcome
from src.pipeline.cache_index import CacheIndex
from src.pipeline.growing_sink import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_READ_TIMEOUT,
    GrowingSink,
)
from src.utils.concurrency import cancel_and_wait
from src.utils.errors import PipelineFailedError, TransformError
from src.utils.logging import get_logger

ARTIFACT_SUFFIX = ".mp3"


def artifact_name_for(key: str) -> str:
    """Derived identifier of the artifact that caches *key*."""
    return hashlib.md5(key.encode("utf-8")).hexdigest() + ARTIFACT_SUFFIX


@dataclass(frozen=True)
class AcquireHandle:
    """What ``acquire`` returns: a reference to the entry for one key."""

    key: str
    entry: CacheEntry
    # True only for the caller whose acquire() started the pipeline.
    started: bool

    @property
    def state(self) -> CacheState:
        return self.entry.state

    async def wait(self, timeout: float | None = None) -> CacheEntry:
        """Suspend until the pipeline finishes; raise its error on failure."""
        return await self.entry.wait(timeout)


class AcquisitionCoordinator:
    """Deduplicating front door to the audio cache.

    Parameters
    ----------
    index:
        Shared cache index.
    store:
        Artifact store the pipelines write into.
    fetcher:
        Source of raw audio.
    transcoder:
        Re-encoder applied between fetcher and store.
    poll_interval, read_timeout, chunk_size:
        Passed to every :class:`GrowingSink` this coordinator creates.
    """

    def __init__(
        self,
        index: CacheIndex,
        store: IArtifactStore,
        fetcher: ISourceFetcher,
        transcoder: ITranscoder,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._index = index
        self._store = store
        self._fetcher = fetcher
        self._transcoder = transcoder
        self._poll_interval = poll_interval
        self._read_timeout = read_timeout
        self._chunk_size = chunk_size

        self._tasks: set[asyncio.Task[PipelineOutcome]] = set()
        self._pipelines_started = 0
        self._pipelines_failed = 0
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def acquire(self, key: str) -> AcquireHandle:
        """Return a handle for *key*, starting its pipeline if needed."""
        entry, created = await self._index.get_or_create(key, lambda: self._new_entry(key))
        if not created:
            self._logger.debug("acquire_attached", key=key, state=entry.state.value)
            return AcquireHandle(key=key, entry=entry, started=False)

        entry.mark_writing()
        task = asyncio.create_task(self._run_pipeline(entry), name=f"pipeline:{key}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._pipelines_started += 1

        self._logger.info("pipeline_started", key=key, artifact=entry.artifact_name)
        return AcquireHandle(key=key, entry=entry, started=True)

    def get_entry(self, key: str) -> CacheEntry | None:
        return self._index.get(key)

    def is_known(self, key: str) -> bool:
        """True if *key* has a live (non-failed) entry."""
        entry = self._index.get(key)
        return entry is not None and entry.state is not CacheState.FAILED

    def is_ready(self, key: str) -> bool:
        entry = self._index.get(key)
        return entry is not None and entry.state is CacheState.READY

    def stats(self) -> dict[str, Any]:
        return {
            "entries": len(self._index),
            "states": self._index.counts(),
            "pipelines_started": self._pipelines_started,
            "pipelines_failed": self._pipelines_failed,
            "pipelines_running": len(self._tasks),
        }

    async def aclose(self) -> None:
        """Cancel running pipelines (application shutdown)."""
        tasks = list(self._tasks)
        for task in tasks:
            await cancel_and_wait(task)
        if tasks:
            self._logger.info("pipelines_cancelled", count=len(tasks))

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _new_entry(self, key: str) -> CacheEntry:
        name = artifact_name_for(key)
        entry = CacheEntry(
            key=key,
            artifact_name=name,
            backing_location=self._store.path_for(name),
        )
        entry.sink = GrowingSink(
            self._store,
            name,
            poll_interval=self._poll_interval,
            read_timeout=self._read_timeout,
            chunk_size=self._chunk_size,
        )
        return entry

    async def _run_pipeline(self, entry: CacheEntry) -> PipelineOutcome:
        sink = entry.sink
        assert sink is not None
        started = time.monotonic()
        log = self._logger.bind(key=entry.key, artifact=entry.artifact_name)

        try:
            await sink.open()
            source = self._fetcher.fetch(entry.key)
            async with aclosing(self._transcoder.transform(source)) as encoded:
                async for chunk in encoded:
                    await sink.append(chunk)

            # The file can vanish under an active writer (external cleanup,
            # a racing sweep); never publish READY for a missing artifact.
            if not await self._store.exists(entry.artifact_name):
                raise PipelineFailedError(
                    f"artifact {entry.artifact_name} disappeared while writing"
                )

            await sink.finish()
            outcome = PipelineOutcome(
                key=entry.key,
                bytes_written=sink.bytes_written,
                duration_s=round(time.monotonic() - started, 3),
            )
            entry.outcome = outcome
            entry.mark_ready(sink.bytes_written)
        except asyncio.CancelledError:
            await self._fail(entry, PipelineFailedError("pipeline cancelled"))
            raise
        except PipelineFailedError as exc:
            return await self._fail(entry, exc, started=started)
        except Exception as exc:  # noqa: BLE001
            log.exception("pipeline_unexpected_error")
            error = TransformError(
                f"unexpected pipeline failure: {exc}",
                provider_name=self._transcoder.get_provider_name(),
            )
            return await self._fail(entry, error, started=started)

        log.info(
            "pipeline_ready",
            bytes_written=outcome.bytes_written,
            duration_s=outcome.duration_s,
        )
        return outcome

    async def _fail(
        self,
        entry: CacheEntry,
        error: PipelineFailedError,
        started: float | None = None,
    ) -> PipelineOutcome:
        """Discard the generation, then publish *error* to every waiter.

        The entry leaves the index before the completion signal fires, so
        no waiter can wake up and still find the failed generation.
        """
        self._pipelines_failed += 1
        outcome = PipelineOutcome(
            key=entry.key,
            bytes_written=entry.sink.bytes_written if entry.sink else 0,
            error=error,
            duration_s=round(time.monotonic() - started, 3) if started is not None else 0.0,
        )

        async with self._index.lock:
            current = self._index.get(entry.key)
            owns_artifact = current is None or current is entry
            self._index.discard_locked(entry.key, entry)
            try:
                # Attached readers raise the error from here on.
                if entry.sink is not None:
                    await entry.sink.fail(error)

                # A newer generation may already own the artifact name; its
                # own pipeline truncates the file, so leave it alone.
                if owns_artifact:
                    try:
                        await self._store.delete(entry.artifact_name)
                    except OSError as exc:
                        self._logger.warning(
                            "failed_artifact_delete_error",
                            key=entry.key,
                            artifact=entry.artifact_name,
                            error=str(exc),
                        )
            finally:
                if not entry.is_terminal:
                    entry.outcome = outcome
                    entry.mark_failed(error)

        self._logger.warning(
            "pipeline_failed",
            key=entry.key,
            error_type=type(error).__name__,
            error=str(error),
            discarded_bytes=outcome.bytes_written,
        )
        return outcome
