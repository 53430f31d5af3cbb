"""Periodic TTL eviction of cached artifacts.

The sweeper walks the artifact store, not the index: files left behind by
an earlier process (never indexed) age out exactly like indexed ones.

# ─── ONE SWEEP ────────────────────────────────────────────────────────
#
#   for each artifact:
#     age <= ttl                      ─→ keep
#     owning entry WRITING / PENDING
#       or with active readers        ─→ keep (skipped_in_use)
#     otherwise                       ─→ delete file, then drop the
#                                        owning entry (if any)
#
# The in-use check, the delete and the index removal all happen under
# the index lock, so acquire() can never hand out an entry whose file is
# about to vanish.  One failing artifact is logged and the scan goes on.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import time

import structlog

from src.interfaces.artifact_store import IArtifactStore
from src.models.cache import SweepReport
from src.pipeline.cache_index import CacheIndex
from src.utils.concurrency import cancel_and_wait
from src.utils.errors import EvictionError
from src.utils.logging import get_logger

DEFAULT_TTL_SECONDS = 3600.0
DEFAULT_SWEEP_INTERVAL = 600.0


class EvictionSweeper:
    """Background task deleting artifacts older than ``ttl_seconds``."""

    def __init__(
        self,
        index: CacheIndex,
        store: IArtifactStore,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL,
    ) -> None:
        self._index = index
        self._store = store
        self._ttl = ttl_seconds
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self, now: float | None = None) -> SweepReport:
        """Run one full scan and return what it did."""
        now = time.time() if now is None else now
        report = SweepReport()

        for name in await self._store.list_artifacts():
            report.scanned += 1
            try:
                age = await self._store.stat_age(name, now)
            except FileNotFoundError:
                continue
            except OSError as exc:
                self._record_failure(report, name, "stat", exc)
                continue
            if age <= self._ttl:
                continue

            async with self._index.lock:
                entry = self._index.find_by_artifact(name)
                if entry is not None and entry.in_use:
                    report.skipped_in_use += 1
                    continue
                try:
                    await self._store.delete(name)
                except OSError as exc:
                    self._record_failure(report, name, "delete", exc)
                    continue
                report.evicted.append(name)
                if entry is not None and self._index.discard_locked(entry.key, entry):
                    report.entries_removed += 1

        self._logger.info(
            "eviction_sweep",
            scanned=report.scanned,
            evicted=len(report.evicted),
            entries_removed=report.entries_removed,
            skipped_in_use=report.skipped_in_use,
            failed=report.failed,
        )
        return report

    def _record_failure(
        self, report: SweepReport, name: str, action: str, exc: OSError
    ) -> None:
        """Count and log one artifact the sweep could not handle."""
        report.failed += 1
        error = EvictionError(f"could not {action} {name}: {exc}")
        error.__cause__ = exc
        self._logger.warning("eviction_failed", artifact=name, exc_info=error)

    def start(self) -> None:
        """Start the periodic loop on the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="eviction-sweeper")
        self._logger.info(
            "eviction_sweeper_started",
            ttl_seconds=self._ttl,
            interval_seconds=self._interval,
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        await cancel_and_wait(task)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep_once()
            except OSError as exc:
                # Listing the directory itself failed; try again next round.
                self._logger.error("eviction_sweep_failed", error=str(exc))
