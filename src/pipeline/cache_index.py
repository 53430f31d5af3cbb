"""In-process index of cache entries, one per content key.

The index is the single source of truth for what the service knows about
each key.  It is an explicitly owned component: ``src/main.py`` builds one
instance and hands it to the coordinator, the stream server and the
sweeper.

# ─── LOCKING ──────────────────────────────────────────────────────────
#
# One asyncio.Lock guards every structural change (insert / remove).
# Lookups (get, find_by_artifact, entries) are plain dict reads: on a
# single event loop they cannot observe a half-applied update.
#
# The lock is also exposed so that "delete the artifact, then drop the
# entry" can be made atomic with respect to acquire().  Whoever holds it
# may call the *_locked methods.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable

import structlog

from src.models.cache import CacheEntry, CacheState
from src.utils.logging import get_logger


class CacheIndex:
    """Mapping from content key to its current :class:`CacheEntry`."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def find_by_artifact(self, artifact_name: str) -> CacheEntry | None:
        """Reverse lookup from an artifact name to the entry that owns it."""
        for entry in self._entries.values():
            if entry.artifact_name == artifact_name:
                return entry
        return None

    def entries(self) -> list[CacheEntry]:
        """Snapshot of all entries, safe to iterate across awaits."""
        return list(self._entries.values())

    def counts(self) -> dict[str, int]:
        """Number of entries per state, every state present."""
        counter = Counter(entry.state for entry in self._entries.values())
        return {state.value: counter.get(state, 0) for state in CacheState}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def get_or_create(
        self,
        key: str,
        factory: Callable[[], CacheEntry],
    ) -> tuple[CacheEntry, bool]:
        """Return the live entry for *key*, creating it if needed.

        A ``FAILED`` entry still sitting in the index counts as absent and
        is replaced.  Returns ``(entry, created)``; ``created`` is ``True``
        for exactly one caller per generation.
        """
        async with self._lock:
            existing = self._entries.get(key)
            if existing is not None and existing.state is not CacheState.FAILED:
                return existing, False

            entry = factory()
            self._entries[key] = entry
            self._logger.debug(
                "cache_entry_registered",
                key=key,
                artifact=entry.artifact_name,
                replaced_failed=existing is not None,
            )
            return entry, True

    async def remove(self, key: str, entry: CacheEntry) -> bool:
        """Remove *entry* if it is still the current entry for *key*."""
        async with self._lock:
            return self.discard_locked(key, entry)

    def discard_locked(self, key: str, entry: CacheEntry) -> bool:
        """Identity-checked removal; the caller must hold :attr:`lock`.

        A stale holder of an older generation never removes the newer one.
        """
        if not self._lock.locked():
            raise RuntimeError("discard_locked() called without holding the index lock")
        if self._entries.get(key) is not entry:
            return False
        del self._entries[key]
        self._logger.debug("cache_entry_removed", key=key, state=entry.state.value)
        return True
