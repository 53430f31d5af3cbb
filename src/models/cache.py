"""Cache entry state machine for the single-flight audio cache.

One :class:`CacheEntry` exists per content key (a YouTube video id).  Its
``state`` only ever moves forward::

    PENDING ──→ WRITING ──→ READY
       │           │
       └───────────┴──────→ FAILED

Entries are plain mutable dataclasses rather than frozen Pydantic models:
they are internal-only, never serialised, and hold live asyncio objects
(the completion event and the growing sink).  Only the coordinator task
that owns an entry's pipeline calls the ``mark_*`` methods; every other
party only reads ``state`` or waits on :meth:`CacheEntry.wait`.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from src.utils.errors import InvalidStateTransition, PipelineFailedError

if TYPE_CHECKING:
    from src.pipeline.growing_sink import GrowingSink


class CacheState(str, Enum):  # noqa: UP042
    """Lifecycle states of a cache entry."""

    PENDING = "PENDING"  # Registered in the index, nothing fetched yet
    WRITING = "WRITING"  # Pipeline running, artifact growing
    READY = "READY"      # Artifact complete and immutable
    FAILED = "FAILED"    # Terminal failure; entry is dropped from the index


_ALLOWED_TRANSITIONS: dict[CacheState, frozenset[CacheState]] = {
    CacheState.PENDING: frozenset({CacheState.WRITING, CacheState.FAILED}),
    CacheState.WRITING: frozenset({CacheState.READY, CacheState.FAILED}),
    CacheState.READY: frozenset(),
    CacheState.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({CacheState.READY, CacheState.FAILED})


@dataclass(eq=False)
class CacheEntry:
    """Everything known about one generation of a cached key.

    ``eq=False`` keeps identity semantics: two entries for the same key
    (an old failed generation and a fresh one) must never compare equal,
    because index removal is identity-checked.
    """

    key: str
    artifact_name: str
    backing_location: Path
    state: CacheState = CacheState.PENDING
    created_at: float = field(default_factory=time.time)
    last_error: PipelineFailedError | None = None
    active_readers: int = 0
    bytes_written: int = 0
    history: list[CacheState] = field(default_factory=lambda: [CacheState.PENDING])
    sink: GrowingSink | None = None
    outcome: PipelineOutcome | None = None
    completion_signal: asyncio.Event = field(default_factory=asyncio.Event)

    # ------------------------------------------------------------------
    # State transitions (pipeline owner only)
    # ------------------------------------------------------------------

    def _transition(self, new_state: CacheState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidStateTransition(
                f"cache entry {self.key!r} cannot move from "
                f"{self.state.value} to {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)

    def mark_writing(self) -> None:
        self._transition(CacheState.WRITING)

    def mark_ready(self, bytes_written: int) -> None:
        """Publish successful completion to every current and future waiter."""
        self._transition(CacheState.READY)
        self.bytes_written = bytes_written
        self.completion_signal.set()

    def mark_failed(self, error: PipelineFailedError) -> None:
        """Publish a terminal failure to every current and future waiter."""
        self._transition(CacheState.FAILED)
        self.last_error = error
        self.completion_signal.set()

    # ------------------------------------------------------------------
    # Read-side helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def in_use(self) -> bool:
        """True while the artifact must not be deleted."""
        return self.state in (CacheState.PENDING, CacheState.WRITING) or self.active_readers > 0

    async def wait(self, timeout: float | None = None) -> CacheEntry:
        """Suspend until the entry is READY or FAILED.

        Returns the entry when READY; raises the pipeline error when FAILED.
        Raises ``TimeoutError`` if *timeout* elapses first.
        """
        await asyncio.wait_for(self.completion_signal.wait(), timeout)
        if self.state is CacheState.FAILED and self.last_error is not None:
            raise self.last_error
        return self


@dataclass(frozen=True)
class PipelineOutcome:
    """Explicit result of one fetch → transcode → persist run."""

    key: str
    bytes_written: int = 0
    error: PipelineFailedError | None = None
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SweepReport:
    """Counters for one eviction sweep."""

    scanned: int = 0
    evicted: list[str] = field(default_factory=list)
    entries_removed: int = 0
    skipped_in_use: int = 0
    failed: int = 0
