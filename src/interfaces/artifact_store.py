"""Abstract base class for the durable byte store behind the audio cache.

Artifacts are named by a derived identifier (not by the raw key) and are
append-only while being written.  The store knows nothing about cache
entries; the coordinator and sweeper map names back to entries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, AsyncContextManager


class IArtifactStore(ABC):
    """Contract for artifact storage (a directory of files in practice)."""

    @abstractmethod
    def path_for(self, name: str) -> Path:
        """Return the location an artifact called *name* lives at."""

    @abstractmethod
    async def create(self, name: str) -> Path:
        """Create (or truncate) an empty artifact and return its location."""

    @abstractmethod
    def open_append(self, name: str) -> AsyncContextManager[Any]:
        """Open *name* for appending.

        The yielded object exposes ``async write(data: bytes) -> int`` and
        ``async flush()``.
        """

    @abstractmethod
    def open_read(self, name: str) -> AsyncContextManager[Any]:
        """Open *name* for reading.

        The yielded object exposes ``async read(size: int) -> bytes`` and
        ``async seek(offset: int)``.
        """

    @abstractmethod
    async def delete(self, name: str) -> bool:
        """Delete *name*.  Returns ``False`` if it did not exist."""

    @abstractmethod
    async def exists(self, name: str) -> bool:
        """Return ``True`` if the artifact is present."""

    @abstractmethod
    async def size(self, name: str) -> int:
        """Return the current size of the artifact in bytes."""

    @abstractmethod
    async def stat_age(self, name: str, now: float | None = None) -> float:
        """Return seconds since the artifact was last modified."""

    @abstractmethod
    async def list_artifacts(self) -> list[str]:
        """Return the names of every artifact currently stored."""
