"""Filesystem artifact store implementing IArtifactStore.

Every artifact is a flat file directly under ``base_dir``.  File I/O goes
through aiofiles (a thread-pool executor under the hood) so large reads
and writes never block the event loop while other clients are streaming.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, AsyncContextManager

import aiofiles
import aiofiles.os
import structlog

from src.interfaces.artifact_store import IArtifactStore

logger = structlog.get_logger(logger_name=__name__)


class FileArtifactStore(IArtifactStore):
    """Artifacts stored as plain files in one directory.

    Parameters
    ----------
    base_dir:
        Directory holding the artifacts.  Created on construction.
    suffix:
        Only files ending in this suffix are reported by
        :meth:`list_artifacts`, so stray files in the directory are never
        mistaken for cache artifacts.
    """

    def __init__(self, base_dir: str | Path, suffix: str = ".mp3") -> None:
        self._base_dir = Path(base_dir)
        self._suffix = suffix
        self._base_dir.mkdir(parents=True, exist_ok=True)
        logger.debug("artifact_store_ready", base_dir=str(self._base_dir))

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def path_for(self, name: str) -> Path:
        # Names are derived identifiers, never user input, but refuse
        # anything that would escape the directory.
        if Path(name).name != name:
            raise ValueError(f"invalid artifact name: {name!r}")
        return self._base_dir / name

    async def create(self, name: str) -> Path:
        path = self.path_for(name)
        async with aiofiles.open(path, "wb"):
            pass
        return path

    def open_append(self, name: str) -> AsyncContextManager[Any]:
        return aiofiles.open(self.path_for(name), "ab")

    def open_read(self, name: str) -> AsyncContextManager[Any]:
        return aiofiles.open(self.path_for(name), "rb")

    async def delete(self, name: str) -> bool:
        try:
            await aiofiles.os.remove(self.path_for(name))
        except FileNotFoundError:
            return False
        logger.debug("artifact_deleted", name=name)
        return True

    async def exists(self, name: str) -> bool:
        return await aiofiles.os.path.isfile(self.path_for(name))

    async def size(self, name: str) -> int:
        return await aiofiles.os.path.getsize(self.path_for(name))

    async def stat_age(self, name: str, now: float | None = None) -> float:
        mtime = await aiofiles.os.path.getmtime(self.path_for(name))
        return (now if now is not None else time.time()) - mtime

    async def list_artifacts(self) -> list[str]:
        names = await aiofiles.os.listdir(self._base_dir)
        return sorted(n for n in names if n.endswith(self._suffix))
