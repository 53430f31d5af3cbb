"""Unit tests for FileArtifactStore."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from src.providers.storage.file_store import FileArtifactStore


class TestFileArtifactStore:
    def test_base_dir_is_created(self, tmp_path: Path) -> None:
        base = tmp_path / "a" / "b"
        store = FileArtifactStore(base)
        assert base.is_dir()
        assert store.base_dir == base

    def test_path_for_rejects_traversal(self, store: FileArtifactStore) -> None:
        with pytest.raises(ValueError):
            store.path_for("../escape.mp3")
        with pytest.raises(ValueError):
            store.path_for("nested/name.mp3")

    @pytest.mark.asyncio
    async def test_create_append_read(self, store: FileArtifactStore) -> None:
        path = await store.create("x.mp3")
        assert path == store.path_for("x.mp3")

        async with store.open_append("x.mp3") as handle:
            await handle.write(b"abc")
            await handle.write(b"def")
        async with store.open_read("x.mp3") as handle:
            await handle.seek(2)
            assert await handle.read() == b"cdef"

        assert await store.size("x.mp3") == 6

    @pytest.mark.asyncio
    async def test_create_truncates(self, store: FileArtifactStore) -> None:
        store.path_for("x.mp3").write_bytes(b"stale bytes")
        await store.create("x.mp3")
        assert await store.size("x.mp3") == 0

    @pytest.mark.asyncio
    async def test_exists_and_delete(self, store: FileArtifactStore) -> None:
        await store.create("x.mp3")
        assert await store.exists("x.mp3") is True
        assert await store.delete("x.mp3") is True
        assert await store.exists("x.mp3") is False
        assert await store.delete("x.mp3") is False

    @pytest.mark.asyncio
    async def test_stat_age(self, store: FileArtifactStore) -> None:
        path = await store.create("x.mp3")
        os.utime(path, (1_000.0, 1_000.0))
        assert await store.stat_age("x.mp3", now=1_250.0) == pytest.approx(250.0)

    @pytest.mark.asyncio
    async def test_stat_age_missing_file(self, store: FileArtifactStore) -> None:
        with pytest.raises(FileNotFoundError):
            await store.stat_age("absent.mp3")

    @pytest.mark.asyncio
    async def test_list_artifacts_filters_suffix(self, store: FileArtifactStore) -> None:
        await store.create("b.mp3")
        await store.create("a.mp3")
        (store.base_dir / "readme.txt").write_text("not audio")

        assert await store.list_artifacts() == ["a.mp3", "b.mp3"]
