"""Artifact storage providers."""

from src.providers.storage.file_store import FileArtifactStore

__all__ = ["FileArtifactStore"]
