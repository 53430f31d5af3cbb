"""Public interface definitions for every external collaborator.

The audio cache core never talks to yt-dlp, ffmpeg, the filesystem or the
YouTube API directly; it talks to the abstract base classes defined here.
Concrete adapters live in ``src/providers/`` and are wired together in
``src/main.py``.  Tests inject fakes implementing the same contracts.

CONCRETE PROVIDER MAP:
    Interface            →  Concrete implementation (in src/providers/)
    ─────────────────────────────────────────────────────────────────
    ISourceFetcher       →  YtDlpSourceFetcher
    ITranscoder          →  FFmpegTranscoder
    IArtifactStore       →  FileArtifactStore
    IMetadataProvider    →  YouTubeDataProvider
    ICacheProvider       →  MemoryCacheProvider
"""

from src.interfaces.artifact_store import IArtifactStore
from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.metadata_provider import IMetadataProvider
from src.interfaces.source_fetcher import ISourceFetcher
from src.interfaces.transcoder import ITranscoder

__all__ = [
    "IArtifactStore",
    "ICacheProvider",
    "IMetadataProvider",
    "ISourceFetcher",
    "ITranscoder",
]
