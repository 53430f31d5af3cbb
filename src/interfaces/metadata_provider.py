"""Abstract base class for catalog metadata providers.

Used only by the search endpoint; pure request/response with no part in
the audio cache.  The YouTube Data API is the one implementation, but the
seam keeps routes testable with a fake.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.video import Video


class IMetadataProvider(ABC):
    """Contract for catalog search and lookup."""

    @abstractmethod
    async def search(self, query: str, max_results: int) -> list[Video]:
        """Search the catalog for videos matching *query*.

        Parameters
        ----------
        query:
            Free-text search string.
        max_results:
            Upper bound on the number of results returned.

        Raises
        ------
        src.utils.errors.MetadataError
            If the API call fails or returns an unusable payload.
        """

    @abstractmethod
    async def get_duration(self, video_id: str) -> float:
        """Return the duration of *video_id* in seconds."""

    @abstractmethod
    async def video_exists(self, video_id: str) -> bool:
        """Return ``True`` if *video_id* resolves to a public video."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in logs and error prefixes."""
