"""Abstract base class for source-audio fetchers.

A fetcher turns a content key (a YouTube video id) into an async stream of
raw audio bytes.  The acquisition coordinator calls it exactly once per
cache generation, so implementations never need their own de-duplication.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator


class ISourceFetcher(ABC):
    """Contract for services that download source audio for a key."""

    @abstractmethod
    def fetch(self, key: str) -> AsyncIterator[bytes]:
        """Stream the remote audio identified by *key*.

        Parameters
        ----------
        key:
            The content key to fetch.

        Returns
        -------
        AsyncIterator[bytes]
            Raw (not yet transcoded) audio chunks, in order.

        Raises
        ------
        src.utils.errors.FetchError
            If the resource cannot be resolved or the download breaks.  The
            error may surface on the first iteration or at any later one.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in logs and error prefixes."""
