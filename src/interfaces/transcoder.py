"""Abstract base class for audio transcoders.

A transcoder consumes one async byte stream and produces another (for
example any container/codec in, MP3 out).  Output is produced while input
is still arriving, which is what lets clients start listening before a
download has finished.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator


class ITranscoder(ABC):
    """Contract for streaming re-encoders."""

    @abstractmethod
    def transform(self, source: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Re-encode *source* and yield the output chunks in order.

        Parameters
        ----------
        source:
            Input audio chunks.  Exceptions raised while iterating it must
            propagate unchanged so the caller can tell fetch failures from
            transcoding failures.

        Returns
        -------
        AsyncIterator[bytes]
            Encoded output chunks.

        Raises
        ------
        src.utils.errors.TransformError
            If encoding fails; may happen mid-stream after some output has
            already been yielded.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in logs and error prefixes."""

    def content_type(self) -> str:
        """MIME type of the produced stream."""
        return "audio/mpeg"
