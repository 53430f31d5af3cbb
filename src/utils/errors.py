"""Custom exception hierarchy for songstream.

All application exceptions inherit from :class:`SongStreamError`, which
carries an optional ``provider_name`` so error handlers can identify which
external collaborator (e.g. "yt-dlp", "ffmpeg", "youtube_data") caused the
failure.

The hierarchy is organized by where the failure happens:

    SongStreamError  (base -- catch-all for any songstream error)
    +-- PipelineFailedError      (terminal failure of one cache generation)
    |   +-- FetchError           (source audio could not be obtained)
    |   +-- TransformError       (transcoder failed, possibly mid-stream)
    +-- ReadTimeoutError         (a streaming reader saw no growth in time)
    +-- NotAvailableError        (stream requested for an unknown/failed key)
    +-- EvictionError            (one artifact failed to delete during a sweep)
    +-- InvalidStateTransition   (cache entry state machine misuse)
    +-- MetadataError            (metadata search / lookup failure)
    +-- ConfigurationError       (startup / missing config)
    +-- AuthenticationError      (bad or missing API key)

Pipeline failures are broadcast to every waiter of an entry; reader
failures stay local to one streaming session.
"""


class SongStreamError(Exception):
    """Base exception for all songstream errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which collaborator triggered the error.
    The ``__str__`` method prefixes the provider name in brackets for
    structured log output, e.g. ``[ffmpeg] exited with status 1``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Pipeline errors (broadcast to all waiters of one entry generation)
# ---------------------------------------------------------------------------

class PipelineFailedError(SongStreamError):
    """Raised when the fetch -> transcode -> persist pipeline fails for a key."""

    def __init__(
        self,
        message: str = "Audio pipeline failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class FetchError(PipelineFailedError):
    """Raised when the source fetcher cannot obtain the remote audio.

    Covers "not found", upstream rejection and network failures.  Never
    retried automatically; the next ``acquire`` starts a fresh pipeline.
    """

    def __init__(
        self,
        message: str = "Could not fetch source audio",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class TransformError(PipelineFailedError):
    """Raised when the transcoder fails, including mid-stream failures."""

    def __init__(
        self,
        message: str = "Audio transcoding failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Reader / stream errors (local to one session)
# ---------------------------------------------------------------------------

class ReadTimeoutError(SongStreamError):
    """Raised when a growing-file reader sees no new data for too long."""

    def __init__(
        self,
        message: str = "Timed out waiting for audio data",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NotAvailableError(SongStreamError):
    """Raised when streaming is requested for a key with no usable entry.

    The stream server never triggers acquisition itself; callers must
    ``acquire`` the key first.
    """

    def __init__(
        self,
        message: str = "The requested song is not available",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Cache housekeeping errors
# ---------------------------------------------------------------------------

class EvictionError(SongStreamError):
    """Raised (and logged, never propagated) when one artifact fails to delete."""

    def __init__(
        self,
        message: str = "Failed to evict cached artifact",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidStateTransition(SongStreamError):
    """Raised when a cache entry is asked to move backwards or skip a state."""

    def __init__(
        self,
        message: str = "Invalid cache entry state transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Service-layer errors
# ---------------------------------------------------------------------------

class MetadataError(SongStreamError):
    """Raised when a metadata search or lookup fails (quota, network, payload)."""

    def __init__(
        self,
        message: str = "Metadata lookup failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(SongStreamError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class AuthenticationError(SongStreamError):
    """Raised when a request carries a missing or wrong API key."""

    def __init__(
        self,
        message: str = "Invalid api key",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
