"""Utility modules for songstream.

Available utility modules (all re-exported here for convenience):

- **errors** -- Domain-specific exception hierarchy rooted at SongStreamError;
  pipeline failures (FetchError, TransformError) are broadcast to every
  waiter of a cache entry, reader failures stay local to one stream.
- **concurrency** -- asyncio semaphore throttling for fan-out calls to the
  YouTube API, and task cancellation used on shutdown.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    AuthenticationError,
    ConfigurationError,
    EvictionError,
    FetchError,
    InvalidStateTransition,
    MetadataError,
    NotAvailableError,
    PipelineFailedError,
    ReadTimeoutError,
    SongStreamError,
    TransformError,
)

# -- Async concurrency helpers ---------------------------------------------
from src.utils.concurrency import cancel_and_wait, throttled_gather

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "EvictionError",
    "FetchError",
    "InvalidStateTransition",
    "MetadataError",
    "NotAvailableError",
    "PipelineFailedError",
    "ReadTimeoutError",
    "SongStreamError",
    "TransformError",
    "cancel_and_wait",
    "configure_logging",
    "get_logger",
    "throttled_gather",
]
