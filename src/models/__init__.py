"""songstream domain models, re-exported from their submodules.

Other parts of the codebase can import directly from ``src.models``
(e.g. ``from src.models import CacheEntry``).

The models are organized across two submodules by concern:
    - cache.py  -- Cache entry state machine, pipeline outcome, sweep report
    - video.py  -- Search results from the YouTube catalog

The ``__all__`` list at the bottom controls what ``from src.models import *``
exports.
"""

from __future__ import annotations

# --- Cache models: mutable, internal-only; hold live asyncio objects. ---
from src.models.cache import (
    CacheEntry,
    CacheState,
    PipelineOutcome,
    SweepReport,
)

# --- Catalog models: frozen Pydantic models returned by the search API. ---
from src.models.video import Thumbnail, Video

__all__ = [
    # cache
    "CacheEntry",
    "CacheState",
    "PipelineOutcome",
    "SweepReport",
    # video
    "Thumbnail",
    "Video",
]
