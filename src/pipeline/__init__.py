"""Single-flight audio cache: index, growing sink, coordinator, streaming, eviction."""

from src.pipeline.cache_index import CacheIndex
from src.pipeline.coordinator import AcquireHandle, AcquisitionCoordinator, artifact_name_for
from src.pipeline.eviction import EvictionSweeper
from src.pipeline.growing_sink import GrowingSink
from src.pipeline.stream_server import StreamServer, StreamSession

__all__ = [
    "AcquireHandle",
    "AcquisitionCoordinator",
    "CacheIndex",
    "EvictionSweeper",
    "GrowingSink",
    "StreamServer",
    "StreamSession",
    "artifact_name_for",
]
