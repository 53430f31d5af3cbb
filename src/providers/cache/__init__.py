"""Cache providers.

In-memory TTL cache used to avoid repeating YouTube Data API calls for the
same search within a few minutes.

MemoryCacheProvider is a dict-based cache, fast but not shared across
processes. For multi-worker deployments, swap in a Redis adapter implementing
ICacheProvider without changing any route code.
"""

from src.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["MemoryCacheProvider"]
