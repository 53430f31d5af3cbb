"""Catalog metadata providers (search, duration, existence)."""

from src.providers.metadata.youtube_data_provider import (
    YouTubeDataProvider,
    parse_iso8601_duration,
)

__all__ = ["YouTubeDataProvider", "parse_iso8601_duration"]
