"""Source fetchers: turn a video id into a raw audio byte stream."""

from src.providers.fetcher.ytdlp_fetcher import YtDlpSourceFetcher

__all__ = ["YtDlpSourceFetcher"]
