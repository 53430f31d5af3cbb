"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources (in priority
# order):
#
#   1. **Environment variables**, e.g. YOUTUBE_API_KEY=AIza...
#      (highest priority, always wins)
#   2. **.env file**, key=value lines in the project root .env file
#
# Field `cache_ttl_seconds` maps to env var `CACHE_TTL_SECONDS`
# (pydantic-settings uppercases and matches).  Defaults apply when
# neither source sets a field.
#
# SECURITY: the .env file is in .gitignore and never committed.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.utils.errors import ConfigurationError


class Settings(BaseSettings):
    """songstream application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === YouTube ===
    youtube_api_key: str = ""
    search_max_results: int = 21
    search_cache_ttl_seconds: int = 900

    # === Auth ===
    # Empty string disables the API-key check (local development).
    api_key: str = ""

    # === Audio cache ===
    cache_dir: str = "data/cache/mp3"
    cache_ttl_seconds: float = 3600.0
    sweep_interval_seconds: float = 600.0
    stream_poll_interval: float = 0.1
    stream_read_timeout: float = 10.0
    stream_chunk_size: int = 65536

    # === Transcoding ===
    ffmpeg_path: str = "ffmpeg"
    audio_bitrate: str = "128k"

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_protocol: str = "http"
    # Host clients use to reach this service (search results embed it).
    public_host: str = "localhost"
    app_env: str = "development"
    log_level: str = "INFO"

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"

    @property
    def public_base_url(self) -> str:
        """Base URL that stream links in search results point at."""
        return f"{self.app_protocol}://{self.public_host}:{self.app_port}"

    def validate_runtime(self) -> None:
        """Reject settings the audio cache cannot run with.

        Raises
        ------
        ConfigurationError
            On the first nonsensical value found.
        """
        positive = {
            "cache_ttl_seconds": self.cache_ttl_seconds,
            "sweep_interval_seconds": self.sweep_interval_seconds,
            "stream_poll_interval": self.stream_poll_interval,
            "stream_read_timeout": self.stream_read_timeout,
            "stream_chunk_size": self.stream_chunk_size,
            "search_max_results": self.search_max_results,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")
        if self.stream_poll_interval >= self.stream_read_timeout:
            raise ConfigurationError(
                "stream_poll_interval must be shorter than stream_read_timeout"
            )
        if self.app_protocol not in ("http", "https"):
            raise ConfigurationError(f"app_protocol must be http or https, got {self.app_protocol!r}")
        if not self.cache_dir:
            raise ConfigurationError("cache_dir must not be empty")
