"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  (static defaults checked into the repo)
#   2. .env file           (local developer overrides, not committed)
#   3. Environment vars    (set by the deployment)
#
# load_config() reads the YAML file first, then deep-merges the
# environment-based values on top:
#   base = {"cache": {"dir": "data/cache/mp3"}}
#   overrides = {"cache": {"ttl_seconds": 7200}}
#   result = {"cache": {"dir": "data/cache/mp3", "ttl_seconds": 7200}}
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from src.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings to merge; a fresh ``Settings()`` when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "protocol": settings.app_protocol,
            "public_host": settings.public_host,
            "env": settings.app_env,
        },
        "cache": {
            "dir": settings.cache_dir,
            "ttl_seconds": settings.cache_ttl_seconds,
            "sweep_interval_seconds": settings.sweep_interval_seconds,
        },
        "stream": {
            "poll_interval": settings.stream_poll_interval,
            "read_timeout": settings.stream_read_timeout,
            "chunk_size": settings.stream_chunk_size,
        },
        "transcoder": {
            "ffmpeg_path": settings.ffmpeg_path,
            "bitrate": settings.audio_bitrate,
        },
        "search": {
            "max_results": settings.search_max_results,
            "cache_ttl_seconds": settings.search_cache_ttl_seconds,
            "youtube_api_key_configured": bool(settings.youtube_api_key),
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
