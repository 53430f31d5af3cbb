# =============================================================================
# src/cli/cache.py - CLI for the audio cache
# =============================================================================
#
# Drives the same cache components as the web server, without the server:
#
#   fetch VIDEO_ID [-o FILE]   acquire one song (download + transcode into
#                              the cache dir) and copy the MP3 to FILE
#   sweep [--ttl SECONDS]      run one eviction sweep over the cache dir
#
# Typical usage:
#   python -m src.cli fetch dQw4w9WgXcQ -o song.mp3
#   python -m src.cli sweep --ttl 0         # delete everything idle
#
# The CLI process has its own, empty cache index.  A sweep therefore sees
# every file in the cache dir as unowned and only goes by file age; do
# not point it at the directory of a running server with a tiny --ttl.
# =============================================================================

"""Standalone CLI for the songstream audio cache.

Usage::

    python -m src.cli fetch VIDEO_ID [-o FILE]
    python -m src.cli sweep [--ttl SECONDS]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

import aiofiles

from src.config.settings import Settings
from src.utils.errors import SongStreamError
from src.utils.logging import configure_logging

_VIDEO_ID_CHARS = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789_-")


def _is_video_id(value: str) -> bool:
    return len(value) == 11 and set(value) <= _VIDEO_ID_CHARS


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_fetch(args: argparse.Namespace, app_settings: Settings) -> int:
    """Acquire one song and write the finished MP3 to the output file."""
    from src.wiring import build_cache, build_http_client

    output = Path(args.output or f"{args.video_id}.mp3")

    async with build_http_client() as http_client:
        components = build_cache(app_settings, http_client)
        coordinator = components["coordinator"]
        stream_server = components["stream_server"]

        try:
            handle = await coordinator.acquire(args.video_id)
            async with aiofiles.open(output, "wb") as out:
                written = await stream_server.stream(args.video_id, out.write)
            await handle.wait()
        except SongStreamError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            output.unlink(missing_ok=True)
            return 1
        finally:
            await coordinator.aclose()

    print(f"Wrote {written:,} bytes to {output}")
    print(f"Cached as {handle.entry.backing_location}")
    return 0


async def _handle_sweep(args: argparse.Namespace, app_settings: Settings) -> int:
    """Run one eviction sweep and print what it did."""
    from src.pipeline.cache_index import CacheIndex
    from src.pipeline.coordinator import ARTIFACT_SUFFIX
    from src.pipeline.eviction import EvictionSweeper
    from src.providers.storage.file_store import FileArtifactStore

    ttl = app_settings.cache_ttl_seconds if args.ttl is None else args.ttl
    store = FileArtifactStore(app_settings.cache_dir, suffix=ARTIFACT_SUFFIX)
    sweeper = EvictionSweeper(CacheIndex(), store, ttl_seconds=ttl)

    report = await sweeper.sweep_once()

    print(f"Cache dir:       {store.base_dir}")
    print(f"TTL:             {ttl:g}s")
    print(f"Scanned:         {report.scanned}")
    print(f"Evicted:         {len(report.evicted)}")
    for name in report.evicted:
        print(f"  - {name}")
    if report.failed:
        print(f"Failed deletes:  {report.failed}")
    return 1 if report.failed else 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the cache CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli",
        description="songstream audio cache tools",
    )
    subparsers = parser.add_subparsers(dest="command", help="Cache commands")

    fetch_parser = subparsers.add_parser("fetch", help="Download, transcode and cache one song")
    fetch_parser.add_argument("video_id", help="YouTube video id (11 characters)")
    fetch_parser.add_argument("-o", "--output", help="Output MP3 file (default: <video_id>.mp3)")

    sweep_parser = subparsers.add_parser("sweep", help="Run one eviction sweep")
    sweep_parser.add_argument(
        "--ttl",
        type=float,
        default=None,
        help="Evict files older than this many seconds (default: CACHE_TTL_SECONDS)",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point; returns the process exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    app_settings = Settings()
    # WARNING+ only, so the command's report stays readable.
    configure_logging(log_level="WARNING", json_output=False)

    if args.command == "fetch":
        if not _is_video_id(args.video_id):
            print(f"Error: invalid video id {args.video_id!r}", file=sys.stderr)
            return 2
        return asyncio.run(_handle_fetch(args, app_settings))
    if args.command == "sweep":
        if args.ttl is not None and args.ttl < 0:
            print("Error: --ttl must not be negative", file=sys.stderr)
            return 2
        return asyncio.run(_handle_sweep(args, app_settings))

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
