# =============================================================================
# src/cli/__init__.py - CLI Module Overview
# =============================================================================
#
# Command-line tools for operating the audio cache without the web server.
#
#   CACHE (cache.py)
#      fetch: acquire one song through the full fetch → transcode →
#             persist pipeline and copy the MP3 out.
#      sweep: run one TTL eviction sweep over the cache directory.
#
# Architecture Notes:
#   - argparse for argument parsing (no Click/Typer).
#   - Heavy imports (yt-dlp via src.wiring) are deferred inside the
#     handlers to keep startup fast for simple commands.
# =============================================================================

"""CLI tools for songstream.

- ``python -m src.cli fetch VIDEO_ID [-o FILE]``: cache one song and copy it out.
- ``python -m src.cli sweep [--ttl SECONDS]``: run one eviction sweep.
"""
