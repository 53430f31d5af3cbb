# =============================================================================
# src/cli/__main__.py - Package Entry Point
# =============================================================================
#
# Enables running the CLI package itself as a module:
#     python -m src.cli fetch VIDEO_ID -o song.mp3
#     python -m src.cli sweep --ttl 3600
#
# Delegates to the cache CLI (cache.py).
# =============================================================================

"""Allow ``python -m src.cli`` execution."""

import sys

from src.cli.cache import main

sys.exit(main())
