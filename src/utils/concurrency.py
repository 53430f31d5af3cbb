"""Shared asyncio helpers.

Two patterns are exposed:

1. **throttled_gather** -- ``asyncio.gather`` with each awaitable wrapped in
   a semaphore acquire/release.  The metadata client uses it to look up
   durations for a page of search results without firing every request
   at the YouTube API at once.

2. **cancel_and_wait** -- cancel a background task and wait for it to
   unwind, used on shutdown by the acquisition coordinator and the
   eviction sweeper.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Awaitable, TypeVar

_T = TypeVar("_T")

# Default number of concurrent calls when the caller passes no semaphore.
DEFAULT_CONCURRENCY = 5


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with semaphore throttling.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Optional semaphore for concurrency control.  When omitted a fresh
        semaphore allowing ``DEFAULT_CONCURRENCY`` calls is created for this
        gather only (a module-level one would bind to the first event loop).
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    if semaphore is None:
        semaphore = asyncio.Semaphore(DEFAULT_CONCURRENCY)

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


async def cancel_and_wait(task: asyncio.Task[Any] | None) -> None:
    """Cancel *task* (if still running) and wait until it has finished.

    The task's ``CancelledError`` is absorbed; any other exception it
    finished with is re-raised.
    """
    if task is None or task.done():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
