"""ffmpeg transcoder implementing ITranscoder.

# ─── DESIGN ────────────────────────────────────────────────────────────
#
# One ffmpeg subprocess per transform() call:
#
#   source ─→ feeder task ─→ ffmpeg stdin
#                             ffmpeg stdout ─→ yielded MP3 chunks
#                             ffmpeg stderr ─→ drained, tail kept for errors
#
# Feeding and draining run concurrently, otherwise ffmpeg blocks on a
# full stdout pipe while we block on a full stdin pipe.  The feeder
# always closes stdin, so ffmpeg sees EOF even when the source fails; the
# source's own exception (a FetchError) is then re-raised unchanged.
#
# The subprocess is killed in ``finally`` when the consumer stops early
# (client gone, pipeline cancelled), so no orphan ffmpeg survives.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import contextlib
import shutil
from collections import deque
from typing import AsyncIterator

import structlog

from src.interfaces.transcoder import ITranscoder
from src.utils.errors import TransformError

logger = structlog.get_logger(logger_name=__name__)

_STDERR_TAIL_LINES = 20


class FFmpegTranscoder(ITranscoder):
    """Re-encode any audio ffmpeg understands to constant-bitrate MP3.

    Parameters
    ----------
    ffmpeg_path:
        Executable name or absolute path.  Resolved at call time so the
        rest of the service still starts without ffmpeg installed.
    bitrate:
        Target MP3 bitrate, in ffmpeg notation (``"128k"``).
    chunk_size:
        Maximum size of each chunk read from ffmpeg's stdout.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        bitrate: str = "128k",
        chunk_size: int = 64 * 1024,
    ) -> None:
        self._ffmpeg_path = ffmpeg_path
        self._bitrate = bitrate
        self._chunk_size = chunk_size

    def get_provider_name(self) -> str:
        return "ffmpeg"

    def is_available(self) -> bool:
        return shutil.which(self._ffmpeg_path) is not None

    def build_command(self) -> list[str]:
        return [
            self._ffmpeg_path,
            "-hide_banner",
            "-loglevel", "error",
            "-i", "pipe:0",
            "-vn",
            "-acodec", "libmp3lame",
            "-b:a", self._bitrate,
            "-f", "mp3",
            "pipe:1",
        ]

    async def transform(self, source: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        executable = shutil.which(self._ffmpeg_path)
        if executable is None:
            raise TransformError(
                f"{self._ffmpeg_path} not found on PATH",
                provider_name=self.get_provider_name(),
            )

        command = [executable, *self.build_command()[1:]]
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise TransformError(
                f"could not start ffmpeg: {exc}", provider_name=self.get_provider_name()
            ) from exc

        stderr_tail: deque[str] = deque(maxlen=_STDERR_TAIL_LINES)
        feeder = asyncio.create_task(self._feed(source, process), name="ffmpeg-feeder")
        drainer = asyncio.create_task(self._drain_stderr(process, stderr_tail), name="ffmpeg-stderr")
        produced = 0

        try:
            assert process.stdout is not None
            while chunk := await process.stdout.read(self._chunk_size):
                produced += len(chunk)
                yield chunk
                self._raise_if_feeder_failed(feeder)

            # stdout hit EOF: surface a source failure first, then ffmpeg's own.
            await feeder
            returncode = await process.wait()
            await drainer
            if returncode != 0:
                detail = " | ".join(stderr_tail) or "no diagnostic output"
                raise TransformError(
                    f"ffmpeg exited with status {returncode}: {detail}",
                    provider_name=self.get_provider_name(),
                )
            logger.debug("ffmpeg_transform_complete", bytes_out=produced)
        finally:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
            for task in (feeder, drainer):
                if not task.done():
                    task.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await task

    @staticmethod
    def _raise_if_feeder_failed(feeder: asyncio.Task[None]) -> None:
        if feeder.done() and not feeder.cancelled():
            error = feeder.exception()
            if error is not None:
                raise error

    async def _feed(self, source: AsyncIterator[bytes], process: asyncio.subprocess.Process) -> None:
        stdin = process.stdin
        assert stdin is not None
        try:
            async for chunk in source:
                stdin.write(chunk)
                await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # ffmpeg exited early; its return code tells the story.
            logger.debug("ffmpeg_stdin_closed_early")
        finally:
            with contextlib.suppress(BrokenPipeError, ConnectionResetError):
                stdin.close()
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()

    @staticmethod
    async def _drain_stderr(process: asyncio.subprocess.Process, tail: deque[str]) -> None:
        assert process.stderr is not None
        async for line in process.stderr:
            text = line.decode("utf-8", errors="replace").strip()
            if text:
                tail.append(text)
