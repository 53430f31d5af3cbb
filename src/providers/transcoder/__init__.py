"""Streaming transcoders."""

from src.providers.transcoder.ffmpeg_transcoder import FFmpegTranscoder

__all__ = ["FFmpegTranscoder"]
