"""
Capture module - media stream ownership and per-question recording.
"""

from .base import BaseMediaBackend, BaseRecordingHandle, MediaStream, MediaTrack
from .media import MediaCapture
from .recorder import QuestionRecorder, RecorderState

__all__ = [
    "BaseMediaBackend",
    "BaseRecordingHandle",
    "MediaCapture",
    "MediaStream",
    "MediaTrack",
    "QuestionRecorder",
    "RecorderState",
    "create_media_backend",
]


def create_media_backend(provider: str, **kwargs) -> BaseMediaBackend:
    """Factory function to create a capture backend instance.

    Args:
        provider: Backend name ("ffmpeg")
        **kwargs: Backend-specific configuration

    Returns:
        BaseMediaBackend implementation instance

    Raises:
        ValueError: If provider is unknown
    """
    if provider == "ffmpeg":
        from .ffmpeg_backend import FFmpegMediaBackend

        return FFmpegMediaBackend(**kwargs)
    else:
        raise ValueError(f"Unknown media backend: {provider}")
