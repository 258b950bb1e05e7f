"""
Abstract base classes for media capture backends.

A backend opens camera+microphone streams and records segments from them.
All implementations must implement this interface, so the recorder and the
session controller stay backend-agnostic.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from proctor.core.models import MediaConstraints, RecordingProfile

logger = logging.getLogger(__name__)


@dataclass
class MediaTrack:
    """A single audio or video input held by a stream."""

    kind: str  # "audio" | "video"
    label: str
    device: str
    stopped: bool = False

    def stop(self) -> None:
        self.stopped = True


@dataclass
class MediaStream:
    """A set of live tracks opened with one permission grant."""

    constraints: MediaConstraints
    tracks: list[MediaTrack] = field(default_factory=list)

    @property
    def active(self) -> bool:
        return any(not t.stopped for t in self.tracks)

    def get_tracks(self, kind: str | None = None) -> list[MediaTrack]:
        return [t for t in self.tracks if kind is None or t.kind == kind]

    def stop(self) -> None:
        """Stop every track. Already-stopped tracks are left alone."""
        for track in self.tracks:
            if not track.stopped:
                track.stop()
                logger.debug("Stopped %s track %s", track.kind, track.label)


class BaseRecordingHandle(ABC):
    """A recording in progress on a stream."""

    mime_type: str = "video/webm"

    @abstractmethod
    async def stop(self) -> bytes:
        """Stop the recording and return the whole buffered clip.

        Returns:
            The encoded media bytes (may be empty for a very short clip).
        """

    @abstractmethod
    async def abort(self) -> None:
        """Stop the recording and discard whatever was captured."""


class BaseMediaBackend(ABC):
    """Interface that every capture backend must implement."""

    @abstractmethod
    async def open_stream(self, constraints: MediaConstraints) -> MediaStream:
        """Request combined audio+video access.

        Args:
            constraints: Resolution and audio processing flags.

        Returns:
            A stream with one audio and one video track.

        Raises:
            PermissionDeniedError: If either device cannot be opened.
        """

    @abstractmethod
    async def start_recording(
        self, stream: MediaStream, profile: RecordingProfile
    ) -> BaseRecordingHandle:
        """Begin encoding the stream into an in-memory segment.

        Args:
            stream: An active stream previously returned by ``open_stream``.
            profile: Container and bitrate settings.

        Returns:
            A handle whose ``stop()`` yields the recorded bytes.
        """
