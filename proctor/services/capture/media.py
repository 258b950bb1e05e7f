"""Session-long camera+microphone stream ownership."""

import asyncio
import logging

from proctor.core.exceptions import PermissionDeniedError
from proctor.core.models import EquipmentReport, MediaConstraints
from proctor.services.capture.base import BaseMediaBackend, MediaStream

logger = logging.getLogger(__name__)


class MediaCapture:
    """Acquires the recording stream once and releases it exactly once.

    Args:
        backend: Capture backend used to open streams.
    """

    def __init__(self, backend: BaseMediaBackend) -> None:
        self._backend = backend
        self._stream: MediaStream | None = None
        self._released = False
        self._lock = asyncio.Lock()

    @property
    def stream(self) -> MediaStream | None:
        return self._stream

    @property
    def acquired(self) -> bool:
        return self._stream is not None and not self._released

    async def acquire(self, constraints: MediaConstraints) -> MediaStream:
        """Open the combined audio+video stream, or return the one already held.

        Raises:
            PermissionDeniedError: If access is refused, or the stream was
                already released for this session.
        """
        async with self._lock:
            if self._released:
                raise PermissionDeniedError("Media stream was already released for this session")
            if self._stream is not None:
                return self._stream
            try:
                self._stream = await self._backend.open_stream(constraints)
            except PermissionDeniedError:
                logger.error("Camera/microphone access denied")
                raise
            logger.info("Recording stream acquired (%d tracks)", len(self._stream.tracks))
            return self._stream

    def release(self) -> None:
        """Stop all tracks. Calling it again is a no-op."""
        if self._released:
            return
        self._released = True
        if self._stream is not None:
            self._stream.stop()
            logger.info("Recording stream released")

    async def preview(self, constraints: MediaConstraints) -> EquipmentReport:
        """Open a short-lived preview stream, inspect it and tear it down.

        The preview never records and never becomes the session stream.

        Raises:
            PermissionDeniedError: If the devices cannot be opened.
        """
        stream = await self._backend.open_stream(constraints)
        try:
            report = EquipmentReport(
                video_ok=bool(stream.get_tracks("video")),
                audio_ok=bool(stream.get_tracks("audio")),
                labels=[t.label for t in stream.tracks],
            )
        finally:
            stream.stop()
        logger.info("Equipment preview: video=%s audio=%s", report.video_ok, report.audio_ok)
        return report
