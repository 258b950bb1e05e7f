"""ffmpeg-based capture backend.

Records local camera and microphone devices (v4l2 + PulseAudio/ALSA by
default) into WebM segments by driving one ``ffmpeg`` subprocess per
recording. The clip is written to a temporary file and read back whole
when the recording stops.
"""

import asyncio
import logging
import os
import shutil
import tempfile
from pathlib import Path

from proctor.core.config import get_settings
from proctor.core.exceptions import PermissionDeniedError, ProctorError, RecordingError
from proctor.core.models import MediaConstraints, RecordingProfile
from proctor.services.capture.base import (
    BaseMediaBackend,
    BaseRecordingHandle,
    MediaStream,
    MediaTrack,
)

logger = logging.getLogger(__name__)

# Seconds to wait for ffmpeg to finalize the container after "q"
_STOP_TIMEOUT = 10.0


def _check_device(device: str, kind: str) -> None:
    """Raise PermissionDeniedError if a device node is missing or unreadable."""
    if not device.startswith("/dev/"):
        return  # named sources (e.g. pulse "default") are resolved by ffmpeg
    if not os.path.exists(device):
        raise PermissionDeniedError(f"No {kind} device found at {device}")
    if not os.access(device, os.R_OK):
        raise PermissionDeniedError(f"Access to {kind} device {device} was denied")


def _codecs_for(mime_type: str) -> tuple[str, str]:
    """Map a MediaRecorder-style MIME type to ffmpeg encoder names."""
    if "vp9" in mime_type:
        return "libvpx-vp9", "libopus"
    return "libvpx", "libopus"


class FFmpegRecordingHandle(BaseRecordingHandle):
    """One running ``ffmpeg`` process writing a WebM file."""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        output_path: Path,
        mime_type: str,
    ) -> None:
        self._process = process
        self._output_path = output_path
        self.mime_type = mime_type

    async def _terminate(self) -> int | None:
        if self._process.returncode is not None:
            return self._process.returncode
        try:
            if self._process.stdin is not None:
                self._process.stdin.write(b"q")
                await self._process.stdin.drain()
                self._process.stdin.close()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("ffmpeg stdin already closed")
        try:
            _, stderr = await asyncio.wait_for(
                self._process.communicate(), timeout=_STOP_TIMEOUT
            )
            if stderr:
                logger.debug("ffmpeg stderr: %s", stderr.decode(errors="replace").strip())
        except TimeoutError:
            logger.warning("ffmpeg did not exit after %.0fs; killing", _STOP_TIMEOUT)
            self._process.kill()
            await self._process.wait()
        return self._process.returncode

    async def stop(self) -> bytes:
        try:
            returncode = await self._terminate()
            data = self._output_path.read_bytes() if self._output_path.exists() else b""
        finally:
            self._output_path.unlink(missing_ok=True)

        if not data and returncode not in (0, None):
            raise RecordingError(f"ffmpeg exited with status {returncode} and produced no data")
        logger.info("Recording flushed: %d bytes", len(data))
        return data

    async def abort(self) -> None:
        try:
            await self._terminate()
        finally:
            self._output_path.unlink(missing_ok=True)


class FFmpegMediaBackend(BaseMediaBackend):
    """Capture backend driving ``ffmpeg`` against local devices."""

    def __init__(
        self,
        ffmpeg_binary: str | None = None,
        video_device: str | None = None,
        video_input_format: str | None = None,
        audio_device: str | None = None,
        audio_input_format: str | None = None,
    ) -> None:
        settings = get_settings()
        self._ffmpeg = ffmpeg_binary or settings.ffmpeg_binary
        self._video_device = video_device or settings.video_device
        self._video_format = video_input_format or settings.video_input_format
        self._audio_device = audio_device or settings.audio_device
        self._audio_format = audio_input_format or settings.audio_input_format

    async def open_stream(self, constraints: MediaConstraints) -> MediaStream:
        if shutil.which(self._ffmpeg) is None:
            raise ProctorError(
                detail=f"{self._ffmpeg} not found in PATH; install ffmpeg to enable capture",
                code="FFMPEG_NOT_FOUND",
                status_code=500,
            )
        _check_device(self._video_device, "camera")
        _check_device(self._audio_device, "microphone")

        stream = MediaStream(
            constraints=constraints,
            tracks=[
                MediaTrack(kind="video", label=f"camera {self._video_device}", device=self._video_device),
                MediaTrack(kind="audio", label=f"microphone {self._audio_device}", device=self._audio_device),
            ],
        )
        logger.info(
            "Media stream opened (%dx%d, echo_cancellation=%s, noise_suppression=%s)",
            constraints.width,
            constraints.height,
            constraints.echo_cancellation,
            constraints.noise_suppression,
        )
        return stream

    def build_command(
        self, stream: MediaStream, profile: RecordingProfile, output_path: Path
    ) -> list[str]:
        """Assemble the ffmpeg argument list for one recording."""
        c = stream.constraints
        video_codec, audio_codec = _codecs_for(profile.mime_type)
        cmd = [
            self._ffmpeg,
            "-hide_banner",
            "-loglevel",
            "error",
            "-y",
            "-f",
            self._video_format,
            "-video_size",
            f"{c.width}x{c.height}",
            "-i",
            self._video_device,
            "-f",
            self._audio_format,
            "-sample_rate",
            str(c.sample_rate),
            "-i",
            self._audio_device,
        ]
        filters = []
        if c.echo_cancellation:
            # ffmpeg has no reference-signal AEC; gate out low-level speaker bleed
            filters.append("agate")
        if c.noise_suppression:
            filters.append("afftdn")
        if filters:
            cmd += ["-af", ",".join(filters)]
        cmd += [
            "-c:v",
            video_codec,
            "-b:v",
            str(profile.video_bits_per_second),
            "-c:a",
            audio_codec,
            "-b:a",
            str(profile.audio_bits_per_second),
            "-f",
            "webm",
            str(output_path),
        ]
        return cmd

    async def start_recording(
        self, stream: MediaStream, profile: RecordingProfile
    ) -> FFmpegRecordingHandle:
        if not stream.active:
            raise PermissionDeniedError("Media stream is no longer active")

        fd, tmp = tempfile.mkstemp(prefix="proctor-", suffix=".webm")
        os.close(fd)
        output_path = Path(tmp)
        cmd = self.build_command(stream, profile, output_path)
        logger.debug("Starting ffmpeg: %s", " ".join(cmd))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            output_path.unlink(missing_ok=True)
            raise RecordingError(f"Could not start ffmpeg: {exc}") from exc

        return FFmpegRecordingHandle(process, output_path, profile.mime_type)
