"""Per-question recorder on the shared session stream.

Each question produces exactly one immutable ``Segment``. The recorder is a
small state machine (idle -> recording -> stopped) and only one question may
hold the stream at a time: starting a different question while one is still
recording is refused until its ``stop()`` has been awaited.
"""

import asyncio
import logging
from datetime import UTC, datetime
from enum import StrEnum

from proctor.core.exceptions import (
    NoActiveRecordingError,
    PermissionDeniedError,
    RecorderBusyError,
)
from proctor.core.models import RecordingProfile, Segment
from proctor.services.capture.base import BaseMediaBackend, BaseRecordingHandle
from proctor.services.capture.media import MediaCapture

logger = logging.getLogger(__name__)


class RecorderState(StrEnum):
    idle = "idle"
    recording = "recording"
    stopped = "stopped"


class QuestionRecorder:
    """Records one segment per question from the stream held by ``capture``.

    Args:
        capture: Owner of the session stream.
        backend: Capture backend that encodes the stream.
        profile: Container and bitrate settings.
    """

    def __init__(
        self,
        capture: MediaCapture,
        backend: BaseMediaBackend,
        profile: RecordingProfile | None = None,
    ) -> None:
        self._capture = capture
        self._backend = backend
        self._profile = profile or RecordingProfile()
        self._state = RecorderState.idle
        self._question: int | None = None
        self._handle: BaseRecordingHandle | None = None
        self._segment: Segment | None = None
        self._stopping: asyncio.Future[Segment] | None = None
        self._starting: asyncio.Future[BaseRecordingHandle] | None = None

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def question_number(self) -> int | None:
        return self._question

    async def start(self, question_number: int) -> bool:
        """Begin recording ``question_number``.

        Returns:
            True if a new recording started. False if this question was
            already recording (duplicate start is a no-op) or the recording
            was aborted before the backend finished starting it.

        Raises:
            RecorderBusyError: If a different question is still recording.
            PermissionDeniedError: If the session stream is not held.
        """
        if self._state is RecorderState.recording:
            if self._question == question_number:
                logger.debug("Question %s already recording; ignoring start", question_number)
                return False
            logger.warning(
                "Start requested for question %s while question %s is recording",
                question_number,
                self._question,
            )
            raise RecorderBusyError(self._question, question_number)

        stream = self._capture.stream
        if not self._capture.acquired or stream is None:
            raise PermissionDeniedError("Media stream has not been acquired")

        # Claim the state before suspending so a concurrent start sees it
        starting: asyncio.Future[BaseRecordingHandle] = asyncio.get_running_loop().create_future()
        self._state = RecorderState.recording
        self._question = question_number
        self._segment = None
        self._stopping = None
        self._starting = starting
        try:
            handle = await self._backend.start_recording(stream, self._profile)
        except BaseException as exc:
            if self._starting is starting:
                self._starting = None
                self._state = RecorderState.idle
                self._question = None
            if isinstance(exc, Exception):
                starting.set_exception(exc)
                starting.exception()
            else:
                starting.cancel()
            raise

        starting.set_result(handle)
        if self._starting is not starting:
            # abort() claimed the handle while the backend was starting
            logger.info("Recording for question %s aborted while starting", question_number)
            return False
        self._starting = None
        self._handle = handle
        logger.info("Recording started for question %s", question_number)
        return True

    async def _await_start(
        self, pending: asyncio.Future[BaseRecordingHandle]
    ) -> BaseRecordingHandle | None:
        """Wait for an in-flight start; None if it failed or was cancelled."""
        try:
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            if not pending.cancelled():
                raise
            return None
        except Exception:
            return None

    async def stop(self) -> Segment:
        """Stop recording and return the flushed segment.

        A second ``stop()`` without an intervening ``start()`` returns the
        same segment. A stop issued while the backend is still starting
        waits for the start to finish first.

        Raises:
            NoActiveRecordingError: If nothing was started, or the start
                failed or was aborted.
        """
        if self._state is RecorderState.idle:
            raise NoActiveRecordingError()
        if self._starting is not None:
            handle = await self._await_start(self._starting)
            if handle is None or self._state is not RecorderState.recording:
                raise NoActiveRecordingError()
        if self._state is RecorderState.stopped and self._segment is not None:
            return self._segment
        if self._stopping is not None:
            return await asyncio.shield(self._stopping)

        loop = asyncio.get_running_loop()
        self._stopping = loop.create_future()
        handle = self._handle
        question = self._question
        try:
            data = await handle.stop()
        except BaseException as exc:
            pending, self._stopping = self._stopping, None
            self._state = RecorderState.idle
            self._handle = None
            if isinstance(exc, Exception):
                pending.set_exception(exc)
                pending.exception()  # retrieved; concurrent waiters still see it
            else:
                pending.cancel()
            raise

        segment = Segment(
            data=data,
            mime_type=handle.mime_type,
            question_number=question,
            captured_at=datetime.now(UTC),
        )
        self._segment = segment
        self._handle = None
        self._state = RecorderState.stopped
        self._stopping.set_result(segment)
        logger.info("Recording stopped for question %s (%d bytes)", question, segment.size)
        return segment

    async def abort(self) -> None:
        """Best-effort stop that discards the current recording.

        A recording whose backend start is still in flight is aborted as
        soon as the start returns its handle.
        """
        if self._state is not RecorderState.recording:
            return
        pending, self._starting = self._starting, None
        handle, self._handle = self._handle, None
        question = self._question
        self._state = RecorderState.idle
        if pending is not None:
            handle = await self._await_start(pending)
        if handle is None:
            return
        try:
            await handle.abort()
        except Exception:
            logger.warning("Failed to abort recording for question %s", question, exc_info=True)
