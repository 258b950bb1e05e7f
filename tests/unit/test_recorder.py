"""Unit tests for the per-question recorder state machine."""

import asyncio

import pytest

from proctor.core.exceptions import (
    NoActiveRecordingError,
    PermissionDeniedError,
    RecorderBusyError,
    RecordingError,
)
from proctor.core.models import MediaConstraints
from proctor.services.capture import MediaCapture, QuestionRecorder, RecorderState


@pytest.fixture
async def recorder(backend):
    capture = MediaCapture(backend)
    await capture.acquire(MediaConstraints())
    return QuestionRecorder(capture, backend)


async def test_start_then_stop_produces_segment(recorder, backend):
    assert await recorder.start(1) is True
    assert recorder.state is RecorderState.recording

    segment = await recorder.stop()

    assert segment.question_number == 1
    assert segment.data == b"clip-1"
    assert segment.mime_type == "video/webm;codecs=vp8,opus"
    assert recorder.state is RecorderState.stopped


async def test_duplicate_start_is_noop(recorder, backend):
    """Starting the same question twice keeps one recording."""
    assert await recorder.start(2) is True
    assert await recorder.start(2) is False
    assert len(backend.handles) == 1


async def test_start_different_question_while_recording_raises(recorder):
    await recorder.start(1)
    with pytest.raises(RecorderBusyError) as exc_info:
        await recorder.start(2)
    assert exc_info.value.active_question == 1
    assert exc_info.value.requested_question == 2
    assert recorder.question_number == 1


async def test_stop_before_start_raises(recorder):
    with pytest.raises(NoActiveRecordingError):
        await recorder.stop()


async def test_second_stop_returns_same_segment(recorder, backend):
    await recorder.start(1)
    first = await recorder.stop()
    second = await recorder.stop()
    assert first is second
    assert backend.handles[0].stop_calls == 1


async def test_concurrent_stops_share_one_flush(recorder, backend):
    await recorder.start(4)
    a, b = await asyncio.gather(recorder.stop(), recorder.stop())
    assert a is b
    assert backend.handles[0].stop_calls == 1


async def test_next_question_after_stop(recorder):
    await recorder.start(1)
    await recorder.stop()
    assert await recorder.start(2) is True
    segment = await recorder.stop()
    assert segment.question_number == 2
    assert segment.data == b"clip-2"


async def test_start_without_stream_raises(backend):
    recorder = QuestionRecorder(MediaCapture(backend), backend)
    with pytest.raises(PermissionDeniedError):
        await recorder.start(1)
    assert recorder.state is RecorderState.idle


async def test_failed_flush_resets_to_idle(recorder, backend):
    backend.fail_stop = True
    await recorder.start(1)
    with pytest.raises(RecordingError):
        await recorder.stop()
    assert recorder.state is RecorderState.idle
    with pytest.raises(NoActiveRecordingError):
        await recorder.stop()


async def test_abort_discards_recording(recorder, backend):
    await recorder.start(3)
    await recorder.abort()
    assert backend.handles[0].aborted
    assert recorder.state is RecorderState.idle
    await recorder.abort()  # idle: nothing to do


# ---------------------------------------------------------------------------
# Slow backend start
# ---------------------------------------------------------------------------


async def test_abort_during_start_stops_the_late_handle(recorder, backend):
    """Unloading while the backend is still starting must not orphan the capture."""
    backend.start_delay = 0.05
    start = asyncio.create_task(recorder.start(1))
    await asyncio.sleep(0.01)
    assert recorder.state is RecorderState.recording

    await recorder.abort()

    assert await start is False
    assert len(backend.handles) == 1
    assert backend.handles[0].aborted
    assert recorder.state is RecorderState.idle
    with pytest.raises(NoActiveRecordingError):
        await recorder.stop()


async def test_stop_during_start_waits_for_handle(recorder, backend):
    backend.start_delay = 0.05
    start = asyncio.create_task(recorder.start(2))
    await asyncio.sleep(0.01)

    segment = await recorder.stop()

    assert await start is True
    assert segment.question_number == 2
    assert segment.data == b"clip-1"
    assert backend.handles[0].stop_calls == 1
    assert recorder.state is RecorderState.stopped


async def test_stop_during_aborted_start_raises(recorder, backend):
    backend.start_delay = 0.05
    start = asyncio.create_task(recorder.start(1))
    await asyncio.sleep(0.01)

    stop = asyncio.create_task(recorder.stop())
    await asyncio.sleep(0)
    await recorder.abort()

    with pytest.raises(NoActiveRecordingError):
        await stop
    assert await start is False
    assert backend.handles[0].aborted
    assert backend.handles[0].stop_calls == 0


async def test_restart_after_abort_during_start(recorder, backend):
    backend.start_delay = 0.05
    first = asyncio.create_task(recorder.start(1))
    await asyncio.sleep(0.01)
    await recorder.abort()
    assert await first is False

    backend.start_delay = 0.0
    assert await recorder.start(1) is True
    segment = await recorder.stop()
    assert segment.data == b"clip-2"
