"""Unit tests for MediaCapture stream ownership and the equipment preview."""

import pytest

from proctor.core.exceptions import PermissionDeniedError
from proctor.core.models import MediaConstraints
from proctor.services.capture import MediaCapture


async def test_acquire_returns_same_stream(backend):
    capture = MediaCapture(backend)
    first = await capture.acquire(MediaConstraints())
    second = await capture.acquire(MediaConstraints())
    assert first is second
    assert len(backend.opened) == 1
    assert capture.acquired


async def test_release_is_idempotent(backend):
    capture = MediaCapture(backend)
    stream = await capture.acquire(MediaConstraints())

    capture.release()
    capture.release()

    assert not stream.active
    assert not capture.acquired


async def test_release_before_acquire_is_safe(backend):
    capture = MediaCapture(backend)
    capture.release()
    with pytest.raises(PermissionDeniedError):
        await capture.acquire(MediaConstraints())


async def test_acquire_denied(backend):
    backend.deny = True
    capture = MediaCapture(backend)
    with pytest.raises(PermissionDeniedError):
        await capture.acquire(MediaConstraints())
    assert capture.stream is None


async def test_preview_reports_and_stops_tracks(backend):
    capture = MediaCapture(backend)
    report = await capture.preview(MediaConstraints(width=640, height=480))

    assert report.ok
    assert report.labels == ["fake camera", "fake mic"]
    assert not backend.opened[0].active
    assert capture.stream is None  # preview never becomes the session stream


async def test_preview_without_microphone(backend):
    backend.audio = False
    report = await MediaCapture(backend).preview(MediaConstraints())
    assert report.video_ok
    assert not report.audio_ok
    assert not report.ok
