"""Shared pytest fixtures for the Proctor test suite.

Provides a fake capture backend, an in-memory object store standing in for
Google Drive, and settings tuned for fast tests.
"""

import asyncio
import itertools
from datetime import UTC, datetime
from pathlib import Path

import pytest

from proctor.core.config import Settings
from proctor.core.exceptions import PermissionDeniedError, RecordingError, StorageError
from proctor.core.models import MediaConstraints, RecordingProfile, Segment, TestType, UploadMetadata
from proctor.services.capture.base import (
    BaseMediaBackend,
    BaseRecordingHandle,
    MediaStream,
    MediaTrack,
)
from proctor.services.storage.base import BaseObjectStore, StoredFile

PASSCODE = "1089100850000"

# ---------------------------------------------------------------------------
# Capture fakes
# ---------------------------------------------------------------------------


class FakeRecordingHandle(BaseRecordingHandle):
    """Recording handle returning canned bytes."""

    def __init__(self, data: bytes, mime_type: str, fail: bool = False) -> None:
        self.data = data
        self.mime_type = mime_type
        self.fail = fail
        self.stop_calls = 0
        self.aborted = False

    async def stop(self) -> bytes:
        self.stop_calls += 1
        if self.fail:
            raise RecordingError("encoder crashed")
        return self.data

    async def abort(self) -> None:
        self.aborted = True


class FakeMediaBackend(BaseMediaBackend):
    """Capture backend that never touches real devices.

    Attributes:
        deny: Refuse ``open_stream`` with PermissionDeniedError.
        audio: Include an audio track in opened streams.
        start_delay: Seconds ``start_recording`` takes before returning.
        opened: Every stream handed out, in order.
        handles: Every recording handle handed out, in order.
    """

    def __init__(self, deny: bool = False, audio: bool = True) -> None:
        self.deny = deny
        self.audio = audio
        self.fail_stop = False
        self.start_delay = 0.0
        self.opened: list[MediaStream] = []
        self.handles: list[FakeRecordingHandle] = []

    async def open_stream(self, constraints: MediaConstraints) -> MediaStream:
        if self.deny:
            raise PermissionDeniedError()
        tracks = [MediaTrack(kind="video", label="fake camera", device="cam0")]
        if self.audio:
            tracks.append(MediaTrack(kind="audio", label="fake mic", device="mic0"))
        stream = MediaStream(constraints=constraints, tracks=tracks)
        self.opened.append(stream)
        return stream

    async def start_recording(
        self, stream: MediaStream, profile: RecordingProfile
    ) -> FakeRecordingHandle:
        if self.start_delay:
            await asyncio.sleep(self.start_delay)
        n = len(self.handles) + 1
        handle = FakeRecordingHandle(f"clip-{n}".encode(), profile.mime_type, fail=self.fail_stop)
        self.handles.append(handle)
        return handle


# ---------------------------------------------------------------------------
# Storage fake
# ---------------------------------------------------------------------------

FOLDER_MIME = "application/vnd.google-apps.folder"


class InMemoryObjectStore(BaseObjectStore):
    """Dict-backed ``BaseObjectStore`` with an operation log.

    ``log`` records ``(operation, name)`` tuples so tests can assert ordering
    (e.g. the combined upload happens before the marker deletion).
    """

    def __init__(self, root: str = "root") -> None:
        self._root = root
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)
        self.files: dict[str, StoredFile] = {}
        self.blobs: dict[str, bytes] = {}
        self.log: list[tuple[str, str]] = []
        self.fail_on: set[str] = set()

    @property
    def root_folder_id(self) -> str:
        return self._root

    def _check(self, op: str) -> None:
        if op in self.fail_on:
            raise StorageError(f"simulated {op} failure")

    def add(self, name: str, data: bytes = b"", parent_id: str | None = None, mime_type: str = "video/webm") -> StoredFile:
        file_id = f"id{next(self._ids)}"
        stored = StoredFile(
            id=file_id,
            name=name,
            mime_type=mime_type,
            created_time=f"2026-01-01T00:00:{next(self._clock):02d}Z",
            web_view_link=f"https://drive.test/{file_id}",
            parent_id=parent_id or self._root,
        )
        self.files[file_id] = stored
        self.blobs[file_id] = data
        return stored

    def names(self) -> list[str]:
        return [f.name for f in self.files.values() if f.mime_type != FOLDER_MIME]

    async def find_folder(self, name: str, parent_id: str | None = None) -> str | None:
        parent = parent_id or self._root
        for f in self.files.values():
            if f.mime_type == FOLDER_MIME and f.name == name and f.parent_id == parent:
                return f.id
        return None

    async def ensure_folder(self, name: str, parent_id: str | None = None) -> str:
        existing = await self.find_folder(name, parent_id)
        if existing:
            return existing
        return self.add(name, parent_id=parent_id, mime_type=FOLDER_MIME).id

    async def find_files(self, name_contains=(), parent_id=None, mime_type=None) -> list[StoredFile]:
        self._check("list")
        return [
            f
            for f in self.files.values()
            if all(part in f.name for part in name_contains)
            and (parent_id is None or f.parent_id == parent_id)
            and (mime_type is None or f.mime_type == mime_type)
        ]

    async def upload_file(self, path: Path, name: str, parent_id: str, mime_type: str) -> StoredFile:
        self._check("upload")
        self.log.append(("upload", name))
        return self.add(name, Path(path).read_bytes(), parent_id, mime_type)

    async def upload_bytes(self, data: bytes, name: str, parent_id: str, mime_type: str) -> StoredFile:
        self._check("upload")
        self.log.append(("upload", name))
        return self.add(name, data, parent_id, mime_type)

    async def download_file(self, file_id: str, dest: Path) -> Path:
        self._check("download")
        self.log.append(("download", self.files[file_id].name))
        dest.write_bytes(self.blobs[file_id])
        return dest

    async def download_bytes(self, file_id: str) -> bytes:
        self._check("download")
        return self.blobs[file_id]

    async def delete_file(self, file_id: str) -> None:
        self._check("delete")
        self.log.append(("delete", self.files[file_id].name))
        del self.files[file_id]
        del self.blobs[file_id]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path):
    """Settings with no .env, zero cooldown and a local merge temp dir."""
    return Settings(
        _env_file=None,
        google_drive_folder_id="root",
        verify_passcode_remotely=False,
        test_duration_seconds=30.0,
        transition_cooldown_seconds=0.0,
        merge_temp_dir=str(tmp_path / "merge"),
    )


@pytest.fixture
def backend():
    return FakeMediaBackend()


@pytest.fixture
def store():
    return InMemoryObjectStore()


@pytest.fixture
def make_segment():
    """Factory for immutable segments."""

    def _make(question_number: int = 1, data: bytes | None = None) -> Segment:
        return Segment(
            data=data if data is not None else f"clip-{question_number}".encode(),
            mime_type="video/webm;codecs=vp8,opus",
            question_number=question_number,
            captured_at=datetime(2026, 3, 1, 10, 0, question_number, tzinfo=UTC),
        )

    return _make


@pytest.fixture
def make_metadata():
    """Factory for upload metadata of a fixed participant."""

    def _make(question_number: int = 1, test_type: TestType = TestType.english) -> UploadMetadata:
        return UploadMetadata(
            first_name="Ada",
            last_name="Lovelace",
            passcode=PASSCODE,
            question_number=question_number,
            timestamp=datetime(2026, 3, 1, 10, 0, question_number, tzinfo=UTC),
            test_type=test_type,
        )

    return _make
