"""Unit tests for the merge job against the in-memory object store."""

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from proctor.core.exceptions import MergeError
from proctor.core.models import MarkerVideo, MergeMarker, TestType
from proctor.core.utils import marker_file_name, participant_folder_name, segment_file_name
from proctor.services.merge import MergeJob, MergeOutcome

PASSCODE = "1089100850000"


def _seed_session(store, questions=(1, 2, 3, 4, 5), upload_order=None, test_type=TestType.english):
    """Upload segments (optionally out of order) and write their marker."""
    folder = store.add(
        participant_folder_name("Ada", "Lovelace", PASSCODE),
        mime_type="application/vnd.google-apps.folder",
    )
    videos = []
    for n in upload_order or questions:
        name = segment_file_name("Ada", "Lovelace", PASSCODE, test_type, n, datetime(2026, 3, 1, 10, 0, n))
        f = store.add(name, f"<q{n}>".encode(), parent_id=folder.id)
        videos.append(MarkerVideo(id=f.id, name=f.name, created_time=f.created_time, question_number=n))
    marker = MergeMarker(
        participant="Ada Lovelace",
        first_name="Ada",
        last_name="Lovelace",
        passcode=PASSCODE,
        test_type=test_type,
        timestamp=datetime(2026, 3, 1, 11, 0, tzinfo=UTC),
        videos=videos,
    )
    return folder, store.add(
        marker_file_name("Ada", "Lovelace", PASSCODE, test_type),
        marker.model_dump_json().encode(),
        parent_id=folder.id,
        mime_type="application/json",
    )


class Joiner:
    """Concatenation stand-in: joins file contents and records input order."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[list[str]] = []

    async def __call__(self, paths: list[Path], output: Path) -> Path:
        self.calls.append([p.name for p in paths])
        if self.fail:
            raise MergeError("ffmpeg concat failed (1): invalid data")
        output.write_bytes(b"".join(p.read_bytes() for p in paths))
        return output


async def test_merges_in_ascending_question_order(store, settings):
    folder, marker = _seed_session(store, upload_order=[3, 1, 5, 2, 4])
    joiner = Joiner()
    job = MergeJob(store, settings=settings, concatenate=joiner)

    summary = await job.run_once()

    assert summary.found == 1
    assert summary.processed == 1
    assert summary.combined_files == ["Ada_Lovelace_1089100850000_ENGLISH_COMBINED.webm"]
    assert joiner.calls == [["q1.webm", "q2.webm", "q3.webm", "q4.webm", "q5.webm"]]

    combined = next(f for f in store.files.values() if f.name.endswith("_COMBINED.webm"))
    assert store.blobs[combined.id] == b"<q1><q2><q3><q4><q5>"
    assert combined.parent_id == folder.id
    assert combined.mime_type == "video/webm"
    assert marker.id not in store.files


async def test_marker_deleted_only_after_upload(store, settings):
    _, marker = _seed_session(store)
    await MergeJob(store, settings=settings, concatenate=Joiner()).run_once()

    ops = [op for op, _ in store.log]
    assert ops.index("upload") < ops.index("delete")
    assert store.log[-1] == ("delete", marker.name)


async def test_incomplete_marker_is_skipped_and_kept(store, settings):
    _, marker = _seed_session(store, questions=(1, 2, 3, 4))
    joiner = Joiner()

    summary = await MergeJob(store, settings=settings, concatenate=joiner).run_once()

    assert summary.skipped == 1
    assert summary.processed == 0
    assert joiner.calls == []
    assert marker.id in store.files
    assert store.log == []


async def test_upload_failure_keeps_marker(store, settings):
    _, marker = _seed_session(store)
    store.fail_on.add("upload")

    summary = await MergeJob(store, settings=settings, concatenate=Joiner()).run_once()

    assert summary.failed == 1
    assert marker.id in store.files
    assert ("delete", marker.name) not in store.log


async def test_concat_failure_cleans_temp_files(store, settings):
    _seed_session(store)
    job = MergeJob(store, settings=settings, concatenate=Joiner(fail=True))

    summary = await job.run_once()

    assert summary.failed == 1
    temp_root = Path(settings.merge_temp_dir)
    assert not temp_root.exists() or not any(temp_root.iterdir())


async def test_unreadable_marker_counts_as_failed(store, settings):
    store.add("Broken_COMBINE_METADATA.json", b"{not json", mime_type="application/json")
    summary = await MergeJob(store, settings=settings, concatenate=Joiner()).run_once()
    assert summary.failed == 1
    assert len(store.files) == 1


async def test_one_failure_does_not_stop_other_markers(store, settings):
    _seed_session(store)
    _seed_session(store, test_type=TestType.non_english)
    joiner = Joiner()
    job = MergeJob(store, settings=settings, concatenate=joiner)

    summary = await job.run_once()

    assert summary.found == 2
    assert summary.processed == 2
    assert not [f for f in store.files.values() if f.name.endswith("COMBINE_METADATA.json")]


async def test_no_markers(store, settings):
    summary = await MergeJob(store, settings=settings, concatenate=Joiner()).run_once()
    assert summary.found == 0
    assert not Path(settings.merge_temp_dir).exists()


async def test_process_marker_outcome(store, settings):
    _, marker = _seed_session(store)
    assert not Path(settings.merge_temp_dir).exists()
    outcome, name = await MergeJob(store, settings=settings, concatenate=Joiner()).process_marker(marker)
    assert outcome is MergeOutcome.processed
    assert name.endswith("_COMBINED.webm")


async def test_unusable_temp_dir_fails_each_marker(store, settings, tmp_path):
    """A temp root that cannot be created fails the marker, not the run."""
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    settings.merge_temp_dir = str(blocker / "merge")
    _seed_session(store)
    _seed_session(store, test_type=TestType.non_english)
    joiner = Joiner()

    summary = await MergeJob(store, settings=settings, concatenate=joiner).run_once()

    assert summary.found == 2
    assert summary.failed == 2
    assert joiner.calls == []
    assert len([f for f in store.files.values() if f.name.endswith("COMBINE_METADATA.json")]) == 2


def test_marker_json_shape():
    """Markers carry the fields the merge job reads back."""
    marker = MergeMarker(
        participant="Ada Lovelace",
        first_name="Ada",
        last_name="Lovelace",
        passcode=PASSCODE,
        timestamp=datetime(2026, 3, 1, tzinfo=UTC),
        videos=[MarkerVideo(id="x", name="n", question_number=1)],
    )
    data = json.loads(marker.model_dump_json())
    assert data["status"] == "ready_for_combination"
    assert data["test_type"] == "english"
    assert data["videos"][0]["question_number"] == 1


@pytest.mark.parametrize("questions", [(1, 2, 3, 4, 5, 6), (1, 2, 3, 3, 5)])
async def test_marker_with_wrong_question_set_is_skipped(store, settings, questions):
    _seed_session(store, questions=questions)
    summary = await MergeJob(store, settings=settings, concatenate=Joiner()).run_once()
    assert summary.skipped == 1
