"""Merge job: stitch a completed session's segments into one file.

One run lists every pending marker and processes them one at a time:

1. Load the marker and require exactly ``question_count`` segments (a short
   marker is skipped and left for the next run).
2. Download the segments into a per-marker temp directory.
3. Concatenate them in ascending question order and upload the result next
   to the marker.
4. Delete the marker. Its disappearance is the only completion signal.

Temp files are removed whether the marker succeeded or not.
"""

import json
import logging
import shutil
import tempfile
from collections.abc import Awaitable, Callable
from enum import StrEnum
from pathlib import Path

from pydantic import ValidationError

from proctor.core.config import Settings, get_settings
from proctor.core.exceptions import MergeError, ProctorError
from proctor.core.models import MergeMarker, MergeRunSummary
from proctor.core.utils import MARKER_SUFFIX, SEGMENT_MIME_TYPE, combined_file_name
from proctor.services.merge.concat import concat_segments
from proctor.services.storage.base import BaseObjectStore, StoredFile

logger = logging.getLogger(__name__)

Concatenate = Callable[[list[Path], Path], Awaitable[Path]]


class MergeOutcome(StrEnum):
    processed = "processed"
    skipped = "skipped"
    failed = "failed"


class MergeJob:
    """Processes pending merge markers found in the object store.

    Args:
        store: Object store holding segments and markers.
        settings: Configuration; defaults to ``get_settings()``.
        concatenate: Coroutine joining local files; ffmpeg by default.
    """

    def __init__(
        self,
        store: BaseObjectStore,
        settings: Settings | None = None,
        concatenate: Concatenate | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._temp_root = Path(self._settings.merge_temp_dir)
        if concatenate is None:
            ffmpeg = self._settings.ffmpeg_binary

            async def concatenate(paths: list[Path], output: Path) -> Path:
                return await concat_segments(paths, output, ffmpeg=ffmpeg)

        self._concatenate = concatenate

    async def run_once(self) -> MergeRunSummary:
        """Process every marker currently in the store."""
        summary = MergeRunSummary()
        logger.info("Searching for pending merges")
        markers = await self._store.find_files(
            name_contains=[MARKER_SUFFIX], mime_type="application/json"
        )
        summary.found = len(markers)
        if not markers:
            logger.info("No pending merges found")
            return summary

        try:
            for marker_file in markers:
                outcome, combined = await self.process_marker(marker_file)
                if outcome is MergeOutcome.processed:
                    summary.processed += 1
                    summary.combined_files.append(combined)
                elif outcome is MergeOutcome.skipped:
                    summary.skipped += 1
                else:
                    summary.failed += 1
        finally:
            if self._temp_root.is_dir() and not any(self._temp_root.iterdir()):
                self._temp_root.rmdir()

        logger.info(
            "Merge run finished: %d found, %d processed, %d skipped, %d failed",
            summary.found,
            summary.processed,
            summary.skipped,
            summary.failed,
        )
        return summary

    async def _load_marker(self, marker_file: StoredFile) -> MergeMarker:
        raw = await self._store.download_bytes(marker_file.id)
        try:
            return MergeMarker.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as exc:
            raise MergeError(f"Unreadable marker {marker_file.name}: {exc}") from exc

    async def process_marker(self, marker_file: StoredFile) -> tuple[MergeOutcome, str]:
        """Merge the session described by one marker.

        Returns:
            The outcome and, when processed, the combined file name.
        """
        logger.info("Processing marker %s", marker_file.name)
        try:
            marker = await self._load_marker(marker_file)
        except ProctorError:
            logger.exception("Could not load marker %s; leaving it for the next run", marker_file.name)
            return MergeOutcome.failed, ""

        expected = self._settings.question_count
        numbers = sorted(v.question_number for v in marker.videos)
        if numbers != list(range(1, expected + 1)):
            logger.warning(
                "Skipping %s (passcode %s): expected %d segments, marker lists %d",
                marker.participant,
                marker.passcode,
                expected,
                len(marker.videos),
            )
            return MergeOutcome.skipped, ""

        work_dir: Path | None = None
        try:
            self._temp_root.mkdir(parents=True, exist_ok=True)
            work_dir = Path(tempfile.mkdtemp(prefix="merge-", dir=self._temp_root))
            combined = await self._merge(marker, marker_file, work_dir)
        except ProctorError as exc:
            logger.error(
                "Merge failed for %s (passcode %s): %s",
                marker.participant,
                marker.passcode,
                exc.detail,
            )
            return MergeOutcome.failed, ""
        except Exception:
            logger.exception("Merge crashed for %s (passcode %s)", marker.participant, marker.passcode)
            return MergeOutcome.failed, ""
        finally:
            if work_dir is not None:
                shutil.rmtree(work_dir, ignore_errors=True)

        logger.info("Merge completed for %s (passcode %s)", marker.participant, marker.passcode)
        return MergeOutcome.processed, combined

    async def _merge(self, marker: MergeMarker, marker_file: StoredFile, work_dir: Path) -> str:
        ordered = sorted(marker.videos, key=lambda v: v.question_number)
        paths: list[Path] = []
        for video in ordered:
            logger.info("  Downloading %d/%d: %s", video.question_number, len(ordered), video.name)
            dest = work_dir / f"q{video.question_number}.webm"
            paths.append(await self._store.download_file(video.id, dest))

        name = combined_file_name(marker.first_name, marker.last_name, marker.passcode, marker.test_type)
        output = await self._concatenate(paths, work_dir / name)

        parent = marker_file.parent_id or self._store.root_folder_id
        uploaded = await self._store.upload_file(output, name, parent, SEGMENT_MIME_TYPE)
        logger.info("Combined video uploaded: %s %s", uploaded.name, uploaded.web_view_link)

        # Only now is the session done; the marker must survive any earlier failure
        await self._store.delete_file(marker_file.id)
        return uploaded.name
