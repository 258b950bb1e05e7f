"""
Merge trigger endpoint.

When every question segment of a session is present, writes the
``*_COMBINE_METADATA.json`` marker that the merge job picks up. Calling it
again for a session that is already marked or combined is a no-op.
"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from proctor.api.dependencies import get_object_store
from proctor.core.config import Settings, get_settings
from proctor.core.exceptions import ValidationFailedError
from proctor.core.models import CombineRequest, CombineResponse, MarkerVideo, MergeMarker
from proctor.core.utils import (
    SEGMENT_MIME_TYPE,
    clean_passcode,
    combined_file_name,
    marker_file_name,
    participant_folder_name,
    question_number_from_name,
)
from proctor.services.storage.base import BaseObjectStore, StoredFile

logger = logging.getLogger(__name__)

router = APIRouter(tags=["combine"])


def _latest_per_question(files: list[StoredFile]) -> dict[int, StoredFile]:
    # files arrive oldest first; a re-uploaded question keeps its newest copy
    by_question: dict[int, StoredFile] = {}
    for f in files:
        number = question_number_from_name(f.name)
        if number is not None:
            by_question[number] = f
    return by_question


@router.post("/combine", response_model=CombineResponse)
async def request_combine(
    body: CombineRequest,
    store: BaseObjectStore = Depends(get_object_store),
    settings: Settings = Depends(get_settings),
) -> CombineResponse:
    """Mark a finished session for combination."""
    passcode = clean_passcode(body.passcode)
    if not passcode or not body.first_name.strip() or not body.last_name.strip():
        raise ValidationFailedError("first_name, last_name and passcode are required")

    participant = f"{body.first_name} {body.last_name}"
    folder_name = participant_folder_name(body.first_name, body.last_name, passcode)
    logger.info("Combine requested for %s (%s, %s)", participant, passcode, body.test_type.tag)

    folder_id = await store.find_folder(folder_name)
    if folder_id is None:
        return CombineResponse(success=False, message="Not all videos uploaded yet", files_found=0)

    marker_name = marker_file_name(body.first_name, body.last_name, passcode, body.test_type)
    existing = await store.find_files(name_contains=[marker_name], parent_id=folder_id)
    if existing:
        return CombineResponse(
            success=True,
            message="Videos already marked for combination",
            files_found=settings.question_count,
            metadata_file_id=existing[0].id,
        )

    combined_name = combined_file_name(body.first_name, body.last_name, passcode, body.test_type)
    if await store.find_files(name_contains=[combined_name], parent_id=folder_id):
        return CombineResponse(
            success=True,
            message="Videos already combined",
            files_found=settings.question_count,
        )

    files = await store.find_files(
        name_contains=[f"{folder_name}_{body.test_type.tag}_Q"],
        parent_id=folder_id,
        mime_type=SEGMENT_MIME_TYPE,
    )
    segments = _latest_per_question(files)
    expected = list(range(1, settings.question_count + 1))
    if sorted(segments) != expected:
        logger.info(
            "Found %d of %d segments for %s; videos may still be uploading",
            len(segments),
            settings.question_count,
            participant,
        )
        return CombineResponse(
            success=False,
            message="Not all videos uploaded yet",
            files_found=len(segments),
        )

    marker = MergeMarker(
        participant=participant,
        first_name=body.first_name,
        last_name=body.last_name,
        passcode=passcode,
        test_type=body.test_type,
        timestamp=datetime.now(UTC),
        videos=[
            MarkerVideo(id=f.id, name=f.name, created_time=f.created_time, question_number=n)
            for n, f in sorted(segments.items())
        ],
    )
    stored = await store.upload_bytes(
        marker.model_dump_json(indent=2).encode("utf-8"),
        marker_name,
        folder_id,
        "application/json",
    )
    logger.info("Marker %s created for %s", stored.name, participant)
    return CombineResponse(
        success=True,
        message="Videos marked for combination",
        files_found=len(segments),
        metadata_file_id=stored.id,
    )
