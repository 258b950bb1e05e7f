"""
Segment upload endpoint.

Receives one question segment as multipart form data and stores it in the
participant's Drive folder under a deterministic name.
"""

import asyncio
import logging
import shutil
import tempfile
from datetime import datetime
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, UploadFile

from proctor.api.dependencies import get_object_store
from proctor.core.config import Settings, get_settings
from proctor.core.exceptions import ProctorError, ValidationFailedError
from proctor.core.models import TestType, UploadResponse
from proctor.core.utils import (
    SEGMENT_MIME_TYPE,
    clean_passcode,
    participant_folder_name,
    segment_file_name,
)
from proctor.services.storage.base import BaseObjectStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["upload"])


def _too_large(limit: int) -> ProctorError:
    return ProctorError(
        detail=f"File exceeds the {limit // (1024 * 1024)} MB upload limit",
        code="FILE_TOO_LARGE",
        status_code=413,
    )


def _spool_to_disk(source, dest: Path) -> int:
    source.seek(0)
    with open(dest, "wb") as out:
        shutil.copyfileobj(source, out)
    return dest.stat().st_size


@router.post("/upload", response_model=UploadResponse)
async def upload_segment(
    video: UploadFile = File(...),
    first_name: str = Form(...),
    last_name: str = Form(...),
    passcode: str = Form(...),
    question_number: int = Form(..., ge=1),
    timestamp: datetime = Form(...),
    test_type: TestType = Form(TestType.english),
    store: BaseObjectStore = Depends(get_object_store),
    settings: Settings = Depends(get_settings),
) -> UploadResponse:
    """Store one recorded segment in the participant folder."""
    if question_number > settings.question_count:
        raise ValidationFailedError(f"Unknown question number {question_number}", field="question_number")
    if not first_name.strip() or not last_name.strip() or not clean_passcode(passcode):
        raise ValidationFailedError("Name and passcode are required")

    limit = settings.upload_max_bytes
    if video.size is not None and video.size > limit:
        raise _too_large(limit)

    passcode = clean_passcode(passcode)
    participant = f"{first_name} {last_name}"
    name = segment_file_name(first_name, last_name, passcode, test_type, question_number, timestamp)
    logger.info("Upload received: %s Q%d for %s (%s)", test_type.tag, question_number, participant, passcode)

    with tempfile.TemporaryDirectory(prefix="upload-") as tmp:
        local = Path(tmp) / name
        size = await asyncio.to_thread(_spool_to_disk, video.file, local)
        if size > limit:
            raise _too_large(limit)

        folder_id = await store.ensure_folder(participant_folder_name(first_name, last_name, passcode))
        stored = await store.upload_file(local, name, folder_id, SEGMENT_MIME_TYPE)

    logger.info("Uploaded %s (%d bytes) as %s", name, size, stored.id)
    return UploadResponse(
        success=True,
        file_id=stored.id,
        file_name=stored.name,
        web_view_link=stored.web_view_link,
        participant_name=participant,
        passcode=passcode,
        question_number=question_number,
        timestamp=timestamp.isoformat(),
    )
