"""Passcode validation and completion status endpoints."""

import logging

from fastapi import APIRouter, Depends

from proctor.api.dependencies import get_object_store, get_passcode_registry
from proctor.core.config import Settings, get_settings
from proctor.core.exceptions import ValidationFailedError
from proctor.core.models import (
    CompletionCounts,
    CompletionFlags,
    CompletionResponse,
    PasscodeRequest,
    PasscodeValidationResponse,
    TestType,
)
from proctor.core.utils import SEGMENT_MIME_TYPE, clean_passcode, question_number_from_name
from proctor.services.storage.base import BaseObjectStore
from proctor.services.storage.sheets import PasscodeRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["passcode"])


def _require_passcode(body: PasscodeRequest) -> str:
    passcode = clean_passcode(body.passcode)
    if not passcode:
        raise ValidationFailedError("Passcode is required", field="passcode")
    return passcode


@router.post("/validate-passcode", response_model=PasscodeValidationResponse)
async def validate_passcode(
    body: PasscodeRequest,
    registry: PasscodeRegistry = Depends(get_passcode_registry),
) -> PasscodeValidationResponse:
    """Check the passcode against the registered list."""
    passcode = _require_passcode(body)
    valid = await registry.contains(passcode)
    return PasscodeValidationResponse(
        valid=valid,
        message="Passcode is valid" if valid else "Invalid passcode",
    )


@router.post("/check-completion", response_model=CompletionResponse)
async def check_completion(
    body: PasscodeRequest,
    store: BaseObjectStore = Depends(get_object_store),
    settings: Settings = Depends(get_settings),
) -> CompletionResponse:
    """Report which tests this passcode has already finished.

    A test counts as finished once its final-question segment exists or the
    session has already been combined.
    """
    passcode = _require_passcode(body)
    final_question = f"_Q{settings.question_count}_"
    flags: dict[str, bool] = {}
    counts: dict[str, int] = {}
    for test_type in TestType:
        files = await store.find_files(
            name_contains=[passcode, f"_{test_type.tag}_"], mime_type=SEGMENT_MIME_TYPE
        )
        segments = [f for f in files if question_number_from_name(f.name) is not None]
        counts[test_type.value] = len(segments)
        flags[test_type.value] = any(
            final_question in f.name or f.name.endswith("_COMBINED.webm") for f in files
        )

    logger.info("Completion for %s: %s", passcode, flags)
    return CompletionResponse(
        success=True,
        completed=CompletionFlags(**flags),
        details=CompletionCounts(**counts),
    )
