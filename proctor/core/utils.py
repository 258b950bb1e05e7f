"""Shared utility functions for Proctor: passcodes and Drive naming."""

import re
from datetime import datetime

from proctor.core.models import TestType

_SEPARATORS = re.compile(r"[\s-]")
_QUESTION_IN_NAME = re.compile(r"_Q(\d+)_")

MARKER_SUFFIX = "COMBINE_METADATA.json"
SEGMENT_MIME_TYPE = "video/webm"


def clean_passcode(passcode: str) -> str:
    """Strip whitespace and dashes from a user-entered passcode."""
    return _SEPARATORS.sub("", passcode or "")


def validate_passcode(passcode: str, minimum: int, maximum: int) -> bool:
    """Check the passcode format: digits only, within ``[minimum, maximum]``."""
    cleaned = clean_passcode(passcode)
    if not cleaned.isascii() or not cleaned.isdigit():
        return False
    return minimum <= int(cleaned) <= maximum


def _safe(part: str) -> str:
    # Drive names are free-form, but keep them query-friendly
    return re.sub(r"[^\w-]+", "_", part.strip()).strip("_")


def participant_folder_name(first_name: str, last_name: str, passcode: str) -> str:
    """Deterministic per-participant folder name."""
    return f"{_safe(last_name)}_{_safe(first_name)}_{clean_passcode(passcode)}"


def segment_file_name(
    first_name: str,
    last_name: str,
    passcode: str,
    test_type: TestType,
    question_number: int,
    timestamp: datetime,
) -> str:
    """File name for one question segment."""
    stamp = timestamp.strftime("%Y%m%dT%H%M%S")
    prefix = participant_folder_name(first_name, last_name, passcode)
    return f"{prefix}_{test_type.tag}_Q{question_number}_{stamp}.webm"


def marker_file_name(first_name: str, last_name: str, passcode: str, test_type: TestType) -> str:
    prefix = participant_folder_name(first_name, last_name, passcode)
    return f"{prefix}_{test_type.tag}_{MARKER_SUFFIX}"


def combined_file_name(first_name: str, last_name: str, passcode: str, test_type: TestType) -> str:
    return f"{_safe(first_name)}_{_safe(last_name)}_{clean_passcode(passcode)}_{test_type.tag}_COMBINED.webm"


def question_number_from_name(name: str) -> int | None:
    """Extract the question number from a segment file name, if present."""
    match = _QUESTION_IN_NAME.search(name)
    return int(match.group(1)) if match else None
